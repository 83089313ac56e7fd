from __future__ import annotations

from app.core.config import settings
from app.services.s3_storage import get_s3_storage
from app.services.storage_events import record_storage_event
from app.services.storage_paths import owner_prefix
from app.services.storage_policy import ERROR_UNAUTHENTICATED, format_file_size


def _sum_sizes(objects: list[dict]) -> int:
    return sum(int(item.get("size") or 0) for item in objects)


def get_storage_usage(owner_id: str | None) -> dict:
    """Usage across the owner's attachments and avatars.

    Returns ``{"error": message}`` instead of raising; usage display must not
    break the surrounding screen.
    """
    if not str(owner_id or "").strip():
        return {"error": ERROR_UNAUTHENTICATED}
    attachments_bucket = settings.ATTACHMENTS_BUCKET
    avatars_bucket = settings.AVATARS_BUCKET
    try:
        storage = get_s3_storage()
        attachments = storage.list_objects(attachments_bucket, owner_prefix(attachments_bucket, str(owner_id)))
        avatars = storage.list_objects(avatars_bucket, owner_prefix(avatars_bucket, str(owner_id)))
    except Exception as exc:
        record_storage_event("USAGE", ok=False, reason=str(exc), owner_id=owner_id)
        return {"error": str(exc)}

    total_size = _sum_sizes(attachments) + _sum_sizes(avatars)
    return {
        "totalSize": total_size,
        "formattedSize": format_file_size(total_size),
        "attachmentCount": len(attachments),
        "avatarCount": len(avatars),
        "totalFiles": len(attachments) + len(avatars),
    }
