from __future__ import annotations

import os
import posixpath
import time
from datetime import timedelta
from typing import Iterable

from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.schemas.attachments import AttachmentUrl, FileAttachment, FileDownloadResult, utcnow
from app.services.s3_storage import get_s3_storage
from app.services.storage_events import record_storage_event
from app.services.storage_paths import owner_prefix, temp_file_path
from app.services.storage_policy import ERROR_DOWNLOAD_FAILED

_TRANSPORT_ERRORS = (ClientError, BotoCoreError, OSError)


def owns_attachment(attachment: FileAttachment, owner_id: str) -> bool:
    """True when the descriptor points into one of our buckets under the owner's prefix."""
    bucket = attachment.bucket_id
    if bucket not in (settings.ATTACHMENTS_BUCKET, settings.AVATARS_BUCKET):
        return False
    try:
        prefix = owner_prefix(bucket, owner_id)
    except ValueError:
        return False
    path = str(attachment.storage_path or "")
    if not path.startswith(prefix):
        return False
    return all(segment not in ("", ".", "..") for segment in path[len(prefix):].split("/"))


def mint_signed_url(bucket: str, storage_path: str, ttl_seconds: int | None = None) -> AttachmentUrl:
    """Create a fresh signed URL; never cached, each call mints a new one."""
    ttl = int(ttl_seconds if ttl_seconds is not None else settings.SIGNED_URL_TTL_SECONDS)
    try:
        url = get_s3_storage().create_signed_url(bucket, storage_path, ttl)
    except _TRANSPORT_ERRORS as exc:
        record_storage_event("SIGN_URL", ok=False, reason=str(exc), bucket=bucket, object_key=storage_path)
        return AttachmentUrl.unresolved()
    if not url:
        return AttachmentUrl.unresolved()
    return AttachmentUrl.signed(url, utcnow() + timedelta(seconds=ttl))


def resolve_attachment_url(attachment: FileAttachment, ttl_seconds: int | None = None) -> AttachmentUrl:
    if attachment.public_url:
        return AttachmentUrl.public(attachment.public_url)
    return mint_signed_url(attachment.bucket_id, attachment.storage_path, ttl_seconds)


def resolve(attachment: FileAttachment, ttl_seconds: int | None = None) -> str | None:
    """URL for display or download: the public URL if set, otherwise a fresh signed URL.

    Returns None when a signed URL cannot be minted; a missing preview is not
    fatal to callers.
    """
    return resolve_attachment_url(attachment, ttl_seconds).url()


def _remove_partial(path: str) -> None:
    try:
        os.remove(path)
    except OSError as exc:
        record_storage_event("TEMP_DELETE", ok=False, reason=str(exc), details={"path": path})


def download_attachment(attachment: FileAttachment, local_path: str | None = None) -> FileDownloadResult:
    started_at = time.perf_counter()
    target = local_path or temp_file_path(attachment.file_name)
    opened = False
    try:
        data = get_s3_storage().get_object(attachment.bucket_id, attachment.storage_path)
        directory = os.path.dirname(target)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(target, "wb") as handle:
            opened = True
            handle.write(data)
    except _TRANSPORT_ERRORS as exc:
        if opened:
            _remove_partial(target)
        record_storage_event(
            "DOWNLOAD",
            ok=False,
            reason=str(exc),
            bucket=attachment.bucket_id,
            object_key=attachment.storage_path,
        )
        return FileDownloadResult.failed(f"{ERROR_DOWNLOAD_FAILED}: {exc}")
    return FileDownloadResult.ok(target, file_size=len(data), duration_seconds=time.perf_counter() - started_at)


def delete_attachment(attachment: FileAttachment) -> bool:
    try:
        failed = get_s3_storage().delete_objects(attachment.bucket_id, [attachment.storage_path])
    except _TRANSPORT_ERRORS as exc:
        record_storage_event("DELETE", ok=False, reason=str(exc), bucket=attachment.bucket_id, object_key=attachment.storage_path)
        return False
    if failed:
        record_storage_event(
            "DELETE",
            ok=False,
            reason="store reported delete error",
            bucket=attachment.bucket_id,
            object_key=attachment.storage_path,
        )
        return False
    record_storage_event("DELETE", ok=True, bucket=attachment.bucket_id, object_key=attachment.storage_path)
    return True


def delete_attachments(attachments: Iterable[FileAttachment]) -> dict[str, bool]:
    return {attachment.id: delete_attachment(attachment) for attachment in attachments}


def get_file_metadata(bucket: str, storage_path: str) -> dict | None:
    storage = get_s3_storage()
    try:
        head = storage.head_object(bucket, storage_path)
    except _TRANSPORT_ERRORS as exc:
        record_storage_event("HEAD", ok=False, reason=str(exc), bucket=bucket, object_key=storage_path)
        return None
    modified = head.get("LastModified")
    modified_iso = modified.isoformat() if hasattr(modified, "isoformat") else modified
    return {
        "name": posixpath.basename(storage_path),
        "size": int(head.get("ContentLength") or 0),
        "mime_type": head.get("ContentType"),
        "created_at": modified_iso,
        "updated_at": modified_iso,
    }
