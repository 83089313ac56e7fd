from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.schemas.attachments import AttachmentMetadata, FileAttachment, FileUploadResult, UploadReceipt, UploadSource
from app.services.attachment_errors import AttachmentError, ErrorKind, FileNotFoundForUpload, FileTooLarge, TransportFailure
from app.services.content_digest import content_digest
from app.services.file_validation import validate
from app.services.s3_storage import error_code, get_s3_storage
from app.services.storage_events import record_storage_event
from app.services.storage_paths import attachment_path, avatar_path
from app.services.storage_policy import (
    CATEGORY_ATTACHMENT,
    CATEGORY_AVATAR,
    ERROR_FILE_NOT_FOUND,
    ERROR_FILE_TOO_LARGE,
    ERROR_INVALID_PATH,
    ERROR_UNAUTHENTICATED,
    ERROR_UPLOAD_FAILED,
    bucket_for_category,
    max_size_bytes,
)

logger = logging.getLogger("app.storage")

ProgressCallback = Callable[[float], None]

_RETRYABLE_CODES = {"InternalError", "ServiceUnavailable", "SlowDown", "RequestTimeout", "RequestTimeTooSkewed"}


class ProgressReporter:
    """Forwards progress to a callback, clamped to [0, 1] and never decreasing.

    The S3 PUT gives no incremental signal, so uploads report 0.0 before the
    request and 1.0 once the store has acknowledged the write.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self.value: float | None = None

    def report(self, progress: float) -> None:
        clamped = min(max(float(progress), 0.0), 1.0)
        if self.value is not None and clamped <= self.value:
            return
        self.value = clamped
        if self._callback is not None:
            self._callback(clamped)


def _describe_transport_error(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return str(error.get("Message") or error.get("Code") or exc)
    return str(exc) or exc.__class__.__name__


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, ClientError):
        status = int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0)
        return status >= 500 or error_code(exc) in _RETRYABLE_CODES
    return isinstance(exc, BotoCoreError)


def put_object(
    bucket: str,
    path: str,
    data: bytes,
    content_type: str,
    on_progress: Optional[ProgressCallback] = None,
    *,
    upsert: bool = False,
    resolve_public_url: bool = False,
) -> UploadReceipt:
    reporter = ProgressReporter(on_progress)
    reporter.report(0.0)
    storage = get_s3_storage()
    attempts = max(1, int(settings.UPLOAD_MAX_ATTEMPTS))
    for attempt in range(1, attempts + 1):
        try:
            storage.put_object(
                bucket,
                path,
                data,
                content_type,
                upsert=upsert,
                cache_control=settings.UPLOAD_CACHE_CONTROL,
            )
            break
        except (ClientError, BotoCoreError, OSError) as exc:
            if attempt >= attempts or not _is_retryable(exc):
                raise TransportFailure(f"{ERROR_UPLOAD_FAILED}: {_describe_transport_error(exc)}") from exc
            logger.warning(
                "Upload attempt failed, retrying bucket=%s key=%s attempt=%s/%s error=%s",
                bucket,
                path,
                attempt,
                attempts,
                _describe_transport_error(exc),
            )
            time.sleep(max(0.0, float(settings.UPLOAD_RETRY_DELAY_SECONDS)))
    reporter.report(1.0)
    public_url = storage.get_public_url(bucket, path) if resolve_public_url else None
    return UploadReceipt(bucket=bucket, storage_path=path, public_url=public_url)


def _load_bytes(source: UploadSource) -> bytes:
    if source.data is not None:
        return bytes(source.data)
    try:
        with open(str(source.local_path), "rb") as handle:
            return handle.read()
    except OSError as exc:
        raise FileNotFoundForUpload(ERROR_FILE_NOT_FOUND) from exc


def _upload(
    source: UploadSource,
    *,
    category: str,
    owner_id: str | None,
    build_path: Callable[[str], str],
    on_progress: Optional[ProgressCallback] = None,
    extra_metadata: dict[str, str] | None = None,
) -> FileUploadResult:
    started_at = time.perf_counter()
    file_name = source.name
    if not str(owner_id or "").strip():
        return FileUploadResult.failed(ErrorKind.UNAUTHENTICATED, ERROR_UNAUTHENTICATED)

    try:
        storage_path = build_path(file_name)
    except ValueError as exc:
        record_storage_event("UPLOAD_REJECTED", ok=False, reason=str(exc), owner_id=owner_id, details={"file_name": file_name})
        return FileUploadResult.failed(ErrorKind.INVALID_PATH, f"{ERROR_INVALID_PATH}: {exc}")

    validation = validate(source, category)
    if not validation.is_valid:
        record_storage_event(
            "UPLOAD_REJECTED",
            ok=False,
            reason=validation.error_message,
            owner_id=owner_id,
            details={"file_name": file_name, "kind": getattr(validation.error_kind, "value", None), "mime_type": validation.mime_type},
        )
        return FileUploadResult.failed(validation.error_kind or ErrorKind.INVALID_TYPE, validation.error_message or "")

    try:
        data = _load_bytes(source)
        # The file may have grown between validation and read.
        if len(data) > max_size_bytes(category):
            raise FileTooLarge(ERROR_FILE_TOO_LARGE)
    except AttachmentError as exc:
        return FileUploadResult.failed(exc.kind, exc.message)

    bucket = bucket_for_category(category)
    mime_type = str(validation.mime_type)
    attachment = FileAttachment.in_flight(
        file_name=file_name,
        file_size=len(data),
        mime_type=mime_type,
        bucket_id=bucket,
        storage_path=storage_path,
        metadata=AttachmentMetadata(
            hash=content_digest(data),
            original_path=source.local_path,
            extra=dict(extra_metadata or {}),
        ),
    )

    try:
        receipt = put_object(
            bucket,
            storage_path,
            data,
            mime_type,
            on_progress,
            upsert=category == CATEGORY_AVATAR,
            resolve_public_url=category == CATEGORY_AVATAR,
        )
    except TransportFailure as exc:
        record_storage_event("UPLOAD", ok=False, reason=exc.message, bucket=bucket, object_key=storage_path, owner_id=owner_id)
        return FileUploadResult.failed(exc.kind, exc.message, attachment=attachment.mark_failed(exc.message))

    uploaded = attachment.mark_uploaded(public_url=receipt.public_url)
    duration = time.perf_counter() - started_at
    record_storage_event(
        "UPLOAD",
        ok=True,
        bucket=bucket,
        object_key=storage_path,
        owner_id=owner_id,
        details={"size_bytes": len(data), "mime_type": mime_type, "duration_ms": round(duration * 1000.0, 2)},
    )
    return FileUploadResult.ok(uploaded, duration_seconds=duration)


def upload_attachment(
    source: UploadSource,
    owner_id: str | None,
    conversation_id: str,
    message_id: str,
    on_progress: Optional[ProgressCallback] = None,
    metadata: dict[str, str] | None = None,
) -> FileUploadResult:
    return _upload(
        source,
        category=CATEGORY_ATTACHMENT,
        owner_id=owner_id,
        build_path=lambda name: attachment_path(str(owner_id), conversation_id, message_id, name),
        on_progress=on_progress,
        extra_metadata=metadata,
    )


def upload_avatar(
    source: UploadSource,
    owner_id: str | None,
    on_progress: Optional[ProgressCallback] = None,
) -> FileUploadResult:
    return _upload(
        source,
        category=CATEGORY_AVATAR,
        owner_id=owner_id,
        build_path=lambda name: avatar_path(str(owner_id), name),
        on_progress=on_progress,
    )
