from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, Union

from app.schemas.attachments import (
    AttachmentResult,
    BatchUploadResult,
    FailedUpload,
    FileAttachment,
    FilePickResult,
    FileUploadResult,
    UploadSource,
)
from app.services.attachment_errors import ErrorKind
from app.services.storage_policy import ERROR_NO_VALID_FILES, ERROR_PICK_FAILED, ERROR_UPLOAD_FAILED
from app.services.uploads import upload_attachment

logger = logging.getLogger("app.storage")

ItemProgressCallback = Callable[[int, int], None]
FileProgressCallback = Callable[[str, float], None]


class LazySource:
    """Defers reading an item until the batch reaches it."""

    def __init__(self, name: str, loader: Callable[[], UploadSource]):
        self.name = name
        self._loader = loader

    def load(self) -> UploadSource:
        return self._loader()


BatchItem = Union[UploadSource, LazySource]


def _upload_one(
    item: BatchItem,
    owner_id: str | None,
    conversation_id: str,
    message_id: str,
    on_file_progress: Optional[FileProgressCallback],
) -> FileUploadResult:
    name = item.name
    on_progress = None
    if on_file_progress is not None:
        on_progress = lambda progress: on_file_progress(name, progress)  # noqa: E731
    try:
        source = item.load() if isinstance(item, LazySource) else item
        return upload_attachment(source, owner_id, conversation_id, message_id, on_progress=on_progress)
    except Exception as exc:
        # Collected into the batch result instead of aborting the remaining items.
        logger.exception("Unexpected batch item failure file=%s", name)
        return FileUploadResult.failed(ErrorKind.TRANSPORT_FAILURE, f"{ERROR_UPLOAD_FAILED}: {exc}")


def upload_many(
    files: Sequence[BatchItem],
    owner_id: str | None,
    conversation_id: str,
    message_id: str,
    on_item_progress: Optional[ItemProgressCallback] = None,
    on_file_progress: Optional[FileProgressCallback] = None,
) -> BatchUploadResult:
    """Upload files one after another, in input order.

    Sequential on purpose: a ``LazySource`` is read only when its turn comes,
    so one file's bytes and one connection are held at a time.
    ``on_item_progress`` fires after each item with ``(completed, total)``.
    """
    total = len(files)
    successful: list[FileAttachment] = []
    failed: list[FailedUpload] = []
    for completed, source in enumerate(files, start=1):
        result = _upload_one(source, owner_id, conversation_id, message_id, on_file_progress)
        if result.success and result.attachment is not None:
            successful.append(result.attachment)
        else:
            failed.append(
                FailedUpload(
                    file_name=source.name,
                    reason=result.error_message or ERROR_UPLOAD_FAILED,
                    error_kind=result.error_kind,
                )
            )
        if on_item_progress is not None:
            on_item_progress(completed, total)

    batch = BatchUploadResult(total_files=total, successful_uploads=successful, failed_uploads=failed)
    logger.info(
        "Batch upload finished owner=%s conversation=%s message=%s %s",
        owner_id or "-",
        conversation_id,
        message_id,
        batch.summary(),
    )
    return batch


def batch_to_attachment_result(batch: BatchUploadResult) -> AttachmentResult:
    if batch.success_count == 0:
        return AttachmentResult.failure(f"Failed to upload any files: {', '.join(batch.warnings)}")
    return AttachmentResult.success(batch.successful_uploads, warnings=batch.warnings or None)


def pick_and_upload(
    pick_result: FilePickResult,
    owner_id: str | None,
    conversation_id: str,
    message_id: str,
    on_file_progress: Optional[FileProgressCallback] = None,
) -> AttachmentResult:
    if pick_result.cancelled:
        return AttachmentResult.cancelled()
    if not pick_result.success:
        return AttachmentResult.failure(pick_result.error_message or ERROR_PICK_FAILED)
    if not pick_result.files:
        return AttachmentResult.failure(ERROR_NO_VALID_FILES)
    batch = upload_many(
        pick_result.files,
        owner_id,
        conversation_id,
        message_id,
        on_file_progress=on_file_progress,
    )
    return batch_to_attachment_result(batch)
