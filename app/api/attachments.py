from __future__ import annotations

import logging
from functools import partial

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from app.core.deps import get_current_owner_id
from app.schemas.attachments import (
    AttachmentResult,
    AttachmentUrlResponse,
    CleanupResponse,
    DeleteAttachmentsResponse,
    FileAttachment,
    FileUploadResult,
    StorageUsageResponse,
    UploadSource,
    ValidationResponse,
)
from app.services.attachment_access import delete_attachments, owns_attachment, resolve_attachment_url
from app.services.attachment_errors import ErrorKind, error_for_kind
from app.services.batch_uploads import LazySource, batch_to_attachment_result, upload_many
from app.services.file_validation import validate
from app.services.storage_policy import (
    DEFAULT_MIME_TYPE,
    ERROR_FILE_NOT_FOUND,
    ERROR_NO_VALID_FILES,
    ERROR_UPLOAD_FAILED,
    UPLOAD_CATEGORIES,
    get_file_type_category,
)
from app.services.storage_events import record_storage_event
from app.services.storage_usage import get_storage_usage
from app.services.temp_files import sweep
from app.services.uploads import upload_avatar

router = APIRouter()
logger = logging.getLogger("app.http")


def _declared_mime_type(upload: UploadFile) -> str | None:
    # Clients send the generic binary type when they do not know better; let the name decide then.
    content_type = str(upload.content_type or "").split(";", 1)[0].strip().lower()
    if not content_type or content_type == DEFAULT_MIME_TYPE:
        return None
    return content_type


def _source_from_upload(upload: UploadFile) -> UploadSource:
    data = upload.file.read()
    return UploadSource(
        data=data,
        display_name=upload.filename or None,
        declared_size=len(data),
        mime_type=_declared_mime_type(upload),
    )


def _require_owned(attachments: list[FileAttachment], owner_id: str) -> None:
    # Foreign keys answer like missing ones so other owners' objects are not revealed.
    for attachment in attachments:
        if not owns_attachment(attachment, owner_id):
            record_storage_event(
                "ACCESS_DENIED",
                ok=False,
                reason="object outside owner prefix",
                bucket=attachment.bucket_id,
                object_key=attachment.storage_path,
                owner_id=owner_id,
            )
            raise HTTPException(status_code=404, detail=ERROR_FILE_NOT_FOUND)


def _raise_for_failed_upload(result: FileUploadResult) -> None:
    raise error_for_kind(result.error_kind or ErrorKind.TRANSPORT_FAILURE, result.error_message or ERROR_UPLOAD_FAILED)


@router.post("/attachments/validate", response_model=ValidationResponse)
def validate_attachment(
    file: UploadFile = File(...),
    category: str = Form("attachment"),
    owner_id: str = Depends(get_current_owner_id),
):
    normalized = str(category or "").strip().lower()
    if normalized not in UPLOAD_CATEGORIES:
        raise HTTPException(status_code=400, detail=f'Unknown category "{category}"')
    result = validate(_source_from_upload(file), normalized)
    return ValidationResponse(
        is_valid=result.is_valid,
        error_kind=result.error_kind,
        error_message=result.error_message,
        mime_type=result.mime_type,
        size_bytes=result.size_bytes,
        file_type=get_file_type_category(result.mime_type) if result.mime_type else None,
    )


@router.post("/attachments/url", response_model=AttachmentUrlResponse)
def attachment_url(attachment: FileAttachment, owner_id: str = Depends(get_current_owner_id)):
    _require_owned([attachment], owner_id)
    resolved = resolve_attachment_url(attachment)
    return AttachmentUrlResponse(url=resolved.url(), kind=resolved.kind, expires_at=resolved.expires_at)


@router.delete("/attachments", response_model=DeleteAttachmentsResponse)
def remove_attachments(
    attachments: list[FileAttachment] = Body(...),
    owner_id: str = Depends(get_current_owner_id),
):
    _require_owned(attachments, owner_id)
    results = delete_attachments(attachments)
    logger.info(
        "Attachments delete owner=%s requested=%s deleted=%s",
        owner_id,
        len(results),
        sum(1 for ok in results.values() if ok),
    )
    return DeleteAttachmentsResponse(results=results)


@router.post("/attachments/{conversation_id}/{message_id}", response_model=AttachmentResult)
def upload_message_attachments(
    conversation_id: str,
    message_id: str,
    files: list[UploadFile] = File(...),
    owner_id: str = Depends(get_current_owner_id),
):
    if not files:
        return JSONResponse(
            status_code=422,
            content=AttachmentResult.failure(ERROR_NO_VALID_FILES).model_dump(mode="json", by_alias=True),
        )
    sources = [LazySource(item.filename or "file", partial(_source_from_upload, item)) for item in files]
    batch = upload_many(sources, owner_id, conversation_id, message_id)
    result = batch_to_attachment_result(batch)
    if not result.is_success:
        return JSONResponse(status_code=422, content=result.model_dump(mode="json", by_alias=True))
    return result


@router.post("/avatar", response_model=FileAttachment)
def upload_user_avatar(file: UploadFile = File(...), owner_id: str = Depends(get_current_owner_id)):
    result = upload_avatar(_source_from_upload(file), owner_id)
    if not result.success or result.attachment is None:
        _raise_for_failed_upload(result)
    return result.attachment


@router.get("/storage/usage", response_model=StorageUsageResponse)
def storage_usage(owner_id: str = Depends(get_current_owner_id)):
    return StorageUsageResponse.model_validate(get_storage_usage(owner_id))


@router.post("/maintenance/cleanup-temp-files", response_model=CleanupResponse)
def cleanup_temp_files(owner_id: str = Depends(get_current_owner_id)):
    return CleanupResponse(**sweep())
