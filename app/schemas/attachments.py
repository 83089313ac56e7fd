from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from app.services.attachment_errors import ErrorKind
from app.services.storage_policy import FileType, format_file_size, get_file_type_category


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class UrlKind(str, Enum):
    PUBLIC = "public"
    SIGNED = "signed"
    UNRESOLVED = "unresolved"


class AttachmentUrl(FrozenCamelModel):
    kind: UrlKind = UrlKind.UNRESOLVED
    raw_url: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def public(cls, url: str) -> "AttachmentUrl":
        return cls(kind=UrlKind.PUBLIC, raw_url=url)

    @classmethod
    def signed(cls, url: str, expires_at: datetime | None) -> "AttachmentUrl":
        return cls(kind=UrlKind.SIGNED, raw_url=url, expires_at=expires_at)

    @classmethod
    def unresolved(cls) -> "AttachmentUrl":
        return cls(kind=UrlKind.UNRESOLVED)

    def url(self, now: datetime | None = None) -> str | None:
        """Usable URL, or None when unresolved or the signed URL has expired.

        A signed URL without a recorded expiry is treated as still valid.
        """
        if self.kind == UrlKind.UNRESOLVED or not self.raw_url:
            return None
        if self.kind == UrlKind.SIGNED and self.expires_at is not None:
            if self.expires_at <= (now or utcnow()):
                return None
        return self.raw_url


class AttachmentMetadata(FrozenCamelModel):
    hash: str
    original_path: Optional[str] = None
    extra: dict[str, str] = Field(default_factory=dict)


class FileAttachment(FrozenCamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    file_name: str
    file_size: int = Field(gt=0)
    mime_type: str
    bucket_id: str
    storage_path: str
    public_url: Optional[str] = None
    signed_url: Optional[str] = None
    signed_url_expires_at: Optional[datetime] = None
    file_type: FileType = FileType.OTHER
    thumbnail_url: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=utcnow)
    metadata: Optional[AttachmentMetadata] = None
    is_uploaded: bool = False
    upload_progress: float = Field(default=0.0, ge=0.0, le=1.0)
    error_message: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_file_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (data.get("file_type") or data.get("fileType")):
            data = dict(data)
            data["file_type"] = get_file_type_category(data.get("mime_type") or data.get("mimeType"))
        return data

    @model_validator(mode="after")
    def _check_transfer_state(self) -> "FileAttachment":
        if self.is_uploaded and (self.upload_progress != 1.0 or self.error_message is not None):
            raise ValueError("uploaded attachment must have progress 1.0 and no error")
        return self

    @classmethod
    def in_flight(cls, **fields: Any) -> "FileAttachment":
        fields.update(is_uploaded=False, upload_progress=0.0, error_message=None)
        return cls(**fields)

    @property
    def is_terminal(self) -> bool:
        return self.is_uploaded or self.error_message is not None

    def _ensure_in_flight(self) -> None:
        if self.is_terminal:
            raise ValueError(f"attachment {self.id} already reached a terminal state")

    def with_progress(self, progress: float) -> "FileAttachment":
        self._ensure_in_flight()
        clamped = min(max(float(progress), 0.0), 1.0)
        return self.model_copy(update={"upload_progress": max(self.upload_progress, clamped)})

    def mark_uploaded(self, public_url: str | None = None) -> "FileAttachment":
        self._ensure_in_flight()
        update: dict[str, Any] = {"is_uploaded": True, "upload_progress": 1.0, "uploaded_at": utcnow()}
        if public_url:
            update["public_url"] = public_url
        return self.model_copy(update=update)

    def mark_failed(self, message: str) -> "FileAttachment":
        self._ensure_in_flight()
        return self.model_copy(update={"error_message": str(message or "Upload failed")})

    @property
    def access_url(self) -> AttachmentUrl:
        if self.public_url:
            return AttachmentUrl.public(self.public_url)
        if self.signed_url:
            return AttachmentUrl.signed(self.signed_url, self.signed_url_expires_at)
        return AttachmentUrl.unresolved()

    @property
    def display_url(self) -> str | None:
        return self.access_url.url()

    @property
    def formatted_file_size(self) -> str:
        return format_file_size(self.file_size)

    @property
    def file_extension(self) -> str:
        index = self.file_name.rfind(".")
        return self.file_name[index:] if index != -1 else ""

    @property
    def is_image(self) -> bool:
        return self.file_type == FileType.IMAGE

    @property
    def is_document(self) -> bool:
        return self.file_type == FileType.DOCUMENT

    @property
    def is_audio(self) -> bool:
        return self.file_type == FileType.AUDIO

    @property
    def is_video(self) -> bool:
        return self.file_type == FileType.VIDEO

    @property
    def is_archive(self) -> bool:
        return self.file_type == FileType.ARCHIVE

    @property
    def is_uploading(self) -> bool:
        return not self.is_uploaded and self.error_message is None

    @property
    def has_upload_error(self) -> bool:
        return bool(self.error_message)


class UploadSource(BaseModel):
    """A file handed over by the picker: either a local path or in-memory bytes."""

    local_path: Optional[str] = None
    data: Optional[bytes] = None
    display_name: Optional[str] = None
    declared_size: Optional[int] = None
    mime_type: Optional[str] = None

    @model_validator(mode="after")
    def _check_one_source(self) -> "UploadSource":
        if (self.local_path is None) == (self.data is None):
            raise ValueError("exactly one of local_path or data must be set")
        return self

    @property
    def name(self) -> str:
        if self.display_name:
            return self.display_name
        if self.local_path:
            return self.local_path.replace("\\", "/").rsplit("/", 1)[-1]
        return "file"


class ValidationResult(BaseModel):
    is_valid: bool
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None

    @classmethod
    def success(cls, *, mime_type: str, size_bytes: int) -> "ValidationResult":
        return cls(is_valid=True, mime_type=mime_type, size_bytes=size_bytes)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **fields: Any) -> "ValidationResult":
        return cls(is_valid=False, error_kind=kind, error_message=message, **fields)


class UploadReceipt(BaseModel):
    bucket: str
    storage_path: str
    public_url: Optional[str] = None


class FileUploadResult(BaseModel):
    success: bool
    attachment: Optional[FileAttachment] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None

    @classmethod
    def ok(cls, attachment: FileAttachment, duration_seconds: float | None = None) -> "FileUploadResult":
        return cls(success=True, attachment=attachment, duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str, attachment: FileAttachment | None = None) -> "FileUploadResult":
        return cls(success=False, error_kind=kind, error_message=message, attachment=attachment)


class FileDownloadResult(BaseModel):
    success: bool
    local_path: Optional[str] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None
    file_size: Optional[int] = None

    @classmethod
    def ok(cls, local_path: str, *, file_size: int, duration_seconds: float | None = None) -> "FileDownloadResult":
        return cls(success=True, local_path=local_path, file_size=file_size, duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, message: str) -> "FileDownloadResult":
        return cls(success=False, error_message=message)


class FailedUpload(BaseModel):
    file_name: str
    reason: str
    error_kind: Optional[ErrorKind] = None

    def describe(self) -> str:
        return f"{self.file_name}: {self.reason}"


class BatchUploadResult(CamelModel):
    total_files: int = 0
    successful_uploads: list[FileAttachment] = Field(default_factory=list)
    failed_uploads: list[FailedUpload] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successful_uploads)

    @property
    def failure_count(self) -> int:
        return len(self.failed_uploads)

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total_files if self.total_files > 0 else 0.0

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_uploads)

    @property
    def all_successful(self) -> bool:
        return self.failure_count == 0

    @property
    def warnings(self) -> list[str]:
        return [item.describe() for item in self.failed_uploads]

    def summary(self) -> str:
        return (
            f"total={self.total_files} success={self.success_count} "
            f"failed={self.failure_count} rate={self.success_rate * 100:.1f}%"
        )


class AttachmentOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class AttachmentResult(CamelModel):
    outcome: AttachmentOutcome
    attachments: list[FileAttachment] = Field(default_factory=list)
    warnings: Optional[list[str]] = None
    error_message: Optional[str] = None

    @classmethod
    def success(cls, attachments: list[FileAttachment], warnings: list[str] | None = None) -> "AttachmentResult":
        return cls(outcome=AttachmentOutcome.SUCCESS, attachments=list(attachments), warnings=warnings or None)

    @classmethod
    def failure(cls, message: str) -> "AttachmentResult":
        return cls(outcome=AttachmentOutcome.FAILURE, error_message=message)

    @classmethod
    def cancelled(cls) -> "AttachmentResult":
        return cls(outcome=AttachmentOutcome.CANCELLED)

    @property
    def is_success(self) -> bool:
        return self.outcome == AttachmentOutcome.SUCCESS

    @property
    def is_cancelled(self) -> bool:
        return self.outcome == AttachmentOutcome.CANCELLED

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class FilePickResult(BaseModel):
    """What the file-picker collaborator reports for one interaction."""

    cancelled: bool = False
    success: bool = True
    files: list[UploadSource] = Field(default_factory=list)
    error_message: Optional[str] = None

    @classmethod
    def picked(cls, files: list[UploadSource]) -> "FilePickResult":
        return cls(files=list(files))

    @classmethod
    def user_cancelled(cls) -> "FilePickResult":
        return cls(cancelled=True, success=False)


class StorageUsageResponse(CamelModel):
    total_size: int = 0
    formatted_size: str = "0 B"
    attachment_count: int = 0
    avatar_count: int = 0
    total_files: int = 0
    error: Optional[str] = None


class AttachmentUrlResponse(CamelModel):
    url: Optional[str] = None
    kind: UrlKind = UrlKind.UNRESOLVED
    expires_at: Optional[datetime] = None


class DeleteAttachmentsResponse(BaseModel):
    results: dict[str, bool]


class ValidationResponse(CamelModel):
    is_valid: bool
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    file_type: Optional[FileType] = None


class CleanupResponse(BaseModel):
    checked: int = 0
    deleted: int = 0
    failed: int = 0
