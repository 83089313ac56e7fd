from __future__ import annotations

from enum import Enum

from app.core.config import settings

CATEGORY_ATTACHMENT = "attachment"
CATEGORY_AVATAR = "avatar"
UPLOAD_CATEGORIES = {CATEGORY_ATTACHMENT, CATEGORY_AVATAR}

DEFAULT_MIME_TYPE = "application/octet-stream"


class FileType(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    ARCHIVE = "archive"
    AUDIO = "audio"
    VIDEO = "video"
    OTHER = "other"


ALLOWED_IMAGE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
)

ALLOWED_DOCUMENT_TYPES = (
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/json",
    "application/xml",
)

ALLOWED_ARCHIVE_TYPES = (
    "application/zip",
    "application/x-zip-compressed",
)

ALLOWED_AUDIO_TYPES = (
    "audio/mpeg",
    "audio/wav",
    "audio/ogg",
    "audio/webm",
)

ALLOWED_VIDEO_TYPES = (
    "video/mp4",
    "video/webm",
    "video/quicktime",
)

ALLOWED_AVATAR_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)

_CATEGORY_LISTS: tuple[tuple[FileType, tuple[str, ...]], ...] = (
    (FileType.IMAGE, ALLOWED_IMAGE_TYPES),
    (FileType.DOCUMENT, ALLOWED_DOCUMENT_TYPES),
    (FileType.ARCHIVE, ALLOWED_ARCHIVE_TYPES),
    (FileType.AUDIO, ALLOWED_AUDIO_TYPES),
    (FileType.VIDEO, ALLOWED_VIDEO_TYPES),
)

ALLOWED_ATTACHMENT_TYPES = frozenset(mime for _, values in _CATEGORY_LISTS for mime in values)

ERROR_FILE_TOO_LARGE = "File size exceeds the maximum limit"
ERROR_INVALID_FILE_TYPE = "File type is not supported"
ERROR_EMPTY_FILE = "File is empty"
ERROR_UPLOAD_FAILED = "Failed to upload file"
ERROR_DOWNLOAD_FAILED = "Failed to download file"
ERROR_DELETE_FAILED = "Failed to delete file"
ERROR_FILE_NOT_FOUND = "File not found"
ERROR_UNAUTHENTICATED = "User not authenticated"
ERROR_NO_VALID_FILES = "No valid files selected"
ERROR_PICK_FAILED = "Failed to pick files"
ERROR_INVALID_PATH = "Invalid storage path"


def _normalize_mime(mime_type: str | None) -> str:
    return str(mime_type or "").split(";", 1)[0].strip().lower()


def get_file_type_category(mime_type: str | None) -> FileType:
    normalized = _normalize_mime(mime_type)
    for file_type, values in _CATEGORY_LISTS:
        if normalized in values:
            return file_type
    return FileType.OTHER


def allowed_mime_types(category: str) -> frozenset[str]:
    if category == CATEGORY_AVATAR:
        return frozenset(ALLOWED_AVATAR_TYPES)
    if category == CATEGORY_ATTACHMENT:
        return ALLOWED_ATTACHMENT_TYPES
    raise ValueError(f"Unknown upload category: {category}")


def is_allowed_mime_type(mime_type: str | None, category: str) -> bool:
    return _normalize_mime(mime_type) in allowed_mime_types(category)


def max_size_bytes(category: str) -> int:
    if category == CATEGORY_AVATAR:
        return int(settings.MAX_AVATAR_BYTES)
    if category == CATEGORY_ATTACHMENT:
        return int(settings.MAX_ATTACHMENT_BYTES)
    raise ValueError(f"Unknown upload category: {category}")


def bucket_for_category(category: str) -> str:
    if category == CATEGORY_AVATAR:
        return settings.AVATARS_BUCKET
    if category == CATEGORY_ATTACHMENT:
        return settings.ATTACHMENTS_BUCKET
    raise ValueError(f"Unknown upload category: {category}")


def format_file_size(size_bytes: int) -> str:
    size = int(size_bytes or 0)
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.1f} GB"
