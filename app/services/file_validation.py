from __future__ import annotations

import os

from app.schemas.attachments import UploadSource, ValidationResult
from app.services.attachment_errors import ErrorKind
from app.services.storage_paths import split_extension
from app.services.storage_policy import (
    DEFAULT_MIME_TYPE,
    ERROR_EMPTY_FILE,
    ERROR_FILE_NOT_FOUND,
    ERROR_FILE_TOO_LARGE,
    ERROR_INVALID_FILE_TYPE,
    is_allowed_mime_type,
    max_size_bytes,
)

SNIFF_BYTES = 12

MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpe": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".heic": "image/heic",
    ".ico": "image/vnd.microsoft.icon",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
    ".js": "text/javascript",
    ".css": "text/css",
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".rtf": "application/rtf",
    ".json": "application/json",
    ".xml": "application/xml",
    ".yaml": "application/x-yaml",
    ".yml": "application/x-yaml",
    ".zip": "application/zip",
    ".7z": "application/x-7z-compressed",
    ".rar": "application/vnd.rar",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".weba": "audio/webm",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".qt": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".exe": "application/x-msdownload",
    ".dll": "application/x-msdownload",
    ".apk": "application/vnd.android.package-archive",
    ".bin": "application/octet-stream",
}


def mime_type_from_name(file_name: str | None) -> str | None:
    _, ext = split_extension(str(file_name or "").strip())
    return MIME_BY_EXTENSION.get(ext.lower()) if ext else None


def sniff_mime_type(head: bytes | None) -> str | None:
    data = bytes(head or b"")
    if len(data) >= 4:
        if data.startswith(b"\x89PNG"):
            return "image/png"
        if data.startswith(b"\xFF\xD8"):
            return "image/jpeg"
        if data.startswith(b"GIF"):
            return "image/gif"
        if data.startswith(b"%PDF"):
            return "application/pdf"
        if data.startswith(b"PK"):
            return "application/zip"
    if len(data) >= 12 and data[0:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def detect_mime_type(file_name: str | None, head: bytes | None = None) -> str:
    """Name lookup first, then magic bytes, then the generic binary type."""
    return mime_type_from_name(file_name) or sniff_mime_type(head) or DEFAULT_MIME_TYPE


def _read_head(path: str, size: int = SNIFF_BYTES) -> bytes:
    with open(path, "rb") as handle:
        return handle.read(size)


def _is_readable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.R_OK)


def resolve_source_mime_type(source: UploadSource) -> str:
    declared = str(source.mime_type or "").split(";", 1)[0].strip().lower()
    if declared:
        return declared
    by_name = mime_type_from_name(source.name)
    if by_name is None and source.local_path and source.display_name:
        by_name = mime_type_from_name(source.local_path)
    if by_name:
        return by_name
    if source.data is not None:
        head = source.data[:SNIFF_BYTES]
    else:
        head = _read_head(str(source.local_path))
    return sniff_mime_type(head) or DEFAULT_MIME_TYPE


def validate(source: UploadSource, category: str) -> ValidationResult:
    """Check a picked file against the type and size policy of ``category``.

    Local only: reads the file's size and leading bytes, never touches the
    network and never writes anything.
    """
    if source.data is not None:
        size_bytes = len(source.data)
    else:
        path = str(source.local_path)
        if not _is_readable_file(path):
            return ValidationResult.failure(ErrorKind.NOT_FOUND, ERROR_FILE_NOT_FOUND)
        try:
            size_bytes = os.path.getsize(path)
        except OSError:
            return ValidationResult.failure(ErrorKind.NOT_FOUND, ERROR_FILE_NOT_FOUND)

    try:
        mime_type = resolve_source_mime_type(source)
    except OSError:
        return ValidationResult.failure(ErrorKind.NOT_FOUND, ERROR_FILE_NOT_FOUND)

    if not is_allowed_mime_type(mime_type, category):
        return ValidationResult.failure(
            ErrorKind.INVALID_TYPE, ERROR_INVALID_FILE_TYPE, mime_type=mime_type, size_bytes=size_bytes
        )
    if size_bytes <= 0:
        return ValidationResult.failure(ErrorKind.EMPTY, ERROR_EMPTY_FILE, mime_type=mime_type, size_bytes=size_bytes)
    if size_bytes > max_size_bytes(category):
        return ValidationResult.failure(
            ErrorKind.TOO_LARGE, ERROR_FILE_TOO_LARGE, mime_type=mime_type, size_bytes=size_bytes
        )
    return ValidationResult.success(mime_type=mime_type, size_bytes=size_bytes)


def validate_path(local_path: str, category: str) -> ValidationResult:
    return validate(UploadSource(local_path=local_path), category)
