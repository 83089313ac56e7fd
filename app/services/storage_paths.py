from __future__ import annotations

import os
import re
import time

from app.core.config import settings

MAX_FILE_NAME_LENGTH = 255
FALLBACK_FILE_NAME = "file"

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")
_REPEATED_UNDERSCORES_RE = re.compile(r"_{2,}")


def current_millis() -> int:
    return int(time.time() * 1000)


def split_extension(file_name: str) -> tuple[str, str]:
    """Split at the last dot: ``archive.tar.gz`` -> (``archive.tar``, ``.gz``)."""
    index = file_name.rfind(".")
    if index <= 0:
        return file_name, ""
    return file_name[:index], file_name[index:]


def sanitize_file_name(file_name: str | None) -> str:
    sanitized = _UNSAFE_CHARS_RE.sub("_", str(file_name or ""))
    sanitized = _REPEATED_UNDERSCORES_RE.sub("_", sanitized)
    sanitized = sanitized.strip().strip(".")
    if not sanitized:
        sanitized = FALLBACK_FILE_NAME

    if len(sanitized) > MAX_FILE_NAME_LENGTH:
        _, ext = split_extension(sanitized)
        if len(ext) >= MAX_FILE_NAME_LENGTH:
            ext = ""
        sanitized = sanitized[: MAX_FILE_NAME_LENGTH - len(ext)] + ext
    return sanitized


def generate_unique_file_name(file_name: str | None, now_ms: int | None = None) -> str:
    """``{base}_{timestampMillis}{ext}``.

    Two calls in the same millisecond for the same name produce the same result.
    """
    timestamp = current_millis() if now_ms is None else int(now_ms)
    base, ext = split_extension(sanitize_file_name(file_name))
    suffix = f"_{timestamp}"
    room = MAX_FILE_NAME_LENGTH - len(suffix) - len(ext)
    if room < 1:
        ext = ""
        room = MAX_FILE_NAME_LENGTH - len(suffix)
    return f"{base[:room]}{suffix}{ext}"


def _segment(value: str, field_name: str) -> str:
    raw = str(value or "").strip()
    if not raw or "/" in raw or raw in {".", ".."}:
        raise ValueError(f'Invalid path segment "{field_name}": {value!r}')
    return raw


def attachment_path(
    owner_id: str,
    conversation_id: str,
    message_id: str,
    file_name: str,
    now_ms: int | None = None,
) -> str:
    return "/".join(
        [
            settings.ATTACHMENTS_BUCKET,
            _segment(owner_id, "owner_id"),
            _segment(conversation_id, "conversation_id"),
            _segment(message_id, "message_id"),
            generate_unique_file_name(file_name, now_ms),
        ]
    )


def avatar_path(owner_id: str, file_name: str, now_ms: int | None = None) -> str:
    return "/".join(
        [
            settings.AVATARS_BUCKET,
            _segment(owner_id, "owner_id"),
            generate_unique_file_name(file_name, now_ms),
        ]
    )


def owner_prefix(bucket: str, owner_id: str) -> str:
    return f"{bucket}/{_segment(owner_id, 'owner_id')}/"


def temp_file_path(file_name: str | None, now_ms: int | None = None, temp_dir: str | None = None) -> str:
    timestamp = current_millis() if now_ms is None else int(now_ms)
    directory = temp_dir or settings.temp_dir
    return os.path.join(directory, f"{timestamp}_{sanitize_file_name(file_name)}")
