from __future__ import annotations

import hashlib


def content_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
