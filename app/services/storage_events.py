from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("app.storage")

_MAX_REASON_LENGTH = 400


def _safe_details(details: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(details, dict):
        return {}
    safe: dict[str, Any] = {}
    for key, value in details.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            safe[str(key)] = value
        else:
            safe[str(key)] = str(value)
    return safe


def record_storage_event(
    action: str,
    *,
    ok: bool,
    reason: str | None = None,
    bucket: str | None = None,
    object_key: str | None = None,
    owner_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    # Telemetry must never break the flow that reports it.
    try:
        parts = [
            f"action={str(action or '').strip().upper() or 'UNKNOWN'}",
            f"ok={bool(ok)}",
            f"bucket={bucket or '-'}",
            f"key={object_key or '-'}",
            f"owner={owner_id or '-'}",
        ]
        if reason is not None:
            parts.append(f"reason={str(reason)[:_MAX_REASON_LENGTH]!r}")
        for key, value in sorted(_safe_details(details).items()):
            parts.append(f"{key}={value}")
        line = "STORAGE_EVENT " + " ".join(parts)
        if ok:
            logger.info(line)
        else:
            logger.warning(line)
    except Exception:
        logger.exception("Failed to record storage event action=%s", action)
