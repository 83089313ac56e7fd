from __future__ import annotations

import logging
import os
import time

from app.core.config import settings
from app.services.storage_events import record_storage_event

logger = logging.getLogger("app.maintenance")


def sweep(max_age_hours: float | None = None, temp_dir: str | None = None, now: float | None = None) -> dict:
    """Delete temp files whose mtime is older than ``max_age_hours``.

    Best effort: errors are logged and counted, never raised. No locking; temp
    writers avoid collisions through timestamp-qualified names only.
    """
    hours = float(settings.TEMP_FILE_MAX_AGE_HOURS if max_age_hours is None else max_age_hours)
    directory = temp_dir or settings.temp_dir
    cutoff = (time.time() if now is None else float(now)) - hours * 3600.0
    checked = 0
    deleted = 0
    failed = 0
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    checked += 1
                    if entry.stat(follow_symlinks=False).st_mtime >= cutoff:
                        continue
                    os.remove(entry.path)
                    deleted += 1
                except OSError as exc:
                    failed += 1
                    record_storage_event("TEMP_DELETE", ok=False, reason=str(exc), object_key=entry.path)
    except FileNotFoundError:
        return {"checked": 0, "deleted": 0, "failed": 0}
    except OSError as exc:
        record_storage_event("TEMP_SWEEP", ok=False, reason=str(exc), details={"temp_dir": directory})

    logger.info(
        "Temp sweep finished dir=%s max_age_hours=%s checked=%s deleted=%s failed=%s",
        directory,
        hours,
        checked,
        deleted,
        failed,
    )
    return {"checked": checked, "deleted": deleted, "failed": failed}
