from __future__ import annotations

from app.services.temp_files import sweep
from app.workers.celery_app import celery_app


@celery_app.task(name="app.workers.tasks.maintenance.cleanup_temp_files")
def cleanup_temp_files(max_age_hours: float | None = None):
    result = sweep(max_age_hours=max_age_hours)
    return {
        "checked_temp_files": int(result["checked"]),
        "deleted_temp_files": int(result["deleted"]),
        "failed_temp_files": int(result["failed"]),
    }
