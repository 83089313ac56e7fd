from celery import Celery
from app.core.config import settings

celery_app = Celery("chat_attachments", broker=settings.REDIS_URL, backend=settings.REDIS_URL)
celery_app.conf.include = ["app.workers.tasks.maintenance"]

celery_app.conf.beat_schedule = {
    "cleanup_temp_files": {
        "task": "app.workers.tasks.maintenance.cleanup_temp_files",
        "schedule": float(settings.TEMP_CLEANUP_INTERVAL_SECONDS),
    },
}
celery_app.conf.timezone = "UTC"
