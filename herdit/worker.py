import asyncio

from celery import Celery
from celery.schedules import crontab

from herdit.core.config import settings

celery_app = Celery("herdit", broker=settings.redis_url, backend=settings.redis_url)

celery_app.conf.beat_schedule = {
    "cleanup-expired-files": {
        "task": "herdit.tasks.cleanup_expired_files",
        "schedule": crontab(minute=0),  # Hourly
    },
}


def _run_async(coro):
    """Helper to run async code inside sync Celery tasks."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="herdit.tasks.health")
def health_task() -> str:
    return "worker-ok"


@celery_app.task(name="herdit.tasks.cleanup_expired_files")
def task_cleanup_expired_files(force: bool = False) -> dict:
    """Purge expired download tokens and stale temporary uploads."""

    async def _do():
        from herdit.core.database import AsyncSessionLocal
        from herdit.services import file_service

        async with AsyncSessionLocal() as db:
            counts = await file_service.run_cleanup(db, file_service.get_blob_store(), force=force)
            await db.commit()
            return counts

    return _run_async(_do())
