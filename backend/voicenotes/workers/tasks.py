"""Celery task definitions.

The worker enforces trash retention in the background: the beat schedule
runs :func:`sweep_expired_trash` periodically so no transcript stays in the
trash past the retention window, even for users who never open the trash.
"""

import asyncio
import logging

from celery import Celery, Task

from voicenotes.config import settings
from voicenotes.db.database import SessionLocal, create_tables
from voicenotes.logging_config import setup_logging as setup_app_logging
from voicenotes.services.lifecycle import TranscriptLifecycle
from voicenotes.services.local_store import LocalTranscriptStore
from voicenotes.services.remote_store import RemoteTranscriptStore
from voicenotes.services.router import PersistenceRouter

# Ensure app-level logging is configured when a worker starts.
setup_app_logging()
logger = logging.getLogger(__name__)


# --- Celery Application Setup ---
celery_app = Celery(
    "voicenotes",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["voicenotes.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "sweep-expired-trash": {
            "task": "sweep_expired_trash",
            "schedule": settings.TRASH_SWEEP_INTERVAL_SECONDS,
        },
    },
)


class LoggedTask(Task):
    """Base task that logs start, success and failure."""
    abstract = True

    def __call__(self, *args, **kwargs):
        logger.info(f"Task {self.name} [{self.request.id}] called with args: {args}, kwargs: {kwargs}")
        return super().__call__(*args, **kwargs)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}", exc_info=einfo)
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task {self.name} [{task_id}] completed successfully. Result: {retval}")
        super().on_success(retval, task_id, args, kwargs)


def build_sweeper() -> TranscriptLifecycle:
    """Lifecycle service for the sweeper.

    The remote store is included only when a service key is configured,
    because sweeping every owner's rows has to bypass row-level security.
    """
    remote = None
    if settings.remote_enabled and settings.REMOTE_SERVICE_KEY:
        remote = RemoteTranscriptStore.for_service(
            settings.REMOTE_URL,
            settings.REMOTE_SERVICE_KEY,
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        )
    router = PersistenceRouter(LocalTranscriptStore(SessionLocal), remote)
    return TranscriptLifecycle(router)


@celery_app.task(name="sweep_expired_trash", base=LoggedTask)
def sweep_expired_trash() -> dict:
    """Purge every transcript that has been in the trash past retention."""
    create_tables()
    lifecycle = build_sweeper()
    purged = asyncio.run(lifecycle.sweep_expired(all_owners=True))
    logger.info("Trash sweep finished: %d transcript(s) purged", purged)
    return {"purged": purged}
