"""
Celery application configuration for distributed task queue.
"""

import logging
import signal
from typing import Any, Dict

from celery import Celery, Task
from celery.schedules import crontab
from celery.signals import setup_logging

from quizscout.config import settings
from quizscout.scrapers.registry import list_sources

logger = logging.getLogger(__name__)


# ============================================================================
# Cleanup Utilities
# ============================================================================


def cleanup_scraping_job(job_id: int, error_message: str = "Task interrupted by shutdown signal") -> None:
    """
    Mark a scraping job as interrupted in the database.

    Called when a worker shuts down mid-task so the job is not left in
    'running' state.

    Args:
        job_id: ID of the scraping job to clean up
        error_message: Optional error message to store with the job
    """
    from quizscout.database import session_scope
    from quizscout.models.base import utcnow
    from quizscout.models.scraping_job import ScrapingJob

    try:
        with session_scope() as db:
            job = db.get(ScrapingJob, job_id)
            if job and job.status == "running":
                job.status = "interrupted"
                job.error_message = error_message
                job.completed_at = utcnow()
                logger.info(f"Marked scraping job {job_id} as interrupted")
    except Exception as e:
        logger.error(f"Error cleaning up scraping job {job_id}: {e}", exc_info=True)


# ============================================================================
# Graceful Task Base Class
# ============================================================================


class GracefulTask(Task):
    """
    Custom Celery Task class that handles graceful shutdown.

    Tasks that track a ScrapingJob call track_job(job_id); on SIGTERM that
    job is marked interrupted before the worker exits.

    Usage:
        @celery_app.task(base=GracefulTask, bind=True)
        def my_task(self):
            ...
    """

    _original_sigterm_handler = None
    current_job_id = None

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        def signal_handler(signum: int, frame: Any) -> None:
            """Handle SIGTERM signal gracefully."""
            logger.warning(
                f"Task {self.request.id} ({self.name}) received shutdown signal (SIGTERM). "
                f"Attempting graceful shutdown..."
            )
            self.on_shutdown()
            raise SystemExit("Task terminated by SIGTERM signal")

        self._original_sigterm_handler = signal.signal(signal.SIGTERM, signal_handler)
        self.current_job_id = None

        try:
            return super().__call__(*args, **kwargs)
        finally:
            if self._original_sigterm_handler is not None:
                signal.signal(signal.SIGTERM, self._original_sigterm_handler)

    def on_shutdown(self) -> None:
        if self.current_job_id is not None:
            cleanup_scraping_job(self.current_job_id)

    def track_job(self, job_id: int) -> None:
        """Remember the ScrapingJob to mark interrupted on SIGTERM."""
        self.current_job_id = job_id


# ============================================================================
# Schedule
# ============================================================================


def build_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """One index entry per registered source plus the maintenance jobs."""
    schedule: Dict[str, Dict[str, Any]] = {}

    for definition in list_sources():
        minute, hour, day_of_week = definition.index_schedule
        schedule[f"index-{definition.slug}"] = {
            "task": "quizscout.tasks.scraping_tasks.run_index_job",
            "schedule": crontab(minute=minute, hour=hour, day_of_week=day_of_week),
            "kwargs": {"source_name": definition.name},
            "options": {"queue": "scrapers"},
        }

    # Weekly duplicate-asset cleanup, Sundays at 4 AM UTC
    schedule["weekly-asset-cleanup"] = {
        "task": "quizscout.tasks.maintenance_tasks.cleanup_duplicate_assets_task",
        "schedule": crontab(hour=4, minute=0, day_of_week=0),
        "options": {"queue": "maintenance"},
    }
    # Daily fuzzy duplicate report at 5 AM UTC
    schedule["daily-duplicate-report"] = {
        "task": "quizscout.tasks.maintenance_tasks.report_fuzzy_duplicates_task",
        "schedule": crontab(hour=5, minute=0),
        "options": {"queue": "maintenance"},
    }
    return schedule


# Create Celery instance
celery_app = Celery(
    "quizscout",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "quizscout.tasks.scraping_tasks",
        "quizscout.tasks.maintenance_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    result_extended=True,
    # Task execution settings
    task_track_started=True,
    task_time_limit=600,  # 10 minutes hard limit
    task_soft_time_limit=540,
    task_acks_late=True,  # Acknowledge tasks after completion
    task_reject_on_worker_lost=True,
    # Worker settings
    worker_prefetch_multiplier=1,  # Fetch one task at a time
    worker_max_tasks_per_child=1000,
    # Broker settings
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,
    # Beat scheduler settings
    beat_schedule=build_beat_schedule(),
    # Task routing
    task_routes={
        "quizscout.tasks.scraping_tasks.*": {"queue": "scrapers"},
        "quizscout.tasks.maintenance_tasks.*": {"queue": "maintenance"},
    },
    # Task default queue
    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",
)


@setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the application's logging setup instead of Celery's."""
    from quizscout.utils.logging_config import setup_logging_from_settings

    setup_logging_from_settings()


if __name__ == "__main__":
    celery_app.start()
