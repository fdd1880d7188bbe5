"""
Index and detail scraping tasks plus their enqueue interface.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from celery.result import AsyncResult

from quizscout.config import settings
from quizscout.database import session_scope
from quizscout.exceptions import AssetError
from quizscout.orchestration.detail_processor import DetailProcessor, run_detail_job
from quizscout.orchestration.index_processor import IndexProcessor, detail_payload
from quizscout.orchestration.job_tracker import create_job
from quizscout.scrapers.exceptions import FetchError
from quizscout.scrapers.records import VenueCandidate
from quizscout.scrapers.registry import get_source
from quizscout.services.geocoder import get_geocoder
from quizscout.storage import get_asset_store
from quizscout.tasks.celery_app import GracefulTask, celery_app
from quizscout.utils.retry import backoff_seconds

logger = logging.getLogger(__name__)


@celery_app.task(name="quizscout.tasks.scraping_tasks.run_index_job", base=GracefulTask, bind=True)
def run_index_job(self, source_name: str, limit: Optional[int] = None, force_update: bool = False):
    """
    Enumerate a source and enqueue one detail job per venue due for processing.

    Scheduled per source by celery beat; see celery_app.build_beat_schedule.
    """
    logger.info(f"Starting index job for {source_name} (limit={limit}, force_update={force_update})")

    processor = IndexProcessor(max_jobs_per_hour=None)
    try:
        with session_scope() as db:
            result = asyncio.run(
                processor.run(
                    db,
                    source_name,
                    limit=limit,
                    force_update=force_update,
                    enqueue=enqueue_detail_payload,
                    on_job_created=self.track_job,
                )
            )
    except Exception as e:
        logger.error(f"Error in index job for {source_name}: {e}", exc_info=True)
        raise

    return {"status": "success", "job_id": result.job_id, "task_id": self.request.id, **result.as_metadata()}


async def _run_detail(db, payload: Dict[str, Any], attempt: int, processor: DetailProcessor):
    try:
        return await run_detail_job(
            db, payload, attempt=attempt, max_attempts=settings.detail_max_attempts, processor=processor
        )
    finally:
        await processor.close()


@celery_app.task(
    name="quizscout.tasks.scraping_tasks.run_detail_job_task",
    base=GracefulTask,
    bind=True,
    max_retries=None,
)
def run_detail_job_task(self, payload: Dict[str, Any]):
    """
    Process one venue.

    Retryable failures are re-queued with exponential backoff until
    settings.detail_max_attempts is reached, after which the job records
    itself as discarded instead of raising.
    """
    attempt = self.request.retries + 1
    self.track_job(payload.get("job_id"))

    processor = DetailProcessor(
        asset_store=get_asset_store(settings),
        geocoder=get_geocoder(settings),
    )
    try:
        with session_scope() as db:
            result = asyncio.run(_run_detail(db, payload, attempt, processor))
    except (FetchError, AssetError) as e:
        countdown = backoff_seconds(attempt, base=settings.detail_backoff_base)
        logger.info(f"Retrying detail job {payload.get('job_id')} in {countdown}s")
        raise self.retry(exc=e, countdown=countdown)

    return {
        "status": result.status,
        "job_id": result.job_id,
        "attempt": result.attempt,
        "error_kind": result.error_kind,
        "task_id": self.request.id,
    }


# ============================================================================
# Enqueue interface
# ============================================================================


def enqueue_detail_payload(payload: Dict[str, Any], countdown: int = 0) -> AsyncResult:
    return run_detail_job_task.apply_async(kwargs={"payload": payload}, countdown=countdown)


def enqueue_index_job(source: str, limit: Optional[int] = None, force_update: bool = False) -> AsyncResult:
    """
    Queue an index run for a registered source.

    Raises:
        ConfigurationError: Unknown source
    """
    definition = get_source(source)
    logger.info(f"Enqueuing index job for {definition.name} (force_update={force_update})")
    return run_index_job.apply_async(
        kwargs={"source_name": definition.name, "limit": limit, "force_update": force_update}
    )


def enqueue_detail_job(
    venue_candidate: VenueCandidate,
    source_id: int,
    force_update: bool = False,
    countdown: int = 0,
    parent_job_id: Optional[int] = None,
) -> AsyncResult:
    """Queue a detail job for a single candidate, outside of an index run."""
    definition = get_source(venue_candidate.source)
    with session_scope() as db:
        job = create_job(
            db,
            "detail",
            definition.name,
            status="queued",
            parent_job_id=parent_job_id,
            venue_identity=venue_candidate.identity,
            meta={"force_update": force_update},
        )
        job_id = job.id

    payload = detail_payload(
        venue_candidate,
        definition.name,
        source_id,
        force_update,
        parent_job_id=parent_job_id,
        job_id=job_id,
    )
    return enqueue_detail_payload(payload, countdown)
