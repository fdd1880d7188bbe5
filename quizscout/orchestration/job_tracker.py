"""
ScrapingJob bookkeeping for index and detail jobs.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizscout.models.base import utcnow
from quizscout.models.scraping_job import ScrapingJob

logger = logging.getLogger(__name__)

FAILED_STATUSES = ("discarded", "failed", "interrupted")


def create_job(
    session: Session,
    job_type: str,
    source: str,
    status: str = "running",
    parent_job_id: Optional[int] = None,
    venue_identity: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> ScrapingJob:
    """Add a job row and flush it so its id is available."""
    job = ScrapingJob(
        job_type=job_type,
        source=source,
        status=status,
        parent_job_id=parent_job_id,
        venue_identity=venue_identity,
        attempt=1,
        items_scraped=0,
        meta=dict(meta or {}),
        started_at=utcnow(),
    )
    session.add(job)
    session.flush()
    return job


def start_attempt(session: Session, job: ScrapingJob, attempt: int) -> ScrapingJob:
    job.status = "running"
    job.attempt = attempt
    job.started_at = utcnow()
    job.completed_at = None
    job.error_message = None
    session.flush()
    return job


def finish_job(
    session: Session,
    job: ScrapingJob,
    status: str,
    items_scraped: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None,
    error_message: Optional[str] = None,
) -> ScrapingJob:
    """
    Record a job outcome.

    retryable_failure leaves completed_at empty since the job will run again.
    """
    job.status = status
    if items_scraped is not None:
        job.items_scraped = items_scraped
    if meta:
        job.meta = {**(job.meta or {}), **meta}
    job.error_message = error_message
    job.completed_at = None if status == "retryable_failure" else utcnow()
    session.flush()

    logger.info(
        f"{job.job_type} job {job.id} ({job.source}) -> {status}"
        + (f": {error_message}" if error_message else "")
    )
    return job


def summarize_index_run(session: Session, index_job_id: int) -> Dict[str, int]:
    """
    Outcome counts over an index job's detail jobs.

    Returns:
        {total, succeeded, failed_venues, pending}
    """
    rows = session.execute(
        select(ScrapingJob.status, func.count(ScrapingJob.id))
        .where(ScrapingJob.parent_job_id == index_job_id)
        .group_by(ScrapingJob.status)
    ).all()
    counts = {status: count for status, count in rows}

    total = sum(counts.values())
    succeeded = counts.get("completed", 0)
    failed = sum(counts.get(status, 0) for status in FAILED_STATUSES)
    return {
        "total": total,
        "succeeded": succeeded,
        "failed_venues": failed,
        "pending": total - succeeded - failed,
    }
