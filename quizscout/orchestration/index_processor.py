"""
Index job: enumerate a source's venues and fan out detail jobs.

Example:
    >>> processor = IndexProcessor()
    >>> result = await processor.run(session, "quizmeisters", enqueue=enqueue_payload)
    >>> result.enqueued_jobs
    212
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from quizscout.config import settings
from quizscout.models.base import utcnow
from quizscout.orchestration.job_tracker import create_job, finish_job
from quizscout.scrapers.base import BaseSourceScraper
from quizscout.scrapers.exceptions import ScraperError, log_scraper_error
from quizscout.scrapers.records import VenueCandidate
from quizscout.scrapers.registry import ensure_source_row, get_source
from quizscout.services.event_store import last_seen_lookup
from quizscout.utils.rate_limiter import filter_candidates, pick_delays

logger = logging.getLogger(__name__)

# enqueue(payload, countdown_seconds)
Enqueue = Callable[[Dict[str, Any], int], None]


def detail_payload(
    candidate: VenueCandidate,
    source_name: str,
    source_id: int,
    force_update: bool,
    parent_job_id: Optional[int] = None,
    job_id: Optional[int] = None,
) -> Dict[str, Any]:
    """JSON-serializable arguments of one detail job."""
    return {
        "source": source_name,
        "source_id": source_id,
        "candidate": candidate.model_dump(mode="json"),
        "force_update": force_update,
        "parent_job_id": parent_job_id,
        "job_id": job_id,
    }


@dataclass
class IndexRunResult:
    job_id: int
    source_id: int
    venue_count: int
    enqueued_jobs: int
    skipped_venues: int
    force_update: bool

    def as_metadata(self) -> Dict[str, Any]:
        return {
            "venue_count": self.venue_count,
            "enqueued_jobs": self.enqueued_jobs,
            "skipped_venues": self.skipped_venues,
            "source_id": self.source_id,
            "force_update": self.force_update,
        }


class IndexProcessor:
    """
    Runs one index job for a source.

    Candidates seen within the source's freshness window are skipped unless
    force_update is set. Every surviving candidate gets a queued detail
    ScrapingJob and is handed to enqueue with a staggered countdown.
    """

    def __init__(
        self,
        scraper: Optional[BaseSourceScraper] = None,
        job_delay_interval: Optional[int] = None,
        max_jobs_per_hour: Optional[int] = None,
    ):
        self.scraper = scraper
        self.job_delay_interval = (
            job_delay_interval if job_delay_interval is not None else settings.job_delay_interval
        )
        self.max_jobs_per_hour = max_jobs_per_hour

    async def run(
        self,
        session: Session,
        source_name: str,
        limit: Optional[int] = None,
        force_update: bool = False,
        enqueue: Optional[Enqueue] = None,
        now: Optional[datetime] = None,
        on_job_created: Optional[Callable[[int], None]] = None,
    ) -> IndexRunResult:
        """
        Fetch candidates, filter by freshness and enqueue detail jobs.

        on_job_created receives the index job id once its row is committed.

        Raises:
            ConfigurationError: Unknown source name
            FetchError: The index itself could not be fetched (job marked failed)
        """
        if enqueue is None:
            raise ValueError("enqueue callable is required")

        now = now or utcnow()
        definition = get_source(source_name)
        source = ensure_source_row(session, definition)
        job = create_job(
            session,
            "index",
            definition.name,
            meta={"limit": limit, "force_update": force_update},
        )
        session.commit()
        if on_job_created is not None:
            on_job_created(job.id)

        logger.info(
            f"Index job {job.id} for {definition.name} started "
            f"(limit={limit}, force_update={force_update})"
        )

        scraper = self.scraper or definition.create_scraper()
        try:
            async with scraper:
                candidates = await scraper.fetch_candidates(limit)
        except ScraperError as e:
            log_scraper_error(logger, e)
            finish_job(session, job, "failed", error_message=str(e))
            session.commit()
            raise

        last_seen = last_seen_lookup(session, source.id, [c.identity for c in candidates])
        to_process, skipped = filter_candidates(
            candidates, last_seen, now, definition.freshness_window(), force=force_update
        )

        detail_jobs = [
            create_job(
                session,
                "detail",
                definition.name,
                status="queued",
                parent_job_id=job.id,
                venue_identity=candidate.identity,
                meta={"force_update": force_update},
            )
            for candidate in to_process
        ]
        # Rows must be visible to workers before the jobs are enqueued
        session.commit()

        delays = pick_delays(len(to_process), self.job_delay_interval, self.max_jobs_per_hour)
        for candidate, detail_job, countdown in zip(to_process, detail_jobs, delays):
            enqueue(
                detail_payload(
                    candidate,
                    definition.name,
                    source.id,
                    force_update,
                    parent_job_id=job.id,
                    job_id=detail_job.id,
                ),
                countdown,
            )

        result = IndexRunResult(
            job_id=job.id,
            source_id=source.id,
            venue_count=len(candidates),
            enqueued_jobs=len(to_process),
            skipped_venues=len(skipped),
            force_update=force_update,
        )
        finish_job(
            session, job, "completed", items_scraped=len(to_process), meta=result.as_metadata()
        )
        session.commit()

        logger.info(
            f"Index job {job.id} for {definition.name}: {result.venue_count} venues, "
            f"{result.enqueued_jobs} enqueued, {result.skipped_venues} skipped"
        )
        return result
