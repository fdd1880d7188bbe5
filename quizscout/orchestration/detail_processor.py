"""
Detail job: fetch one venue page and reconcile it into the database.

run_detail_job is the error boundary for a single venue. Whatever happens
to one venue is recorded on its ScrapingJob row and never affects the
other venues of the same index run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from quizscout.config import settings
from quizscout.exceptions import AssetError, ConflictError, RelocationError, ValidationError
from quizscout.models.base import utcnow
from quizscout.models.scraping_job import ScrapingJob
from quizscout.orchestration.job_tracker import create_job, finish_job, start_attempt
from quizscout.scrapers.base import BaseSourceScraper
from quizscout.scrapers.exceptions import ExtractionError, FetchError, ScraperError
from quizscout.scrapers.records import VenueCandidate
from quizscout.scrapers.registry import get_source
from quizscout.services.entity_store import upsert_performer, upsert_venue
from quizscout.services.event_store import upsert_event
from quizscout.services.geocoder import apply_geocode
from quizscout.utils.logging_config import job_log_extra

logger = logging.getLogger(__name__)

GALLERY_KEY = "google_place_images"
GALLERY_FETCHED_KEY = "google_place_images_fetched_at"
GALLERY_FILENAME = "google-place.jpg"


@dataclass
class DetailOutcome:
    """What happened to one venue."""

    status: str  # "created", "updated" or "unchanged"
    venue_id: int
    event_id: int
    changed: bool
    venue_created: bool = False
    changed_fields: List[str] = field(default_factory=list)
    image_errors: List[str] = field(default_factory=list)
    # (old_slug, new_slug) when the venue's assets were moved this run
    relocation: Optional[Tuple[str, str]] = None

    def as_metadata(self) -> Dict[str, Any]:
        return {
            "result_status": self.status,
            "venue_id": self.venue_id,
            "event_id": self.event_id,
            "changed": self.changed,
            "changed_fields": self.changed_fields,
            "image_errors": self.image_errors,
        }


@dataclass
class DetailJobResult:
    job_id: int
    status: str  # completed, retryable_failure, discarded
    attempt: int
    outcome: Optional[DetailOutcome] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


class DetailProcessor:
    """
    Fetch -> extract -> venue -> images -> performer -> event.

    Image failures are logged and leave the previous image reference in
    place; they never fail the venue.
    """

    def __init__(
        self,
        asset_store=None,
        geocoder=None,
        scraper: Optional[BaseSourceScraper] = None,
    ):
        self.asset_store = asset_store
        self.geocoder = geocoder
        self.scraper = scraper

    async def close(self) -> None:
        """Release the HTTP clients of the asset store and geocoder."""
        if self.asset_store is not None:
            await self.asset_store.close()
        if self.geocoder is not None:
            await self.geocoder.close()

    async def process(
        self,
        session: Session,
        source_name: str,
        candidate: VenueCandidate,
        source_id: int,
        force_update: bool = False,
        now: Optional[datetime] = None,
    ) -> DetailOutcome:
        """
        The venue upsert may move the venue's assets to a new slug before
        anything is committed. When a later step raises, the assets are
        moved back before the exception propagates; after a successful
        return the caller owns outcome.relocation until it commits.

        Raises:
            FetchError: Detail page could not be fetched (retryable)
            ExtractionError: Required field missing from the page
            ValidationError: Extracted value out of range
            RelocationError: Venue rename could not move its assets
        """
        now = now or utcnow()
        scraper = self.scraper or get_source(source_name).create_scraper()
        async with scraper:
            response = await scraper.fetch_detail(candidate)
        record = scraper.extract(response.body, candidate)

        raw_venue = record.venue
        if self.geocoder is not None and (raw_venue.place_id is None or raw_venue.latitude is None):
            raw_venue = apply_geocode(raw_venue, await self.geocoder.lookup(raw_venue.address))

        venue_result = upsert_venue(
            session,
            raw_venue,
            force_update=force_update,
            asset_store=self.asset_store,
            metadata={f"{source_name}_url": record.source_url},
        )
        try:
            return await self._reconcile(
                session, record, venue_result, source_id, force_update, now
            )
        except BaseException:
            self.restore_assets(venue_result.relocation)
            raise

    async def _reconcile(self, session, record, venue_result, source_id, force_update, now):
        venue = venue_result.venue
        image_errors: List[str] = []

        hero_image = None
        if record.event.hero_image_url:
            hero_image = await self._store_image(
                "venues", venue.slug, record.event.hero_image_url, force_update, image_errors
            )

        gallery_changed = False
        if (
            self.geocoder is not None
            and self.asset_store is not None
            and venue.place_id
            and (force_update or gallery_due(venue, now, settings.google_place_refresh_days))
        ):
            gallery_changed = await self._store_gallery(venue, force_update, now, image_errors)

        performer_id = None
        if record.performer is not None:
            performer = upsert_performer(
                session, record.performer.name, source_id, record.performer.profile_image_url
            )
            performer_id = performer.id
            if record.performer.profile_image_url:
                profile_image = await self._store_image(
                    "performers",
                    performer.asset_slug,
                    record.performer.profile_image_url,
                    force_update,
                    image_errors,
                )
                if profile_image:
                    performer.profile_image = profile_image

        event_result = upsert_event(
            session,
            venue,
            record.event,
            source_id,
            record.source_url,
            now=now,
            hero_image=hero_image,
            performer_id=performer_id,
            source_fields={**record.source_fields, "on_break": record.on_break},
        )
        session.flush()

        changed_fields = venue_result.updated_fields + event_result.changed_fields
        if gallery_changed:
            changed_fields.append(GALLERY_KEY)

        if event_result.created or venue_result.created:
            status = "created"
        elif changed_fields:
            status = "updated"
        else:
            status = "unchanged"

        return DetailOutcome(
            status=status,
            venue_id=venue.id,
            event_id=event_result.event.id,
            changed=status != "unchanged",
            venue_created=venue_result.created,
            changed_fields=changed_fields,
            image_errors=image_errors,
            relocation=venue_result.relocation,
        )

    def restore_assets(self, relocation: Optional[Tuple[str, str]]) -> None:
        """Move relocated venue assets back to the slug the database still holds."""
        if relocation is None or self.asset_store is None:
            return
        old_slug, new_slug = relocation
        try:
            self.asset_store.relocate("venues", new_slug, old_slug)
        except RelocationError as e:
            logger.error(f"Assets of venue {old_slug} left under {new_slug}: {e}")

    async def _store_image(
        self,
        owner_kind: str,
        owner_slug: str,
        url: str,
        force_update: bool,
        image_errors: List[str],
    ) -> Optional[str]:
        if self.asset_store is None:
            return None
        try:
            reference = await self.asset_store.store_image(
                owner_kind, owner_slug, url, force_update=force_update
            )
        except AssetError as e:
            logger.warning(f"Image for {owner_kind}/{owner_slug} not stored: {e}")
            image_errors.append(f"{url}: {e}")
            return None
        return reference.filename

    async def _store_gallery(
        self, venue, force_update: bool, now: datetime, image_errors: List[str]
    ) -> bool:
        """
        Store the venue's Google Place photos as gallery positions 1..N.

        A position whose photo reference is unchanged reuses its stored
        files; a new reference replaces them. Positions beyond the current
        photo count are deleted. When the Place Details request fails the
        gallery and its fetch time are left alone so the next run retries.

        Returns:
            True when the recorded gallery changed
        """
        photos = await self.geocoder.place_photos(venue.place_id, settings.google_place_max_images)
        if photos is None:
            return False

        meta = dict(venue.meta or {})
        recorded = list(meta.get(GALLERY_KEY) or [])
        previous = {entry["position"]: entry for entry in recorded}
        gallery = []

        for position, photo in enumerate(photos, start=1):
            known = previous.get(position)
            replaced = known is not None and known.get("google_ref") != photo.reference
            filename = known["filename"] if known is not None and not replaced else GALLERY_FILENAME
            try:
                reference = await self.asset_store.store_image(
                    "venues",
                    venue.slug,
                    photo.url,
                    position=position,
                    force_update=force_update or replaced,
                    filename=filename,
                )
            except AssetError as e:
                # The photo URL carries the API key; record the error kind only
                logger.warning(
                    f"Place photo {position} for venues/{venue.slug} not stored: {type(e).__name__}"
                )
                image_errors.append(f"google place photo {position}: {type(e).__name__}")
                if known is not None:
                    gallery.append(known)
                continue

            if known is not None and known.get("filename") != reference.filename:
                self.asset_store.delete_asset("venues", venue.slug, known["filename"], position)
            if known is not None and not replaced and known.get("filename") == reference.filename:
                gallery.append(known)
            else:
                gallery.append(
                    {
                        "position": position,
                        "filename": reference.filename,
                        "google_ref": photo.reference,
                        "fetched_at": now.isoformat(),
                    }
                )

        for position, entry in previous.items():
            if position > len(photos):
                self.asset_store.delete_asset("venues", venue.slug, entry["filename"], position)

        meta[GALLERY_KEY] = gallery
        meta[GALLERY_FETCHED_KEY] = now.isoformat()
        venue.meta = meta
        if gallery != recorded:
            logger.info(f"Venue {venue.slug} gallery now has {len(gallery)} photos")
            return True
        return False


def gallery_due(venue, now: datetime, refresh_days: int) -> bool:
    """Whether the venue's gallery was never fetched or is older than refresh_days."""
    fetched_at = (venue.meta or {}).get(GALLERY_FETCHED_KEY)
    if not fetched_at:
        return True
    return now - datetime.fromisoformat(fetched_at) >= timedelta(days=refresh_days)


def _load_job(session: Session, payload: Dict[str, Any], candidate: VenueCandidate) -> ScrapingJob:
    job = session.get(ScrapingJob, payload["job_id"]) if payload.get("job_id") else None
    if job is None:
        job = create_job(
            session,
            "detail",
            payload["source"],
            status="queued",
            parent_job_id=payload.get("parent_job_id"),
            venue_identity=candidate.identity,
            meta={"force_update": payload.get("force_update", False)},
        )
    return job


async def run_detail_job(
    session: Session,
    payload: Dict[str, Any],
    attempt: int = 1,
    max_attempts: Optional[int] = None,
    processor: Optional[DetailProcessor] = None,
    now: Optional[datetime] = None,
) -> DetailJobResult:
    """
    Run one detail job attempt and record its outcome.

    FetchError (and retryable asset errors such as a lock timeout) mark
    the job retryable_failure and are re-raised while attempt < max_attempts;
    the last attempt is discarded instead. Extraction, validation and
    relocation errors discard the venue immediately.

    Raises:
        FetchError, AssetError: When the job should be retried
    """
    max_attempts = max_attempts or settings.detail_max_attempts
    processor = processor or DetailProcessor()
    candidate = VenueCandidate.model_validate(payload["candidate"])
    source_name = payload["source"]
    force_update = bool(payload.get("force_update", False))

    job = _load_job(session, payload, candidate)
    start_attempt(session, job, attempt)
    session.commit()
    job_id = job.id

    try:
        outcome = await processor.process(
            session,
            source_name,
            candidate,
            payload["source_id"],
            force_update=force_update,
            now=now,
        )
    except (FetchError, AssetError) as e:
        session.rollback()
        error_kind = type(e).__name__
        retryable = isinstance(e, FetchError) or e.recoverable
        if not retryable:
            return _discard(session, job_id, attempt, source_name, candidate, e)

        if attempt < max_attempts:
            _record_failure(session, job_id, "retryable_failure", attempt, error_kind, str(e))
            logger.warning(
                f"Detail job {job_id} attempt {attempt}/{max_attempts} failed, will retry: {e}",
                extra=job_log_extra(source_name, candidate.identity, error_kind, str(e)),
            )
            raise
        return _discard(session, job_id, attempt, source_name, candidate, e)
    except (ExtractionError, ValidationError, ConflictError, ScraperError) as e:
        session.rollback()
        return _discard(session, job_id, attempt, source_name, candidate, e)
    except Exception as e:
        session.rollback()
        _record_failure(session, job_id, "failed", attempt, type(e).__name__, str(e))
        logger.error(
            f"Detail job {job_id} crashed: {e}",
            exc_info=True,
            extra=job_log_extra(source_name, candidate.identity, type(e).__name__, str(e)),
        )
        raise

    try:
        job = session.get(ScrapingJob, job_id)
        finish_job(
            session,
            job,
            "completed",
            items_scraped=1,
            meta={**outcome.as_metadata(), "processed_at": utcnow().isoformat()},
        )
        session.commit()
    except Exception as e:
        session.rollback()
        processor.restore_assets(outcome.relocation)
        _record_failure(session, job_id, "failed", attempt, type(e).__name__, str(e))
        logger.error(
            f"Detail job {job_id} could not be committed: {e}",
            exc_info=True,
            extra=job_log_extra(source_name, candidate.identity, type(e).__name__, str(e)),
        )
        raise
    logger.info(
        f"Detail job {job_id} completed: {outcome.status}",
        extra=job_log_extra(source_name, candidate.identity, None, outcome.status),
    )
    return DetailJobResult(job_id=job_id, status="completed", attempt=attempt, outcome=outcome)


def _record_failure(
    session: Session, job_id: int, status: str, attempt: int, error_kind: str, detail: str
) -> None:
    job = session.get(ScrapingJob, job_id)
    finish_job(
        session,
        job,
        status,
        meta={"error_kind": error_kind, "attempt": attempt},
        error_message=detail,
    )
    session.commit()


def _discard(
    session: Session,
    job_id: int,
    attempt: int,
    source_name: str,
    candidate: VenueCandidate,
    error: Exception,
) -> DetailJobResult:
    error_kind = type(error).__name__
    detail = str(error)
    _record_failure(session, job_id, "discarded", attempt, error_kind, detail)
    logger.warning(
        f"Detail job {job_id} discarded ({candidate.url}): {detail}",
        extra=job_log_extra(source_name, candidate.identity, error_kind, detail),
    )
    return DetailJobResult(
        job_id=job_id, status="discarded", attempt=attempt, error_kind=error_kind, error=detail
    )
