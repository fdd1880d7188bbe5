"""
Event upserts and the EventSource reconciliation ledger.

An event is only written when it is new or materially different from the
stored row; the EventSource row for (event, source) is refreshed on every
successful crawl so the rate limiter can tell when a venue was last seen.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizscout.exceptions import ValidationError
from quizscout.models.base import utcnow
from quizscout.models.event import FREQUENCIES, Event, EventSource
from quizscout.models.venue import Venue
from quizscout.scrapers.records import RawEvent
from quizscout.utils.time_parser import to_time

logger = logging.getLogger(__name__)

# Fields whose change makes an incoming event "materially different"
COMPARED_FIELDS = (
    "start_time",
    "frequency",
    "entry_fee_cents",
    "description",
    "hero_image_url",
    "hero_image",
)


@dataclass
class EventUpsertResult:
    event: Event
    event_source: EventSource
    created: bool = False
    changed_fields: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.created or bool(self.changed_fields)


def event_values(
    incoming: RawEvent,
    hero_image: Optional[str] = None,
    performer_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Validated column values for an incoming event.

    Optional values that are unknown are left out, so they never blank a
    stored value. The image reference (source URL plus stored filename) is
    only included when the image was stored in this run.

    Raises:
        ValidationError: Day, time, frequency or fee out of range
    """
    if not 1 <= incoming.day_of_week <= 7:
        raise ValidationError("day_of_week", incoming.day_of_week, "must be between 1 and 7")
    if incoming.frequency not in FREQUENCIES:
        raise ValidationError("frequency", incoming.frequency, f"must be one of {FREQUENCIES}")
    if incoming.entry_fee_cents is not None and incoming.entry_fee_cents < 0:
        raise ValidationError("entry_fee_cents", incoming.entry_fee_cents, "must not be negative")

    values: Dict[str, Any] = {
        "name": incoming.name,
        "day_of_week": incoming.day_of_week,
        "start_time": to_time(incoming.start_time),
        "frequency": incoming.frequency,
    }
    if incoming.entry_fee_cents is not None:
        values["entry_fee_cents"] = incoming.entry_fee_cents
    if incoming.description:
        values["description"] = incoming.description
    if incoming.hero_image_url and hero_image:
        values["hero_image_url"] = incoming.hero_image_url
        values["hero_image"] = hero_image
    if performer_id is not None:
        values["performer_id"] = performer_id
    return values


def materially_different(existing: Event, values: Dict[str, Any]) -> List[str]:
    """
    Names of compared fields whose incoming value differs from the stored one.

    Examples:
        A new hero image alone is a change:
        >>> materially_different(event, {"hero_image": "new.jpg", ...})
        ['hero_image']
    """
    return [
        name
        for name in COMPARED_FIELDS
        if name in values and getattr(existing, name) != values[name]
    ]


def find_event(
    session: Session,
    venue_id: int,
    day_of_week: int,
    frequency: str,
    source_url: str,
) -> Optional[Event]:
    """
    Recurring events are keyed by (venue, day); irregular events by the
    source URL recorded in their EventSource rows.
    """
    if frequency != "irregular":
        return session.scalar(
            select(Event).where(
                Event.venue_id == venue_id,
                Event.day_of_week == day_of_week,
                Event.frequency != "irregular",
            )
        )

    return session.scalars(
        select(Event)
        .join(EventSource, EventSource.event_id == Event.id)
        .where(
            Event.venue_id == venue_id,
            Event.frequency == "irregular",
            EventSource.source_url == source_url,
        )
        .order_by(Event.id)
    ).first()


def upsert_event(
    session: Session,
    venue: Venue,
    incoming: RawEvent,
    source_id: int,
    source_url: str,
    now: Optional[datetime] = None,
    hero_image: Optional[str] = None,
    performer_id: Optional[int] = None,
    source_fields: Optional[Dict[str, Any]] = None,
) -> EventUpsertResult:
    """
    Create, update or leave an event, then record the sighting.

    Args:
        session: Synchronous database session
        venue: Owning venue (already flushed)
        incoming: Extracted event fields
        source_id: Source row id
        source_url: Detail page the event was read from
        now: Sighting time, defaults to the current UTC time
        hero_image: Stored hero image filename from this run, if any
        performer_id: Host to attach
        source_fields: Source-specific values merged into the ledger metadata

    Raises:
        ValidationError: Invalid day, time, frequency or fee
    """
    now = now or utcnow()
    values = event_values(incoming, hero_image, performer_id)

    event = find_event(session, venue.id, incoming.day_of_week, incoming.frequency, source_url)
    created = False
    changed_fields: List[str] = []

    if event is None:
        try:
            with session.begin_nested():
                event = Event(venue_id=venue.id, **values)
                session.add(event)
            created = True
            logger.info(
                f"Created event {event.id} at venue {venue.slug} "
                f"(day={event.day_of_week}, {event.start_time:%H:%M}, {event.frequency})"
            )
        except IntegrityError:
            logger.debug(f"Event for venue {venue.id} day {incoming.day_of_week} created concurrently")
            event = find_event(
                session, venue.id, incoming.day_of_week, incoming.frequency, source_url
            )
            if event is None:
                raise

    if not created:
        changed_fields = materially_different(event, values)
        if changed_fields:
            for name in changed_fields:
                setattr(event, name, values[name])
            logger.info(f"Updated event {event.id}: {', '.join(changed_fields)}")
        if performer_id is not None and event.performer_id != performer_id:
            event.performer_id = performer_id
        if values["name"] != event.name and changed_fields:
            event.name = values["name"]

    event_source = upsert_event_source(session, event, source_id, source_url, now, source_fields)
    return EventUpsertResult(
        event=event, event_source=event_source, created=created, changed_fields=changed_fields
    )


def upsert_event_source(
    session: Session,
    event: Event,
    source_id: int,
    source_url: str,
    now: datetime,
    source_fields: Optional[Dict[str, Any]] = None,
) -> EventSource:
    """Refresh or create the (event, source) ledger row."""
    source_fields = source_fields or {}

    row = _find_event_source(session, event.id, source_id)
    if row is None:
        try:
            with session.begin_nested():
                row = EventSource(
                    event_id=event.id,
                    source_id=source_id,
                    source_url=source_url,
                    last_seen_at=now,
                    status="active",
                    meta=dict(source_fields),
                )
                session.add(row)
            return row
        except IntegrityError:
            row = _find_event_source(session, event.id, source_id)
            if row is None:
                raise

    row.last_seen_at = now
    row.source_url = source_url
    row.status = "active"
    merged = {**(row.meta or {}), **source_fields}
    if merged != row.meta:
        row.meta = merged
    session.flush()
    return row


def _find_event_source(session: Session, event_id: int, source_id: int) -> Optional[EventSource]:
    return session.scalar(
        select(EventSource).where(
            EventSource.event_id == event_id, EventSource.source_id == source_id
        )
    )


def last_seen_lookup(session: Session, source_id: int, urls: Iterable[str]) -> Dict[str, datetime]:
    """
    Most recent last_seen_at per source URL.

    A venue page carrying several events reports the newest sighting.
    URLs never seen are absent from the result.
    """
    urls = list(urls)
    if not urls:
        return {}

    rows = session.execute(
        select(EventSource.source_url, func.max(EventSource.last_seen_at))
        .where(EventSource.source_id == source_id, EventSource.source_url.in_(urls))
        .group_by(EventSource.source_url)
    ).all()
    return {url: seen for url, seen in rows if seen is not None}
