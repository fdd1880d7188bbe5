"""
Event and EventSource models.

Event is the canonical recurring quiz night at a venue. EventSource is the
reconciliation ledger: one row per (event, source) pair whose last_seen_at
is refreshed on every successful crawl.
"""

from datetime import datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quizscout.models.base import Base, JSONType, TimestampMixin

FREQUENCIES = ("weekly", "biweekly", "monthly", "irregular")


class Event(Base, TimestampMixin):
    """
    Recurring quiz event at a venue.

    At most one non-irregular event exists per (venue_id, day_of_week);
    irregular events are identified through their EventSource URL instead.
    """

    __tablename__ = "events"
    __table_args__ = (
        Index(
            "uq_events_venue_day_recurring",
            "venue_id",
            "day_of_week",
            unique=True,
            postgresql_where=text("frequency <> 'irregular'"),
            sqlite_where=text("frequency <> 'irregular'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(
        ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(250), nullable=False)
    day_of_week: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="ISO weekday, 1 = Monday ... 7 = Sunday"
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default="weekly", comment="weekly, biweekly, monthly, irregular"
    )
    entry_fee_cents: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="None when unknown, 0 when free"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Image reference: source URL plus the stored asset filename
    hero_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hero_image: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    performer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("performers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    venue: Mapped["Venue"] = relationship(back_populates="events")  # noqa: F821
    performer: Mapped[Optional["Performer"]] = relationship()  # noqa: F821
    sources: Mapped[List["EventSource"]] = relationship(back_populates="event")

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, venue_id={self.venue_id}, day={self.day_of_week}, "
            f"start='{self.start_time}', frequency='{self.frequency}')>"
        )

    @property
    def is_free(self) -> bool:
        return self.entry_fee_cents == 0


class EventSource(Base, TimestampMixin):
    """Per-source sighting of an event; never hard-deleted."""

    __tablename__ = "event_sources"
    __table_args__ = (
        UniqueConstraint("event_id", "source_id", name="uq_event_sources_event_source"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_id: Mapped[int] = mapped_column(
        ForeignKey("sources.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    source_url: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    meta: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    event: Mapped[Event] = relationship(back_populates="sources")

    def __repr__(self) -> str:
        return (
            f"<EventSource(id={self.id}, event_id={self.event_id}, "
            f"source_id={self.source_id}, last_seen_at={self.last_seen_at})>"
        )
