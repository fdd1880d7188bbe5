"""
Persistence services: entity and event upserts, duplicate report, geocoding.
"""

from quizscout.services.entity_store import (
    VenueUpsertResult,
    upsert_city,
    upsert_country,
    upsert_performer,
    upsert_venue,
)
from quizscout.services.event_store import (
    EventUpsertResult,
    last_seen_lookup,
    materially_different,
    upsert_event,
)

__all__ = [
    "EventUpsertResult",
    "VenueUpsertResult",
    "last_seen_lookup",
    "materially_different",
    "upsert_city",
    "upsert_country",
    "upsert_event",
    "upsert_performer",
    "upsert_venue",
]
