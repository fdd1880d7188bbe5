"""
Typed records produced by source scrapers.

Every source produces the same closed record types. Optional fields are
explicit, and validation happens once, when the record is built, so
downstream stores never re-check field presence.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quizscout.utils.string_utils import blank_to_none

Frequency = Literal["weekly", "biweekly", "monthly", "irregular"]


class VenueCandidate(BaseModel):
    """
    Venue discovered by an index job, not yet fetched in detail.

    Serialized into detail job payloads with model_dump(mode="json").
    Index-level fields (coordinates, schedule text) are carried along for
    sources whose index already provides them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: str
    url: str = Field(min_length=1)
    name: str = Field(min_length=1)
    address: Optional[str] = None
    postcode: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    time_text: Optional[str] = None

    @property
    def identity(self) -> str:
        """Key used for freshness lookups and job logging."""
        return self.url


class RawVenue(BaseModel):
    """Venue fields as extracted from a source document."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    postcode: Optional[str] = None
    city_name: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    place_id: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None

    @field_validator(
        "postcode", "city_name", "phone", "website", "facebook", "instagram", "place_id",
        mode="before",
    )
    @classmethod
    def blank_is_missing(cls, v: Optional[str]) -> Optional[str]:
        """Empty strings from markup count as absent."""
        return blank_to_none(v) if isinstance(v, str) else v


class RawEvent(BaseModel):
    """Recurring event fields as extracted from a source document."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    day_of_week: int = Field(ge=1, le=7)
    start_time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    frequency: Frequency = "weekly"
    entry_fee_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    hero_image_url: Optional[str] = None
    time_text: Optional[str] = None
    fee_text: Optional[str] = None

    @field_validator("description", "hero_image_url", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Optional[str]) -> Optional[str]:
        return blank_to_none(v) if isinstance(v, str) else v


class RawPerformer(BaseModel):
    """Quiz host named on a venue page."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    profile_image_url: Optional[str] = None


class RawRecord(BaseModel):
    """Complete extraction result for one venue page."""

    model_config = ConfigDict(extra="forbid")

    source: str
    source_url: str
    venue: RawVenue
    event: RawEvent
    performer: Optional[RawPerformer] = None
    on_break: bool = False
    source_fields: Dict[str, Any] = Field(
        default_factory=dict,
        description="Source-specific raw values kept in the EventSource ledger",
    )
