"""
Idempotent upserts for countries, cities, venues and performers.

Every insert runs inside a SAVEPOINT. When a concurrent worker wins the
unique-constraint race the SAVEPOINT is rolled back, the row is re-read by
its identity and the incoming values are merged into it.

Venue identity, in order: place_id, (name, postcode), slug. Fuzzy
similarity is never used here; see duplicate_detector for the advisory
report.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizscout.exceptions import ConflictError, ValidationError
from quizscout.models.location import City, Country
from quizscout.models.performer import Performer
from quizscout.models.venue import Venue
from quizscout.scrapers.records import RawVenue
from quizscout.utils.string_utils import clean_text, normalize_postcode, slugify

logger = logging.getLogger(__name__)

# Scalar venue fields merged non-destructively
VENUE_MERGE_FIELDS = ("address", "postcode", "phone", "website", "facebook", "instagram")


@dataclass
class VenueUpsertResult:
    venue: Venue
    created: bool = False
    updated_fields: List[str] = field(default_factory=list)
    slug_changed: bool = False
    # (old_slug, new_slug) while the venue's assets sit under new_slug
    relocation: Optional[Tuple[str, str]] = None

    @property
    def changed(self) -> bool:
        return self.created or bool(self.updated_fields)


# ----------------------------------------------------------------------
# Countries and cities
# ----------------------------------------------------------------------


def upsert_country(session: Session, name: str, code: str) -> Country:
    """
    Find a country by ISO code or create it.

    Raises:
        ValidationError: When code is not a two-letter code
    """
    code = clean_text(code).upper()
    if len(code) != 2 or not code.isalpha():
        raise ValidationError("country_code", code, "expected an ISO 3166 alpha-2 code")
    name = clean_text(name) or code

    country = session.scalar(select(Country).where(Country.code == code))
    if country:
        return country

    try:
        with session.begin_nested():
            country = Country(name=name, code=code, slug=slugify(name) or code.lower())
            session.add(country)
        logger.info(f"Created country {code} ({name})")
        return country
    except IntegrityError:
        logger.debug(f"Country {code} created concurrently, re-reading")
        return session.scalars(select(Country).where(Country.code == code)).one()


def _city_slug(session: Session, name: str, country: Country) -> str:
    base = slugify(name)
    holder = session.scalar(select(City).where(City.slug == base))
    if holder is None or holder.country_id == country.id:
        return base
    # Same city name in another country
    return f"{base}-{country.code.lower()}"


def upsert_city(session: Session, name: str, country: Country) -> City:
    """
    Find a city by name within its country, or create it.

    Raises:
        ValidationError: When the name is empty
    """
    name = clean_text(name)
    if not name:
        raise ValidationError("city_name", name, "must not be empty")

    slug = _city_slug(session, name, country)
    city = session.scalar(
        select(City).where(City.slug == slug, City.country_id == country.id)
    )
    if city:
        return city

    try:
        with session.begin_nested():
            city = City(name=name, slug=slug, country_id=country.id)
            session.add(city)
        logger.info(f"Created city {slug}")
        return city
    except IntegrityError:
        logger.debug(f"City {slug} created concurrently, re-reading")
        return session.scalars(select(City).where(City.slug == slug)).one()


# ----------------------------------------------------------------------
# Venues
# ----------------------------------------------------------------------


def _validated_venue_fields(raw: RawVenue) -> Dict[str, Any]:
    """Normalized column values for a raw venue; raises ValidationError."""
    name = clean_text(raw.name)
    if not name:
        raise ValidationError("name", raw.name, "venue name is required")

    if raw.latitude is not None and not -90 <= raw.latitude <= 90:
        raise ValidationError("latitude", raw.latitude, "must be between -90 and 90")
    if raw.longitude is not None and not -180 <= raw.longitude <= 180:
        raise ValidationError("longitude", raw.longitude, "must be between -180 and 180")
    if (raw.latitude is None) != (raw.longitude is None):
        raise ValidationError(
            "coordinates", (raw.latitude, raw.longitude), "latitude and longitude come in pairs"
        )

    return {
        "name": name,
        "address": clean_text(raw.address) or None,
        "postcode": normalize_postcode(raw.postcode),
        "latitude": raw.latitude,
        "longitude": raw.longitude,
        "place_id": raw.place_id,
        "phone": clean_text(raw.phone) or None,
        "website": raw.website,
        "facebook": raw.facebook,
        "instagram": raw.instagram,
    }


def find_venue(
    session: Session,
    place_id: Optional[str],
    name: str,
    postcode: Optional[str],
) -> Optional[Venue]:
    """Resolve a venue by place_id, then (name, postcode), then slug."""
    if place_id:
        venue = session.scalar(select(Venue).where(Venue.place_id == place_id))
        if venue:
            return venue

    stmt = select(Venue).where(Venue.name == name)
    if postcode:
        stmt = stmt.where(Venue.postcode == postcode)
    else:
        stmt = stmt.where(Venue.postcode.is_(None))
    venue = session.scalars(stmt.order_by(Venue.id)).first()
    if venue:
        return venue

    # Slug matches only count for venues that carry no conflicting postcode
    venue = session.scalar(select(Venue).where(Venue.slug == slugify(name)))
    if venue and (not postcode or not venue.postcode or venue.postcode == postcode):
        return venue
    return None


def unique_venue_slug(session: Session, name: str, exclude_id: Optional[int] = None) -> str:
    """
    Slug for name, suffixed -2, -3 ... until unused.

    Examples:
        "The Crown" -> "the-crown", then "the-crown-2" for a second venue
    """
    base = slugify(name) or "venue"
    candidate = base
    suffix = 2
    while True:
        stmt = select(Venue.id).where(Venue.slug == candidate)
        if exclude_id is not None:
            stmt = stmt.where(Venue.id != exclude_id)
        if session.scalar(stmt) is None:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


def _resolve_city(session: Session, raw: RawVenue) -> Optional[City]:
    if not raw.city_name or not raw.country_code:
        return None
    country = upsert_country(session, raw.country_name or raw.country_code, raw.country_code)
    return upsert_city(session, raw.city_name, country)


def upsert_venue(
    session: Session,
    raw: RawVenue,
    force_update: bool = False,
    asset_store=None,
    metadata: Optional[Dict[str, Any]] = None,
) -> VenueUpsertResult:
    """
    Create or merge a venue.

    Merging only fills empty fields unless force_update is set, in which
    case populated scalar fields are overwritten by non-empty incoming
    values and a changed name regenerates the slug. The venue's assets are
    relocated before the new slug is written; result.relocation records the
    move so the caller can undo it if its transaction does not commit.

    Args:
        session: Synchronous database session
        raw: Extracted venue fields
        force_update: Allow overwriting populated fields
        asset_store: AssetStore used to relocate assets on a slug change
        metadata: Extra values merged into the venue's metadata dict

    Raises:
        ValidationError: Empty name or coordinates out of range
        RelocationError: Slug change could not move the venue's assets
    """
    fields = _validated_venue_fields(raw)
    city = _resolve_city(session, raw)
    if city is not None:
        fields["city_id"] = city.id
    metadata = metadata or {}

    existing = find_venue(session, fields["place_id"], fields["name"], fields["postcode"])
    if existing:
        return _merge_venue(session, existing, fields, metadata, force_update, asset_store)

    try:
        with session.begin_nested():
            venue = Venue(
                slug=unique_venue_slug(session, fields["name"]),
                meta=dict(metadata),
                **fields,
            )
            session.add(venue)
    except IntegrityError as e:
        conflict = ConflictError("venue", {"name": fields["name"], "postcode": fields["postcode"]})
        logger.info(f"{conflict.message}; merging into the existing row")
        existing = find_venue(session, fields["place_id"], fields["name"], fields["postcode"])
        if existing is None:
            raise conflict from e
        return _merge_venue(session, existing, fields, metadata, force_update, asset_store)

    logger.info(f"Created venue {venue.slug} (id={venue.id})")
    return VenueUpsertResult(venue=venue, created=True)


def _merge_venue(
    session: Session,
    venue: Venue,
    fields: Dict[str, Any],
    metadata: Dict[str, Any],
    force_update: bool,
    asset_store,
) -> VenueUpsertResult:
    result = VenueUpsertResult(venue=venue)
    old_slug = venue.slug
    new_slug = None

    if force_update and fields["name"] != venue.name:
        new_slug = unique_venue_slug(session, fields["name"], exclude_id=venue.id)
        if new_slug != old_slug and asset_store is not None:
            # Raises RelocationError before any column is touched
            asset_store.relocate("venues", old_slug, new_slug)
            result.relocation = (old_slug, new_slug)

    try:
        with session.begin_nested():
            if new_slug is not None:
                venue.name = fields["name"]
                result.updated_fields.append("name")
                if new_slug != old_slug:
                    venue.slug = new_slug
                    result.slug_changed = True
                    result.updated_fields.append("slug")

            for name in VENUE_MERGE_FIELDS:
                incoming = fields.get(name)
                if incoming is None:
                    continue
                current = getattr(venue, name)
                if current in (None, "") or (force_update and current != incoming):
                    setattr(venue, name, incoming)
                    result.updated_fields.append(name)

            if fields["place_id"] and not venue.place_id:
                venue.place_id = fields["place_id"]
                result.updated_fields.append("place_id")

            if not venue.has_coordinates and fields["latitude"] is not None:
                venue.latitude = fields["latitude"]
                venue.longitude = fields["longitude"]
                result.updated_fields.extend(["latitude", "longitude"])

            if fields.get("city_id") and venue.city_id is None:
                venue.city_id = fields["city_id"]
                result.updated_fields.append("city_id")

            merged_meta = {**(venue.meta or {}), **metadata}
            if merged_meta != (venue.meta or {}):
                venue.meta = merged_meta
                result.updated_fields.append("metadata")
    except IntegrityError as e:
        if result.relocation is not None:
            asset_store.relocate("venues", new_slug, old_slug)
            result.relocation = None
        raise ConflictError("venue", {"id": venue.id, "name": fields["name"]}) from e

    if result.updated_fields:
        logger.info(f"Updated venue {venue.slug}: {', '.join(result.updated_fields)}")
    return result


# ----------------------------------------------------------------------
# Performers
# ----------------------------------------------------------------------


def upsert_performer(
    session: Session,
    name: str,
    source_id: int,
    profile_image_url: Optional[str] = None,
) -> Performer:
    """
    Find a performer by (name, source_id) or create it.

    Raises:
        ValidationError: When the name is empty
    """
    name = clean_text(name)
    if not name:
        raise ValidationError("performer_name", name, "must not be empty")

    performer = _find_performer(session, name, source_id)
    if performer is None:
        try:
            with session.begin_nested():
                performer = Performer(
                    name=name, source_id=source_id, profile_image_url=profile_image_url
                )
                session.add(performer)
            logger.info(f"Created performer {name!r} for source {source_id}")
            return performer
        except IntegrityError:
            logger.debug(f"Performer {name!r} created concurrently, re-reading")
            performer = _find_performer(session, name, source_id)
            if performer is None:
                raise

    if profile_image_url and performer.profile_image_url != profile_image_url:
        performer.profile_image_url = profile_image_url
    return performer


def _find_performer(session: Session, name: str, source_id: int) -> Optional[Performer]:
    rows = session.scalars(
        select(Performer)
        .where(Performer.name == name, Performer.source_id == source_id)
        .order_by(Performer.id)
    ).all()
    if len(rows) > 1:
        logger.warning(
            f"{len(rows)} performers named {name!r} for source {source_id}; using id={rows[0].id}"
        )
    return rows[0] if rows else None
