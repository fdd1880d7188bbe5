"""
Advisory fuzzy duplicate-venue report.

Scores pairs of venues by name and location similarity and records likely
duplicates in venue_duplicate_candidates for human review. Venues are
never modified or merged here.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from difflib import SequenceMatcher
from itertools import combinations
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizscout.config import settings
from quizscout.models.duplicate_candidate import VenueDuplicateCandidate
from quizscout.models.venue import Venue
from quizscout.utils.string_utils import normalize_address, normalize_name, normalize_postcode

logger = logging.getLogger(__name__)

NAME_WEIGHT = 0.7
LOCATION_WEIGHT = 0.3

# Geo score is 1 within NEAR_KM and falls linearly to 0 at FAR_KM
NEAR_KM = 0.1
FAR_KM = 1.0
STRONG_GEO_SCORE = 0.95


@dataclass
class DuplicateCandidate:
    """Scored pair; venue_id is always the smaller id."""

    venue_id: int
    duplicate_of_id: int
    venue_name: str
    duplicate_name: str
    confidence: float
    name_similarity: float
    location_similarity: float
    reason: str


def similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def name_similarity(name1: Optional[str], name2: Optional[str]) -> float:
    """
    Examples:
        >>> name_similarity("The Red Lion Pub", "Red Lion")
        1.0
    """
    return similarity(normalize_name(name1), normalize_name(name2))


def address_similarity(address1: Optional[str], address2: Optional[str]) -> float:
    return similarity(normalize_address(address1), normalize_address(address2))


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance using the Haversine formula."""
    R = 6371.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2) - math.radians(lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    return R * 2 * math.asin(math.sqrt(a))


def geo_score(venue1: Venue, venue2: Venue) -> float:
    if not (venue1.has_coordinates and venue2.has_coordinates):
        return 0.0
    distance = distance_km(venue1.latitude, venue1.longitude, venue2.latitude, venue2.longitude)
    if distance <= NEAR_KM:
        return 1.0
    if distance >= FAR_KM:
        return 0.0
    return 1.0 - (distance - NEAR_KM) / (FAR_KM - NEAR_KM)


def score_pair(
    venue1: Venue,
    venue2: Venue,
    name_threshold: float,
    address_threshold: float,
) -> Optional[DuplicateCandidate]:
    """
    Score two venues; returns a candidate when the pair looks like one place.

    A pair is flagged when the place_id matches, when the names are similar
    and the location is strong (same postcode, geo score >= 0.95, or
    similar addresses), or when the weighted confidence alone clears the
    name threshold.
    """
    first, second = sorted((venue1, venue2), key=lambda v: v.id)

    names = name_similarity(first.name, second.name)
    same_postcode = bool(
        first.postcode
        and normalize_postcode(first.postcode) == normalize_postcode(second.postcode)
    )
    geo = geo_score(first, second)
    address = address_similarity(first.address, second.address)
    location = 1.0 if same_postcode else max(address, geo)

    if first.place_id and first.place_id == second.place_id:
        confidence, reason = 1.0, "same place_id"
    else:
        confidence = NAME_WEIGHT * names + LOCATION_WEIGHT * location
        strong_location = same_postcode or geo >= STRONG_GEO_SCORE or address >= address_threshold
        if names >= name_threshold and strong_location:
            if same_postcode:
                reason = "similar name, same postcode"
            elif geo >= STRONG_GEO_SCORE:
                reason = "similar name, within 100m"
            else:
                reason = "similar name, similar address"
        elif confidence >= name_threshold:
            reason = f"combined confidence {confidence:.2f}"
        else:
            return None

    return DuplicateCandidate(
        venue_id=first.id,
        duplicate_of_id=second.id,
        venue_name=first.name,
        duplicate_name=second.name,
        confidence=round(confidence, 4),
        name_similarity=round(names, 4),
        location_similarity=round(location, 4),
        reason=reason,
    )


def find_candidates(
    session: Session,
    city_id: Optional[int] = None,
    name_threshold: Optional[float] = None,
    address_threshold: Optional[float] = None,
) -> List[DuplicateCandidate]:
    """
    Score venue pairs within each city (venues without a city form one group).

    Args:
        session: Database session (read only)
        city_id: Restrict the report to one city
        name_threshold: Defaults to settings.fuzzy_name_threshold
        address_threshold: Defaults to settings.fuzzy_address_threshold

    Returns:
        Candidates sorted by descending confidence
    """
    name_threshold = name_threshold if name_threshold is not None else settings.fuzzy_name_threshold
    address_threshold = (
        address_threshold if address_threshold is not None else settings.fuzzy_address_threshold
    )

    stmt = select(Venue).order_by(Venue.id)
    if city_id is not None:
        stmt = stmt.where(Venue.city_id == city_id)
    venues = session.scalars(stmt).all()

    groups: Dict[Optional[int], List[Venue]] = defaultdict(list)
    for venue in venues:
        groups[venue.city_id].append(venue)

    candidates = []
    for group in groups.values():
        for venue1, venue2 in combinations(group, 2):
            candidate = score_pair(venue1, venue2, name_threshold, address_threshold)
            if candidate:
                candidates.append(candidate)

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    logger.info(f"Duplicate scan: {len(venues)} venues, {len(candidates)} candidate pairs")
    return candidates


def record_candidates(session: Session, candidates: List[DuplicateCandidate]) -> int:
    """
    Upsert candidates into the review queue.

    Pairs already reviewed (status other than pending) keep their status
    and scores.

    Returns:
        Number of new rows
    """
    created = 0
    for candidate in candidates:
        row = session.scalar(
            select(VenueDuplicateCandidate).where(
                VenueDuplicateCandidate.venue_id == candidate.venue_id,
                VenueDuplicateCandidate.duplicate_of_id == candidate.duplicate_of_id,
            )
        )
        if row is None:
            session.add(
                VenueDuplicateCandidate(
                    venue_id=candidate.venue_id,
                    duplicate_of_id=candidate.duplicate_of_id,
                    confidence=candidate.confidence,
                    name_similarity=candidate.name_similarity,
                    location_similarity=candidate.location_similarity,
                    reason=candidate.reason,
                    status="pending",
                )
            )
            created += 1
        elif row.status == "pending":
            row.confidence = candidate.confidence
            row.name_similarity = candidate.name_similarity
            row.location_similarity = candidate.location_similarity
            row.reason = candidate.reason

    session.flush()
    logger.info(f"Recorded {created} new duplicate candidates ({len(candidates)} scored)")
    return created
