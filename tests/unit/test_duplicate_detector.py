"""
Unit tests for fuzzy duplicate venue scoring.
"""

import pytest

from quizscout.models.venue import Venue
from quizscout.services.duplicate_detector import (
    distance_km,
    geo_score,
    name_similarity,
    score_pair,
)


def venue(id, name, **kwargs):
    return Venue(id=id, name=name, slug=f"venue-{id}", **kwargs)


def score(venue1, venue2):
    return score_pair(venue1, venue2, name_threshold=0.85, address_threshold=0.80)


class TestSimilarity:
    """Tests for the similarity helpers."""

    def test_name_similarity_ignores_generic_words(self):
        """Test that articles and venue words do not count."""
        assert name_similarity("The Red Lion Pub", "Red Lion") == 1.0

    def test_name_similarity_missing(self):
        """Test missing names never match."""
        assert name_similarity(None, "Red Lion") == 0.0
        assert name_similarity("", "") == 0.0

    def test_distance_km(self):
        """Test the Haversine distance for one degree of latitude."""
        assert distance_km(51.0, 0.0, 52.0, 0.0) == pytest.approx(111.19, abs=0.01)

    def test_geo_score(self):
        """Test full score when close, linear decay, zero when far."""
        origin = venue(1, "A", latitude=51.5, longitude=-0.1)

        assert geo_score(origin, venue(2, "B", latitude=51.5003, longitude=-0.1)) == 1.0
        assert geo_score(origin, venue(3, "C", latitude=51.5 + 0.55 / 111.19, longitude=-0.1)) == pytest.approx(0.5, abs=0.01)
        assert geo_score(origin, venue(4, "D", latitude=51.6, longitude=-0.1)) == 0.0

    def test_geo_score_without_coordinates(self):
        """Test venues without coordinates score zero."""
        assert geo_score(venue(1, "A"), venue(2, "B", latitude=51.5, longitude=-0.1)) == 0.0


class TestScorePair:
    """Tests for score_pair."""

    def test_same_postcode(self):
        """Test similar names sharing a postcode."""
        candidate = score(
            venue(2, "The Red Lion Pub", postcode="N1 1AA"),
            venue(1, "Red Lion", postcode="n1  1aa"),
        )

        assert candidate.reason == "similar name, same postcode"
        assert candidate.confidence == 1.0
        assert candidate.location_similarity == 1.0

    def test_venue_id_is_smaller_id(self):
        """Test pair ordering is stable regardless of argument order."""
        candidate = score(
            venue(9, "The Red Lion Pub", postcode="N1 1AA"),
            venue(3, "Red Lion", postcode="N1 1AA"),
        )

        assert candidate.venue_id == 3
        assert candidate.duplicate_of_id == 9
        assert candidate.venue_name == "Red Lion"

    def test_within_100m(self):
        """Test similar names a few metres apart."""
        candidate = score(
            venue(1, "The Crown", latitude=51.5, longitude=-0.1),
            venue(2, "Crown", latitude=51.5003, longitude=-0.1),
        )

        assert candidate.reason == "similar name, within 100m"

    def test_similar_address(self):
        """Test similar names with equivalent addresses."""
        candidate = score(
            venue(1, "The Crown", address="12 High Street, London"),
            venue(2, "The Crown Pub", address="12 High St London"),
        )

        assert candidate.reason == "similar name, similar address"
        assert candidate.location_similarity == 1.0

    def test_same_place_id(self):
        """Test a shared place_id is a certain duplicate."""
        candidate = score(
            venue(1, "The Crown", place_id="abc"),
            venue(2, "Crown & Anchor", place_id="abc"),
        )

        assert candidate.confidence == 1.0
        assert candidate.reason == "same place_id"

    def test_unrelated(self):
        """Test different names at different places are not flagged."""
        assert score(
            venue(1, "The Crown", postcode="N1 1AA"),
            venue(2, "The Red Lion", postcode="SW1A 1AA"),
        ) is None

    def test_same_name_far_apart(self):
        """Test a shared name alone is not enough."""
        assert score(
            venue(1, "The Crown", latitude=51.5, longitude=-0.1),
            venue(2, "The Crown", latitude=53.48, longitude=-2.24),
        ) is None
