"""
Integration tests for the fuzzy duplicate report.
"""

import pytest
from sqlalchemy import select

from quizscout.models import Venue, VenueDuplicateCandidate
from quizscout.services.duplicate_detector import find_candidates, record_candidates
from quizscout.services.entity_store import upsert_city, upsert_country


def add_venue(session, slug, name, **kwargs):
    venue = Venue(slug=slug, name=name, meta={}, **kwargs)
    session.add(venue)
    session.flush()
    return venue


@pytest.fixture
def lookalikes(db_session):
    """Two spellings of one pub plus an unrelated venue."""
    first = add_venue(db_session, "the-red-lion-pub", "The Red Lion Pub", postcode="N1 1AA")
    second = add_venue(db_session, "red-lion", "Red Lion", postcode="N1 1AA")
    add_venue(db_session, "the-crown", "The Crown", postcode="SW1A 1AA")
    return first, second


@pytest.mark.integration
@pytest.mark.database
class TestDuplicateReport:
    """Tests for find_candidates and record_candidates."""

    def test_find_candidates(self, db_session, lookalikes):
        """Test only the lookalike pair is reported."""
        first, second = lookalikes

        candidates = find_candidates(db_session)

        assert len(candidates) == 1
        assert candidates[0].venue_id == first.id
        assert candidates[0].duplicate_of_id == second.id
        assert candidates[0].reason == "similar name, same postcode"

    def test_record_is_idempotent(self, db_session, lookalikes):
        """Test recording the same report twice creates one row."""
        assert record_candidates(db_session, find_candidates(db_session)) == 1
        assert record_candidates(db_session, find_candidates(db_session)) == 0

        rows = db_session.scalars(select(VenueDuplicateCandidate)).all()
        assert len(rows) == 1
        assert rows[0].status == "pending"

    def test_reviewed_rows_are_not_touched(self, db_session, lookalikes):
        """Test dismissed pairs keep their status and scores."""
        record_candidates(db_session, find_candidates(db_session))
        row = db_session.scalars(select(VenueDuplicateCandidate)).one()
        row.status = "dismissed"
        row.confidence = 0.5
        db_session.flush()

        record_candidates(db_session, find_candidates(db_session))

        assert row.status == "dismissed"
        assert row.confidence == 0.5

    def test_venues_are_never_modified(self, db_session, lookalikes):
        """Test the report does not merge or delete venues."""
        record_candidates(db_session, find_candidates(db_session))

        assert len(db_session.scalars(select(Venue)).all()) == 3

    def test_pairs_stay_within_a_city(self, db_session):
        """Test venues in different cities are never paired."""
        gb = upsert_country(db_session, "United Kingdom", "GB")
        london = upsert_city(db_session, "London", gb)
        leeds = upsert_city(db_session, "Leeds", gb)
        add_venue(db_session, "the-crown", "The Crown", postcode="N1 1AA", city_id=london.id)
        add_venue(db_session, "the-crown-2", "The Crown", postcode="N1 1AA", city_id=leeds.id)

        assert find_candidates(db_session) == []
        assert find_candidates(db_session, city_id=london.id) == []

    def test_thresholds(self, db_session, lookalikes):
        """Test explicit thresholds override settings."""
        assert find_candidates(db_session, name_threshold=1.01) == []
