"""
Unit tests for the Question One scraper.
"""

import httpx
import pytest

from conftest import load_fixture, mock_client, question_one_feed, question_one_page
from quizscout.exceptions import ValidationError
from quizscout.scrapers.exceptions import ExtractionError, FetchError
from quizscout.scrapers.question_one import QuestionOneScraper, clean_title
from quizscout.scrapers.records import VenueCandidate


@pytest.fixture
def candidate():
    return VenueCandidate(
        source="question_one",
        url="https://questionone.com/venues/the-royal-oak/",
        name="The Royal Oak",
    )


class TestCleanTitle:
    """Tests for clean_title."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("PUB QUIZ – The Royal Oak – Islington", "The Royal Oak"),
            ("PUB QUIZ: The Crown", "The Crown"),
            ("Pub Quiz - The Bell", "The Bell"),
            ("The Fox", "The Fox"),
        ],
    )
    def test_clean_title(self, raw, expected):
        """Test prefix and suffix removal."""
        assert clean_title(raw) == expected


class TestParseIndex:
    """Tests for RSS index parsing."""

    def test_parse_feed(self):
        """Test items become candidates with query strings removed."""
        candidates = QuestionOneScraper().parse_index(load_fixture("question_one_feed.xml"))

        assert [c.name for c in candidates] == ["The Royal Oak", "The Crown", "The Crown"]
        assert candidates[0].url == "https://questionone.com/venues/the-royal-oak/"
        assert candidates[2].url == "https://questionone.com/venues/the-crown/"
        assert all(c.source == "question_one" for c in candidates)

    def test_empty_feed(self):
        """Test an empty channel means the end of the index."""
        assert QuestionOneScraper().parse_index(question_one_feed([])) == []

    def test_index_url(self):
        """Test paged feed URLs."""
        assert QuestionOneScraper().index_url(3) == "https://questionone.com/venues/feed/?paged=3"


class TestExtract:
    """Tests for detail page extraction."""

    def test_extract_fixture(self, candidate):
        """Test every field of a complete venue page."""
        record = QuestionOneScraper().extract(load_fixture("question_one_venue.html"), candidate)

        assert record.source == "question_one"
        assert record.source_url == candidate.url

        venue = record.venue
        assert venue.name == "The Royal Oak"
        assert venue.address == "12 Upper Street, London N1 0PQ"
        assert venue.postcode == "N1 0PQ"
        assert venue.city_name == "London"
        assert venue.country_code == "GB"
        assert venue.phone == "020 7123 4567"
        assert venue.website == "https://royaloak-islington.co.uk"

        event = record.event
        assert event.name == "Question One at The Royal Oak"
        assert event.day_of_week == 2
        assert event.start_time == "19:30"
        assert event.frequency == "weekly"
        assert event.entry_fee_cents == 200
        assert event.description.startswith("Six rounds of general knowledge")
        assert event.hero_image_url == "https://questionone.com/wp-content/uploads/2024/01/Royal%20Oak.jpg"

        assert record.performer is None
        assert record.source_fields["raw_title"] == "PUB QUIZ – The Royal Oak – Islington"
        assert record.source_fields["time_text"] == "Tuesdays, 7.30pm"
        assert record.source_fields["fee_text"] == "£2 per person"

    def test_missing_address(self, candidate):
        """Test a page without a #pin block fails extraction."""
        page = question_one_page("The Royal Oak", address=None)

        with pytest.raises(ExtractionError) as exc_info:
            QuestionOneScraper().extract(page, candidate)

        assert exc_info.value.field == "address"
        assert exc_info.value.recoverable is False

    def test_missing_schedule(self, candidate):
        """Test a page without a #calendar block fails extraction."""
        page = question_one_page("The Royal Oak", "1 High St, London N1 1AA", time_text=None)

        with pytest.raises(ExtractionError) as exc_info:
            QuestionOneScraper().extract(page, candidate)

        assert exc_info.value.field == "time_text"

    def test_unparseable_schedule(self, candidate):
        """Test a schedule without a time fails closed."""
        page = question_one_page("The Royal Oak", "1 High St, London N1 1AA", time_text="Tuesdays")

        with pytest.raises(ValidationError):
            QuestionOneScraper().extract(page, candidate)

    def test_unknown_fee_and_monthly_title(self, candidate):
        """Test unknown fees stay None and monthly titles are detected."""
        page = question_one_page(
            "Monthly Quiz at The Bell",
            "1 High St, London N1 1AA",
            fee_text="Ask at the bar",
        )

        record = QuestionOneScraper().extract(page, candidate)

        assert record.event.entry_fee_cents is None
        assert record.event.frequency == "monthly"
        assert record.event.hero_image_url is None


class TestFetching:
    """Tests for paged index fetching."""

    @staticmethod
    def feed_handler(pages, end_status=404):
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params.get("paged", "1"))
            if page in pages:
                return httpx.Response(200, text=question_one_feed(pages[page]))
            return httpx.Response(end_status)

        return handler

    @pytest.mark.asyncio
    async def test_walks_pages_until_404(self):
        """Test candidates from every page, stopping at the first 404."""
        pages = {
            1: [("a", "PUB QUIZ – A"), ("b", "PUB QUIZ – B")],
            2: [("c", "PUB QUIZ – C")],
        }
        async with QuestionOneScraper(client=mock_client(self.feed_handler(pages))) as scraper:
            candidates = await scraper.fetch_candidates()

        assert [c.name for c in candidates] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_stops_at_empty_page(self):
        """Test an empty page ends the index."""
        pages = {1: [("a", "PUB QUIZ – A")], 2: [], 3: [("c", "PUB QUIZ – C")]}
        async with QuestionOneScraper(client=mock_client(self.feed_handler(pages))) as scraper:
            candidates = await scraper.fetch_candidates()

        assert [c.name for c in candidates] == ["A"]

    @pytest.mark.asyncio
    async def test_limit(self):
        """Test that the limit abandons remaining pages."""
        seen = []
        pages = {1: [("a", "PUB QUIZ – A"), ("b", "PUB QUIZ – B")], 2: [("c", "PUB QUIZ – C")]}
        inner = self.feed_handler(pages)

        def handler(request):
            seen.append(str(request.url))
            return inner(request)

        async with QuestionOneScraper(client=mock_client(handler)) as scraper:
            candidates = await scraper.fetch_candidates(limit=2)

        assert len(candidates) == 2
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_deduplicates_across_pages(self):
        """Test the same venue listed twice is returned once."""
        pages = {1: [("a", "PUB QUIZ – A")], 2: [("a", "PUB QUIZ – A")]}
        async with QuestionOneScraper(client=mock_client(self.feed_handler(pages))) as scraper:
            candidates = await scraper.fetch_candidates()

        assert len(candidates) == 1

    @pytest.mark.asyncio
    async def test_first_page_failure_raises(self):
        """Test that a failing first page is a FetchError."""
        async with QuestionOneScraper(client=mock_client(self.feed_handler({}, 500))) as scraper:
            with pytest.raises(FetchError) as exc_info:
                await scraper.fetch_candidates()

        assert exc_info.value.status_code == 500
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_detail_non_200(self, candidate):
        """Test any non-200 detail response raises FetchError."""
        client = mock_client(lambda request: httpx.Response(503))
        async with QuestionOneScraper(client=client) as scraper:
            with pytest.raises(FetchError) as exc_info:
                await scraper.fetch_detail(candidate)

        assert exc_info.value.url == candidate.url
