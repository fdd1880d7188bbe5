"""
Base scraper class providing the standard interface for quiz sources.

A source scraper has two halves:

- Fetching (async, network): fetch(), fetch_candidates() and
  fetch_detail(). Every request carries a bounded timeout; any non-200
  status raises FetchError.
- Extraction (pure): parse_index() and extract() turn a document that has
  already been fetched into typed records. They never perform I/O.

Usage:
    >>> async with QuizmeistersScraper() as scraper:
    ...     candidates = await scraper.fetch_candidates(limit=10)
    ...     response = await scraper.fetch_detail(candidates[0])
    ...     record = scraper.extract(response.body, candidates[0])
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup
from pydantic import ValidationError as PydanticValidationError

from quizscout.config import settings
from quizscout.scrapers.exceptions import ExtractionError, FetchError, FetchTimeoutError
from quizscout.scrapers.records import RawRecord, VenueCandidate
from quizscout.utils.retry import fetch_retry


@dataclass
class FetchResponse:
    """Status code and body of a successful fetch."""

    status_code: int
    body: str
    url: str


class BaseSourceScraper(ABC):
    """
    Abstract base class for all quiz source scrapers.

    Class Attributes:
        SOURCE_NAME: Registry name of the source (e.g. 'question_one')
        BASE_URL: Source website root
        PAGED_INDEX: Whether the index is split into numbered pages
        DEFAULT_TIMEOUT: Default timeout for requests in seconds
    """

    SOURCE_NAME: str = "base"
    BASE_URL: str = ""
    PAGED_INDEX: bool = False
    DEFAULT_TIMEOUT: int = 30
    MAX_INDEX_PAGES: int = 200

    def __init__(self, timeout: Optional[float] = None, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize base scraper.

        Args:
            timeout: Request timeout in seconds (uses settings.scraper_timeout if not specified)
            client: Pre-configured HTTP client, mainly for tests
        """
        self.timeout = timeout if timeout is not None else settings.scraper_timeout or self.DEFAULT_TIMEOUT
        self._session: Optional[httpx.AsyncClient] = client
        self._owns_session = client is None
        self.logger = logging.getLogger(f"{__name__}.{self.SOURCE_NAME}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get_http_session(self) -> httpx.AsyncClient:
        """Get or create HTTP session."""
        if self._session is None or self._session.is_closed:
            self._session = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": settings.scraper_user_agent},
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the HTTP session if this scraper created it."""
        if self._session and self._owns_session:
            await self._session.aclose()
            self._session = None

    @fetch_retry(max_attempts=3)
    async def _get(self, url: str) -> httpx.Response:
        session = await self._get_http_session()
        return await session.get(url)

    async def fetch(self, url: str) -> FetchResponse:
        """
        GET a document, following redirects.

        Raises:
            FetchTimeoutError: When the request exceeds the timeout
            FetchError: On transport failure or any non-200 status
        """
        try:
            response = await self._get(url)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"Timed out fetching {url}",
                url=url,
                timeout_seconds=self.timeout,
                source=self.SOURCE_NAME,
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise FetchError(
                f"Request failed for {url}: {e}",
                url=url,
                source=self.SOURCE_NAME,
                original_error=e,
            )

        if response.status_code != 200:
            raise FetchError(
                f"HTTP {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
                source=self.SOURCE_NAME,
            )

        return FetchResponse(status_code=response.status_code, body=response.text, url=str(response.url))

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    @abstractmethod
    def index_url(self, page: int = 1) -> str:
        """URL of an index page (page is ignored for unpaged sources)."""

    @abstractmethod
    def parse_index(self, document: str) -> List[VenueCandidate]:
        """
        Parse an index document into candidates.

        An empty list signals the end of the data.
        """

    async def fetch_candidates(self, limit: Optional[int] = None) -> List[VenueCandidate]:
        """
        Enumerate candidate venues.

        Paged sources are walked until an empty page or a 404. Once limit
        candidates are collected the remaining pages are abandoned.

        Raises:
            FetchError: When the first index page cannot be fetched
        """
        candidates: List[VenueCandidate] = []
        seen = set()
        pages = range(1, self.MAX_INDEX_PAGES + 1) if self.PAGED_INDEX else [1]

        for page in pages:
            url = self.index_url(page)
            try:
                response = await self.fetch(url)
            except FetchError as e:
                if page > 1 and e.status_code == 404:
                    self.logger.info(f"Index ended at page {page} (404)")
                    break
                raise

            page_candidates = self.parse_index(response.body)
            if not page_candidates:
                self.logger.info(f"Index ended at page {page} (empty page)")
                break

            for candidate in page_candidates:
                if candidate.identity in seen:
                    continue
                seen.add(candidate.identity)
                candidates.append(candidate)
                if limit is not None and len(candidates) >= limit:
                    self.logger.info(f"Candidate limit {limit} reached at page {page}")
                    return candidates

        self.logger.info(f"Found {len(candidates)} candidates for {self.SOURCE_NAME}")
        return candidates

    # ------------------------------------------------------------------
    # Detail
    # ------------------------------------------------------------------

    async def fetch_detail(self, candidate: VenueCandidate) -> FetchResponse:
        """Fetch the detail document for a candidate."""
        return await self.fetch(candidate.url)

    @abstractmethod
    def extract(self, document: str, candidate: VenueCandidate) -> RawRecord:
        """
        Turn a detail document into a record.

        Raises:
            ExtractionError: When a required field is missing
            ValidationError: When a parsed value is out of its domain
        """

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def parse_html(document: str) -> BeautifulSoup:
        return BeautifulSoup(document, "lxml")

    def build_record(self, candidate: VenueCandidate, **fields) -> RawRecord:
        """
        Validate extracted fields into a RawRecord.

        Pydantic failures become ExtractionError naming the first bad field.
        """
        try:
            return RawRecord(source=self.SOURCE_NAME, source_url=candidate.url, **fields)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ExtractionError(field, first["msg"], url=candidate.url, source=self.SOURCE_NAME)

    def require(self, value: Optional[str], field: str, candidate: VenueCandidate, reason: str) -> str:
        """Return value, or raise ExtractionError when it is missing."""
        if value is None or not str(value).strip():
            raise ExtractionError(field, reason, url=candidate.url, source=self.SOURCE_NAME)
        return str(value).strip()
