"""
Static catalog of configured quiz sources.

Each entry ties a registry name to its scraper class, its index schedule
and an optional freshness window override.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizscout.config import settings
from quizscout.exceptions import ConfigurationError
from quizscout.models.source import Source
from quizscout.scrapers.base import BaseSourceScraper
from quizscout.scrapers.question_one import QuestionOneScraper
from quizscout.scrapers.quizmeisters import QuizmeistersScraper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceDefinition:
    """A configured source."""

    name: str
    display_name: str
    base_url: str
    version: str
    scraper_class: Type[BaseSourceScraper]
    # crontab fields for the index job: (minute, hour, day_of_week)
    index_schedule: tuple = ("0", "3", "*")
    skip_window_days: Optional[int] = None

    @property
    def slug(self) -> str:
        return self.name.replace("_", "-")

    def freshness_window(self) -> int:
        """Source override, then per-source setting, then the global default."""
        if self.skip_window_days is not None:
            return self.skip_window_days
        return settings.get_skip_window(self.name)

    def create_scraper(self, **kwargs) -> BaseSourceScraper:
        return self.scraper_class(**kwargs)


SOURCES: Dict[str, SourceDefinition] = {
    "question_one": SourceDefinition(
        name="question_one",
        display_name="Question One",
        base_url=QuestionOneScraper.BASE_URL,
        version="1",
        scraper_class=QuestionOneScraper,
        index_schedule=("0", "2", "*"),
    ),
    "quizmeisters": SourceDefinition(
        name="quizmeisters",
        display_name="Quizmeisters",
        base_url=QuizmeistersScraper.BASE_URL,
        version="1",
        scraper_class=QuizmeistersScraper,
        index_schedule=("30", "2", "*"),
    ),
}


def get_source(name: str) -> SourceDefinition:
    """
    Look up a source by registry name.

    Raises:
        ConfigurationError: For unknown names
    """
    try:
        return SOURCES[name]
    except KeyError:
        raise ConfigurationError("source", f"one of {sorted(SOURCES)}", name)


def list_sources() -> List[SourceDefinition]:
    return list(SOURCES.values())


def ensure_source_row(session: Session, definition: SourceDefinition) -> Source:
    """Find or create the Source row for a definition."""
    source = session.scalar(select(Source).where(Source.slug == definition.slug))
    if source:
        return source

    try:
        with session.begin_nested():
            source = Source(
                name=definition.display_name,
                slug=definition.slug,
                base_url=definition.base_url,
                version=definition.version,
            )
            session.add(source)
        logger.info(f"Registered source {definition.slug}")
        return source
    except IntegrityError:
        # Another worker inserted it first
        return session.scalars(select(Source).where(Source.slug == definition.slug)).one()
