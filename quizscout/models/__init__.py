"""
SQLAlchemy models for QuizScout.
Import all models here to ensure they are registered with SQLAlchemy.
"""

from quizscout.models.base import Base, TimestampMixin
from quizscout.models.duplicate_candidate import VenueDuplicateCandidate
from quizscout.models.event import FREQUENCIES, Event, EventSource
from quizscout.models.location import City, Country
from quizscout.models.performer import Performer
from quizscout.models.scraping_job import ScrapingJob
from quizscout.models.source import Source
from quizscout.models.venue import Venue

__all__ = [
    "Base",
    "TimestampMixin",
    "Source",
    "Country",
    "City",
    "Venue",
    "Performer",
    "Event",
    "EventSource",
    "FREQUENCIES",
    "ScrapingJob",
    "VenueDuplicateCandidate",
]
