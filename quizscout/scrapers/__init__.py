"""
Scrapers package for QuizScout.

Source scrapers for pub quiz listings:
- Question One: RSS feed index + HTML venue pages (UK)
- Quizmeisters: JSON location API + HTML venue pages (Australia)
"""

from quizscout.scrapers.base import BaseSourceScraper, FetchResponse
from quizscout.scrapers.question_one import QuestionOneScraper
from quizscout.scrapers.quizmeisters import QuizmeistersScraper
from quizscout.scrapers.records import (
    RawEvent,
    RawPerformer,
    RawRecord,
    RawVenue,
    VenueCandidate,
)

__all__ = [
    "BaseSourceScraper",
    "FetchResponse",
    "QuestionOneScraper",
    "QuizmeistersScraper",
    "RawEvent",
    "RawPerformer",
    "RawRecord",
    "RawVenue",
    "VenueCandidate",
]
