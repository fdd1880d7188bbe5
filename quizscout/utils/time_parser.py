"""
Parser for free-text quiz schedules such as "Tuesdays, 6.30pm".

Parsing fails closed: a phrase without a recognizable day or time raises
ValidationError naming the fragment. Nothing is ever defaulted.

Usage:
    >>> parse_time_text("Every Thursday at 8pm")
    ParsedSchedule(day_of_week=4, start_time='20:00')
"""

import re
from dataclasses import dataclass
from datetime import time
from typing import Optional

from quizscout.exceptions import ValidationError

DAY_NUMBERS = {
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
    "sun": 7,
}

DAY_PATTERN = re.compile(
    r"\b(mon|tues?|wed(?:nes)?|thu(?:rs?)?|fri|sat(?:ur)?|sun)(?:day)?s?\b"
)

# Tried in order; the first match wins
TIME_12H_MINUTES = re.compile(r"\b(\d{1,2})[:.](\d{2})\s*(am|pm)\b")
TIME_12H_HOUR = re.compile(r"\b(\d{1,2})\s*(am|pm)\b")
TIME_24H = re.compile(r"\b(\d{1,2})[:.](\d{2})\b")

FILLER_WORDS = re.compile(r"\b(?:every|at)\b")


@dataclass(frozen=True)
class ParsedSchedule:
    """Day of week (1 = Monday) and a 24-hour HH:MM start time."""

    day_of_week: int
    start_time: str

    @property
    def as_time(self) -> time:
        return to_time(self.start_time)


def normalize_time_text(text: str) -> str:
    """
    Lower-case the phrase and strip filler and footer noise.

    Examples:
        >>> normalize_time_text("Every Tuesday, at 7pm (doors 6.30)\\nBook: 0123")
        'tuesday 7pm'
    """
    text = (text or "").lower()
    # "Book: ..." footers run to the end of the phrase
    text = re.split(r"book:", text, maxsplit=1)[0]
    text = re.sub(r"\([^)]*\)", " ", text)
    text = text.replace(",", " ")
    text = FILLER_WORDS.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()


def parse_day_of_week(text: str) -> int:
    """
    Find the day name in a phrase and return its ISO weekday number.

    Raises:
        ValidationError: When no day name is present
    """
    normalized = normalize_time_text(text)
    match = DAY_PATTERN.search(normalized)
    if not match:
        raise ValidationError("day_of_week", text, "no day name found")
    return DAY_NUMBERS[match.group(1)[:3]]


def _to_24_hour(hour: int, meridiem: str, fragment: str) -> int:
    if hour < 1 or hour > 12:
        raise ValidationError("start_time", fragment, "hour must be 1-12 with am/pm")
    if meridiem == "am":
        return 0 if hour == 12 else hour
    return 12 if hour == 12 else hour + 12


def parse_start_time(text: str) -> str:
    """
    Find a time of day in a phrase and return it as 24-hour "HH:MM".

    Accepts "6:30pm", "6.30 pm", "8pm" and 24-hour "19:30".

    Raises:
        ValidationError: When no time is present or it is out of range
    """
    normalized = normalize_time_text(text)

    match = TIME_12H_MINUTES.search(normalized)
    if match:
        hour = _to_24_hour(int(match.group(1)), match.group(3), match.group(0))
        minute = int(match.group(2))
    else:
        match = TIME_12H_HOUR.search(normalized)
        if match:
            hour = _to_24_hour(int(match.group(1)), match.group(2), match.group(0))
            minute = 0
        else:
            match = TIME_24H.search(normalized)
            if not match:
                raise ValidationError("start_time", text, "no time of day found")
            hour = int(match.group(1))
            minute = int(match.group(2))
            if hour > 23:
                raise ValidationError("start_time", match.group(0), "hour out of range")

    if minute > 59:
        raise ValidationError("start_time", match.group(0), "minutes out of range")

    return f"{hour:02d}:{minute:02d}"


def parse_time_text(text: Optional[str]) -> ParsedSchedule:
    """
    Parse a schedule phrase into day of week and start time.

    Examples:
        >>> parse_time_text("Tuesdays, 6.30pm")
        ParsedSchedule(day_of_week=2, start_time='18:30')
        >>> parse_time_text("Friday 7pm")
        ParsedSchedule(day_of_week=5, start_time='19:00')

    Raises:
        ValidationError: For empty phrases or a missing day or time
    """
    if not text or not text.strip():
        raise ValidationError("time_text", text, "schedule text is empty")

    return ParsedSchedule(
        day_of_week=parse_day_of_week(text),
        start_time=parse_start_time(text),
    )


def to_time(value: str) -> time:
    """
    Convert "HH:MM" to a time object.

    Raises:
        ValidationError: When the value is not a valid HH:MM string
    """
    match = re.fullmatch(r"(\d{2}):(\d{2})", value or "")
    if not match:
        raise ValidationError("start_time", value, "expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError("start_time", value, "time out of range")
    return time(hour, minute)
