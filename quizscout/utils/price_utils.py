"""
Entry fee and frequency parsing for quiz listings.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from quizscout.exceptions import ValidationError

FREE_KEYWORDS = ("free", "no charge", "no entry fee")

CURRENCY_AMOUNT = re.compile(r"^([£€$])\s*(\d+(?:\.\d{1,2})?)$")
BARE_AMOUNT = re.compile(r"^(\d+(?:\.\d{1,2})?)$")
EMBEDDED_AMOUNT = re.compile(r"([£€$])\s*(\d+(?:\.\d{1,2})?)")


def _to_cents(amount: str, fragment: str) -> int:
    try:
        cents = int((Decimal(amount) * 100).to_integral_value())
    except InvalidOperation:
        raise ValidationError("entry_fee", fragment, "not a number")
    if cents < 0:
        raise ValidationError("entry_fee", fragment, "fee cannot be negative")
    return cents


def parse_fee_cents(text: Optional[str]) -> Optional[int]:
    """
    Parse an entry fee description into cents.

    Returns 0 for free entry and None when no amount can be recognised.

    Examples:
        >>> parse_fee_cents("£2.50")
        250
        >>> parse_fee_cents("Free entry")
        0
        >>> parse_fee_cents("3")
        300
        >>> parse_fee_cents("£2 per person, cash only")
        200
        >>> parse_fee_cents("ask at the bar") is None
        True
    """
    if text is None:
        return None

    cleaned = text.strip().lower()
    if not cleaned:
        return None

    if any(keyword in cleaned for keyword in FREE_KEYWORDS):
        return 0

    match = CURRENCY_AMOUNT.match(cleaned)
    if match:
        return _to_cents(match.group(2), text)

    match = BARE_AMOUNT.match(cleaned)
    if match:
        return _to_cents(match.group(1), text)

    match = EMBEDDED_AMOUNT.search(cleaned)
    if match:
        return _to_cents(match.group(2), text)

    if cleaned.startswith("-"):
        raise ValidationError("entry_fee", text, "fee cannot be negative")

    return None


def parse_frequency(text: Optional[str]) -> str:
    """
    Map a free-text recurrence description to a frequency value.

    Examples:
        >>> parse_frequency("Every 2 weeks")
        'biweekly'
        >>> parse_frequency("weekly")
        'weekly'
        >>> parse_frequency("")
        'irregular'
    """
    cleaned = (text or "").strip().lower()
    if not cleaned:
        return "irregular"
    if re.search(r"every 2 weeks|every two weeks|bi-?weekly|fortnightly|every other", cleaned):
        return "biweekly"
    if re.search(r"every week|weekly|each week", cleaned):
        return "weekly"
    if re.search(r"every month|monthly|of the month", cleaned):
        return "monthly"
    return "irregular"


def frequency_from_title(title: Optional[str]) -> str:
    """
    Infer frequency from an event title; quiz listings default to weekly.

    Examples:
        >>> frequency_from_title("First Tuesday of the month quiz")
        'monthly'
        >>> frequency_from_title("Fortnightly Quiz")
        'biweekly'
        >>> frequency_from_title("Tuesday Quiz")
        'weekly'
    """
    lowered = (title or "").lower()
    if re.search(r"\b(first|second|third|fourth|last)\b.*\bof the month\b", lowered) or "monthly" in lowered:
        return "monthly"
    if re.search(r"every other|bi-?weekly|fortnightly", lowered):
        return "biweekly"
    return "weekly"
