"""
String utility functions for QuizScout.

Provides text cleaning, slug generation and the normalizations used when
comparing venue names and addresses.
"""

import re
import string
import unicodedata
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

# Words that carry no identity when comparing venue names
VENUE_NAME_STOPWORDS = {
    "the",
    "and",
    "pub",
    "restaurant",
    "bar",
    "hotel",
    "inn",
    "tavern",
    "club",
    "cafe",
    "coffee",
    "shop",
}

ADDRESS_ABBREVIATIONS = [
    (r"\bstreet\b", "st"),
    (r"\broad\b", "rd"),
    (r"\bavenue\b", "ave"),
    (r"\blane\b", "ln"),
    (r"\bplace\b", "pl"),
]


def clean_text(text: Optional[str]) -> str:
    """
    Remove extra whitespace and normalize text.

    - Removes leading/trailing whitespace
    - Replaces runs of whitespace (including newlines) with one space
    - Replaces non-breaking spaces

    Examples:
        >>> clean_text("  Hello   world  ")
        'Hello world'
        >>> clean_text("Text\\xa0with\\xa0nbsp")
        'Text with nbsp'
    """
    if not text or not isinstance(text, str):
        return ""

    text = text.replace("\xa0", " ")
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def blank_to_none(text: Optional[str]) -> Optional[str]:
    """Cleaned text, or None when nothing is left."""
    cleaned = clean_text(text)
    return cleaned or None


def slugify(text: str) -> str:
    """
    Build a URL-safe slug: lower case, ASCII only, hyphen joined.

    Examples:
        >>> slugify("The Crown & Anchor")
        'the-crown-anchor'
        >>> slugify("Café Zürich")
        'cafe-zurich'
    """
    text = unicodedata.normalize("NFKD", text or "")
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"[\s-]+", "-", text)
    return text.strip("-")


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a venue name for similarity comparison.

    Lower-cases, strips punctuation and drops generic venue words.

    Examples:
        >>> normalize_name("The Red Lion Pub")
        'red lion'
        >>> normalize_name("Bar & Grill, Co.")
        'grill co'
    """
    if not name:
        return ""

    text = name.lower()
    text = text.translate(str.maketrans("", "", string.punctuation))
    words = [w for w in text.split() if w not in VENUE_NAME_STOPWORDS]
    return " ".join(words)


def normalize_address(address: Optional[str]) -> str:
    """
    Normalize an address for similarity comparison.

    Examples:
        >>> normalize_address("12 High Street, London")
        '12 high st london'
    """
    if not address:
        return ""

    text = address.lower()
    text = text.translate(str.maketrans("", "", string.punctuation))
    for pattern, replacement in ADDRESS_ABBREVIATIONS:
        text = re.sub(pattern, replacement, text)
    return clean_text(text)


def normalize_postcode(postcode: Optional[str]) -> Optional[str]:
    """
    Canonical postcode form: upper case, single internal spaces.

    Examples:
        >>> normalize_postcode(" sw1a  1aa ")
        'SW1A 1AA'
    """
    cleaned = clean_text(postcode)
    return cleaned.upper() if cleaned else None


UK_POSTCODE = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?)\s*(\d[A-Z]{2})\b", re.IGNORECASE)
AU_POSTCODE = re.compile(r"\b(?:NSW|VIC|QLD|WA|SA|TAS|ACT|NT)\s+(\d{4})\b")


def extract_postcode(address: Optional[str]) -> Optional[str]:
    """
    Pull a UK or Australian postcode out of a free-text address.

    Examples:
        >>> extract_postcode("The Crown, 1 High St, London NW1 7JR")
        'NW1 7JR'
        >>> extract_postcode("12 George St, Sydney NSW 2000")
        '2000'
    """
    if not address:
        return None
    match = UK_POSTCODE.search(address)
    if match:
        return f"{match.group(1)} {match.group(2)}".upper()
    match = AU_POSTCODE.search(address)
    if match:
        return match.group(1)
    return None


def guess_city(address: Optional[str]) -> Optional[str]:
    """
    Best-effort city from the last comma-separated address part.

    Postcodes and state abbreviations are stripped first.

    Examples:
        >>> guess_city("The Crown, 1 High St, London NW1 7JR")
        'London'
        >>> guess_city("12 George St, Sydney NSW 2000")
        'Sydney'
    """
    if not address:
        return None
    parts = [p.strip() for p in address.split(",") if p.strip()]
    while parts:
        last = UK_POSTCODE.sub("", parts[-1])
        last = AU_POSTCODE.sub("", last)
        last = re.sub(r"\b(UK|United Kingdom|Australia)\b", "", last, flags=re.IGNORECASE)
        last = clean_text(last)
        if last and not last.isdigit():
            return last
        parts.pop()
    return None


def strip_query(url: str) -> str:
    """Drop query string and fragment from a URL."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
