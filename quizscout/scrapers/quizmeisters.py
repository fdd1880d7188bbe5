"""
Quizmeisters scraper.

Index: the StoreRocket locations API, a single JSON document that already
carries name, address, coordinates, phone and the trivia night text.
Detail: the venue page for description, hero photo, social links, the
"on break" flag and the quizmaster.
"""

import json
import re
from typing import Any, Dict, List, Optional

from quizscout.scrapers.base import BaseSourceScraper
from quizscout.scrapers.exceptions import ExtractionError
from quizscout.scrapers.records import RawRecord, VenueCandidate
from quizscout.utils.string_utils import blank_to_none, clean_text, guess_city
from quizscout.utils.time_parser import parse_time_text

LOREM_IPSUM_PREFIX = "Lorem ipsum dolor sit amet, consectetur adipiscing elit"

PHONE_PATTERN = re.compile(r"^\+?[\d\s-]{8,}$")


def find_trivia_time(location: Dict[str, Any]) -> Optional[str]:
    """
    Schedule text for a location: the trivia_night custom field, else any
    field whose name mentions trivia or quiz.
    """
    custom_fields = location.get("custom_fields") or {}
    if isinstance(custom_fields, dict):
        value = custom_fields.get("trivia_night")
        if isinstance(value, str) and value.strip():
            return value.strip()

    for field in location.get("fields") or []:
        if not isinstance(field, dict):
            continue
        name = str(field.get("name") or "").lower()
        value = field.get("value")
        if ("trivia" in name or "quiz" in name) and isinstance(value, str) and value.strip():
            return value.strip()

    return None


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class QuizmeistersScraper(BaseSourceScraper):
    """Scraper for quizmeisters.com trivia venues."""

    SOURCE_NAME = "quizmeisters"
    BASE_URL = "https://quizmeisters.com"
    API_URL = "https://storerocket.io/api/user/kDJ3BbK4mn/locations"
    PAGED_INDEX = False
    DEFAULT_COUNTRY_CODE = "AU"
    DEFAULT_COUNTRY_NAME = "Australia"

    def index_url(self, page: int = 1) -> str:
        return self.API_URL

    def parse_index(self, document: str) -> List[VenueCandidate]:
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise ExtractionError("locations", f"invalid JSON: {e}", url=self.API_URL, source=self.SOURCE_NAME)

        results = data.get("results") if isinstance(data, dict) else None
        locations = results.get("locations") if isinstance(results, dict) else None
        if locations is None:
            raise ExtractionError("locations", "no results.locations key", url=self.API_URL, source=self.SOURCE_NAME)

        candidates = []
        for location in locations:
            name = blank_to_none(location.get("name"))
            url = blank_to_none(location.get("url"))
            if not name or not url:
                self.logger.debug(f"Skipping location without name/url: {location.get('id')}")
                continue

            candidates.append(
                VenueCandidate(
                    source=self.SOURCE_NAME,
                    url=url,
                    name=name,
                    address=blank_to_none(location.get("address")),
                    postcode=blank_to_none(location.get("postcode")),
                    latitude=_as_float(location.get("lat")),
                    longitude=_as_float(location.get("lng")),
                    phone=blank_to_none(location.get("phone")),
                    time_text=find_trivia_time(location),
                )
            )

        return candidates

    def _description(self, soup) -> Optional[str]:
        selectors = [
            ".venue-description.w-richtext:not(.trivia-generic):not(.bingo-generic):not(.survey-generic) p",
            ".venue-description.trivia-generic.w-richtext p",
        ]
        for selector in selectors:
            text = "\n\n".join(clean_text(p.get_text(" ")) for p in soup.select(selector)).strip()
            if text.startswith(LOREM_IPSUM_PREFIX):
                text = ""
            if text:
                return text
        return None

    def _social_links(self, soup) -> Dict[str, Optional[str]]:
        links: Dict[str, Optional[str]] = {"website": None, "facebook": None, "instagram": None}
        for anchor in soup.select(".icon-block a"):
            href = blank_to_none(anchor.get("href"))
            for kind in links:
                if anchor.select_one(f"img[alt*='{kind}']"):
                    links[kind] = href
        return links

    def _performer(self, soup) -> Optional[Dict[str, Optional[str]]]:
        name_el = soup.select_one(".host-name, .quiz-master-name")
        name = blank_to_none(name_el.get_text(" ") if name_el else None)
        if not name:
            return None
        image = soup.select_one(".host-img, .quiz-master-img")
        return {"name": name, "profile_image_url": image.get("src") if image else None}

    def extract(self, document: str, candidate: VenueCandidate) -> RawRecord:
        soup = self.parse_html(document)

        address = self.require(candidate.address, "address", candidate, "location has no address")
        time_text = self.require(candidate.time_text, "time_text", candidate, "location has no trivia night")
        schedule = parse_time_text(time_text)

        phone = candidate.phone
        if not phone:
            for paragraph in soup.select(".venue-block .paragraph"):
                text = clean_text(paragraph.get_text())
                if PHONE_PATTERN.match(text):
                    phone = text
                    break

        hero = soup.select_one(".venue-photo")
        hero_image_url = hero.get("src") if hero else None
        on_break = soup.select_one(".on-break") is not None
        social = self._social_links(soup)

        return self.build_record(
            candidate,
            venue={
                "name": candidate.name,
                "address": address,
                "postcode": candidate.postcode,
                "city_name": guess_city(address),
                "country_code": self.DEFAULT_COUNTRY_CODE,
                "country_name": self.DEFAULT_COUNTRY_NAME,
                "latitude": candidate.latitude,
                "longitude": candidate.longitude,
                "phone": phone,
                **social,
            },
            event={
                "name": f"Quizmeisters at {candidate.name}",
                "day_of_week": schedule.day_of_week,
                "start_time": schedule.start_time,
                "frequency": "weekly",
                # Quizmeisters nights are always free
                "entry_fee_cents": 0,
                "description": self._description(soup),
                "hero_image_url": hero_image_url,
                "time_text": time_text,
                "fee_text": "Free",
            },
            performer=self._performer(soup),
            on_break=on_break,
            source_fields={
                "time_text": time_text,
                "hero_image_url": hero_image_url,
                "on_break": on_break,
            },
        )
