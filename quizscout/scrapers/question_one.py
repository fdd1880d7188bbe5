"""
Question One scraper.

Index: the WordPress venue RSS feed, paged with ?paged=N until an empty
page or a 404. Detail: the venue page, where every field sits in a
".text-with-icon" block identified by the SVG icon it uses (#pin, #calendar,
#tag, #phone) rather than by position.
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup

from quizscout.scrapers.base import BaseSourceScraper
from quizscout.scrapers.records import RawRecord, VenueCandidate
from quizscout.utils.price_utils import frequency_from_title, parse_fee_cents
from quizscout.utils.string_utils import (
    blank_to_none,
    clean_text,
    extract_postcode,
    guess_city,
    strip_query,
)
from quizscout.utils.time_parser import parse_time_text


def clean_title(raw_title: str) -> str:
    """
    Strip the feed's "PUB QUIZ" prefix and any dash-separated suffix.

    Examples:
        >>> clean_title("PUB QUIZ – The Royal Oak – Islington")
        'The Royal Oak'
        >>> clean_title("PUB QUIZ: The Crown")
        'The Crown'
    """
    title = re.sub(r"^PUB QUIZ[^\w\s]*", "", raw_title or "", flags=re.IGNORECASE)
    title = re.sub(r"^[–\-\s]+", "", title)
    title = re.sub(r"\s+[–].*$", "", title)
    return clean_text(title)


class QuestionOneScraper(BaseSourceScraper):
    """Scraper for questionone.com pub quiz listings."""

    SOURCE_NAME = "question_one"
    BASE_URL = "https://questionone.com"
    PAGED_INDEX = True
    DEFAULT_COUNTRY_CODE = "GB"
    DEFAULT_COUNTRY_NAME = "United Kingdom"

    def index_url(self, page: int = 1) -> str:
        return f"{self.BASE_URL}/venues/feed/?paged={page}"

    def parse_index(self, document: str) -> List[VenueCandidate]:
        """Read title and link from each RSS item; links lose their query string."""
        soup = BeautifulSoup(document, "xml")
        candidates = []

        for item in soup.find_all("item"):
            title_tag = item.find("title")
            link_tag = item.find("link")
            if not title_tag or not link_tag:
                continue

            name = clean_title(title_tag.get_text())
            link = clean_text(link_tag.get_text())
            if not name or not link:
                self.logger.debug(f"Skipping feed item without title/link: {item!r:.120}")
                continue

            candidates.append(
                VenueCandidate(source=self.SOURCE_NAME, url=strip_query(link), name=name)
            )

        return candidates

    @staticmethod
    def find_icon_text(soup: BeautifulSoup, icon: str) -> Optional[str]:
        """Text of the .text-with-icon block whose <use> points at #icon."""
        for block in soup.select(".text-with-icon"):
            for use in block.find_all("use"):
                href = use.get("href") or use.get("xlink:href") or ""
                if href.endswith(f"#{icon}"):
                    text_el = block.select_one(".text-with-icon__text")
                    return blank_to_none(text_el.get_text(" ") if text_el else None)
        return None

    def extract(self, document: str, candidate: VenueCandidate) -> RawRecord:
        soup = self.parse_html(document)

        address = self.require(
            self.find_icon_text(soup, "pin"), "address", candidate, "no #pin icon block"
        )
        time_text = self.require(
            self.find_icon_text(soup, "calendar"), "time_text", candidate, "no #calendar icon block"
        )
        fee_text = self.find_icon_text(soup, "tag")
        phone = self.find_icon_text(soup, "phone")

        website = None
        for link in soup.select("a[href]"):
            if "visit website" in link.get_text().lower():
                website = blank_to_none(link["href"])
                break

        description = "\n\n".join(
            clean_text(p.get_text(" ")) for p in soup.select(".post-content-area p")
        ).strip()

        hero = soup.select_one("img[src*='wp-content/uploads']")
        hero_image_url = hero["src"] if hero else None

        schedule = parse_time_text(time_text)
        title_el = soup.select_one("h1.post-title")
        raw_title = clean_text(title_el.get_text()) if title_el else candidate.name
        name = clean_title(raw_title) or candidate.name

        return self.build_record(
            candidate,
            venue={
                "name": name,
                "address": address,
                "postcode": extract_postcode(address),
                "city_name": guess_city(address),
                "country_code": self.DEFAULT_COUNTRY_CODE,
                "country_name": self.DEFAULT_COUNTRY_NAME,
                "phone": phone,
                "website": website,
            },
            event={
                "name": f"Question One at {name}",
                "day_of_week": schedule.day_of_week,
                "start_time": schedule.start_time,
                "frequency": frequency_from_title(raw_title),
                "entry_fee_cents": parse_fee_cents(fee_text),
                "description": description or None,
                "hero_image_url": hero_image_url,
                "time_text": time_text,
                "fee_text": fee_text,
            },
            source_fields={
                "raw_title": raw_title,
                "time_text": time_text,
                "fee_text": fee_text,
                "hero_image_url": hero_image_url,
            },
        )
