"""
Google Places / Geocoding lookups for venue addresses.

Used by the detail pipeline to attach a place_id, coordinates, city and
country to venues whose source page does not provide them. Lookups are
best effort: every failure is logged and yields None.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from quizscout.scrapers.records import RawVenue

logger = logging.getLogger(__name__)

PLACES_URL = "https://maps.googleapis.com/maps/api/place/findplacefromtext/json"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"


@dataclass
class GeocodeResult:
    place_id: Optional[str] = None
    formatted_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city_name: Optional[str] = None
    country_name: Optional[str] = None
    country_code: Optional[str] = None
    postcode: Optional[str] = None

    def merged_with(self, other: "GeocodeResult") -> "GeocodeResult":
        """Fill this result's missing values from other."""
        values = {
            name: getattr(self, name) if getattr(self, name) is not None else getattr(other, name)
            for name in self.__dataclass_fields__
        }
        return GeocodeResult(**values)


@dataclass
class PlacePhoto:
    reference: str
    url: str


def parse_address_components(components: List[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """Pick city, country and postcode out of Google address_components."""
    parsed: Dict[str, Optional[str]] = {}
    for component in components or []:
        types = component.get("types") or []
        if "country" in types:
            parsed["country_name"] = component.get("long_name")
            parsed["country_code"] = component.get("short_name")
        elif "locality" in types or ("postal_town" in types and "city_name" not in parsed):
            parsed["city_name"] = component.get("long_name")
        elif "postal_code" in types:
            parsed["postcode"] = component.get("long_name")
    return parsed


def parse_result(result: Dict[str, Any]) -> GeocodeResult:
    location = (result.get("geometry") or {}).get("location") or {}
    return GeocodeResult(
        place_id=result.get("place_id"),
        formatted_address=result.get("formatted_address"),
        latitude=location.get("lat"),
        longitude=location.get("lng"),
        **parse_address_components(result.get("address_components")),
    )


class GoogleGeocoder:
    """
    Places "find place" lookup with a Geocoding API fallback for the
    country when Places does not return one.
    """

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10,
    ):
        self.api_key = api_key
        self._client = client
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, params: Dict[str, str]) -> Optional[Dict[str, Any]]:
        try:
            response = await self._get_client().get(url, params={**params, "key": self.api_key})
        except httpx.HTTPError as e:
            logger.error(f"Google API request failed: {e}")
            return None
        if response.status_code != 200:
            logger.error(f"Google API HTTP {response.status_code}")
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Failed to decode Google API response: {e}")
            return None

    async def find_place(self, address: str) -> Optional[GeocodeResult]:
        data = await self._get_json(
            PLACES_URL,
            {
                "input": address,
                "inputtype": "textquery",
                "fields": "formatted_address,name,place_id,geometry,address_components",
            },
        )
        if not data:
            return None
        status = data.get("status")
        if status != "OK" or not data.get("candidates"):
            if status not in ("OK", "ZERO_RESULTS"):
                logger.error(f"Google Places API error: {status} - {data.get('error_message')}")
            return None
        return parse_result(data["candidates"][0])

    async def geocode(self, address: str) -> Optional[GeocodeResult]:
        data = await self._get_json(GEOCODE_URL, {"address": address})
        if not data:
            return None
        status = data.get("status")
        if status != "OK" or not data.get("results"):
            if status not in ("OK", "ZERO_RESULTS"):
                logger.error(f"Google Geocoding API error: {status} - {data.get('error_message')}")
            return None
        return parse_result(data["results"][0])

    async def lookup(self, address: str) -> Optional[GeocodeResult]:
        """Place lookup, completed by the geocoder when the country is missing."""
        place = await self.find_place(address)
        if place is None:
            return await self.geocode(address)
        if place.country_code is None:
            logger.info(f"Missing country, attempting Geocoding API for {address}")
            geo = await self.geocode(address)
            if geo is not None:
                return place.merged_with(geo)
        return place

    def photo_url(self, reference: str, max_width: int = 800) -> str:
        query = urlencode({"maxwidth": max_width, "photo_reference": reference, "key": self.api_key})
        return f"{PHOTO_URL}?{query}"

    async def place_photos(self, place_id: str, max_photos: int = 5) -> Optional[List[PlacePhoto]]:
        """
        First max_photos photos of a place, as downloadable URLs.

        Returns an empty list when the place has no photos and None when
        the Place Details request failed.
        """
        data = await self._get_json(DETAILS_URL, {"place_id": place_id, "fields": "photos"})
        if not data:
            return None
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            logger.error(f"Google Place Details API error: {status} - {data.get('error_message')}")
            return None
        photos = (data.get("result") or {}).get("photos") or []
        references = [photo["photo_reference"] for photo in photos if photo.get("photo_reference")]
        return [PlacePhoto(ref, self.photo_url(ref)) for ref in references[:max_photos]]


def apply_geocode(raw: RawVenue, result: Optional[GeocodeResult]) -> RawVenue:
    """Copy of raw with missing location fields filled from result."""
    if result is None:
        return raw

    updates: Dict[str, Any] = {}
    if raw.place_id is None and result.place_id:
        updates["place_id"] = result.place_id
    if raw.latitude is None and result.latitude is not None and result.longitude is not None:
        updates["latitude"] = result.latitude
        updates["longitude"] = result.longitude
    if raw.postcode is None and result.postcode:
        updates["postcode"] = result.postcode
    if raw.city_name is None and result.city_name:
        updates["city_name"] = result.city_name
    if raw.country_code is None and result.country_code:
        updates["country_code"] = result.country_code
        updates["country_name"] = result.country_name
    return raw.model_copy(update=updates) if updates else raw


def get_geocoder(settings) -> Optional[GoogleGeocoder]:
    """Geocoder when an API key is configured, otherwise None."""
    if not settings.google_maps_api_key:
        return None
    return GoogleGeocoder(settings.google_maps_api_key)
