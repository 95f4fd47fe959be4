"""
Singleton Google Places client used as the enrichment source.
"""
import asyncio
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiolimiter import AsyncLimiter
from loguru import logger
from rapidfuzz import fuzz

from salon_research.config import (
    GOOGLE_PLACES_API_KEY,
    MAX_THUMBNAILS_PER_SALON,
    PLACE_MATCH_THRESHOLD,
    PLACES_DETAILS_URL,
    PLACES_FIND_URL,
    PLACES_PHOTO_URL,
    PLACES_TIMEOUT,
    THUMBNAIL_HEIGHT,
    THUMBNAIL_WIDTH,
)
from salon_research.models import CLOSED, WEEKDAYS, Coordinates, DayHours, PlaceRecord, Rating

FIND_FIELDS = "place_id,name,formatted_address"
DETAIL_FIELDS = (
    "place_id,name,formatted_address,geometry,photos,rating,user_ratings_total,"
    "opening_hours,website,formatted_phone_number"
)
# Places numbers days from Sunday
PLACES_DAY_ORDER = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def _format_time(value: Optional[str]) -> str:
    if not value or len(value) != 4 or not value.isdigit():
        return CLOSED
    return f"{value[:2]}:{value[2:]}"


def format_business_hours(opening_hours: Optional[Dict[str, Any]]) -> Optional[Dict[str, DayHours]]:
    """
    Convert Places opening-hours periods into a seven-day schedule.

    Days without a period are closed; "0930" becomes "09:30". Returns None
    when the place publishes no periods at all.
    """
    periods = (opening_hours or {}).get("periods")
    if not periods:
        return None
    hours = {day: DayHours() for day in WEEKDAYS}
    for period in periods:
        opens = period.get("open") or {}
        day = opens.get("day")
        if not isinstance(day, int) or not 0 <= day < len(PLACES_DAY_ORDER):
            continue
        closes = period.get("close") or {}
        hours[PLACES_DAY_ORDER[day]] = DayHours(
            open=_format_time(opens.get("time")),
            close=_format_time(closes.get("time")),
        )
    return hours


def photo_url(photo_reference: str) -> str:
    query = urlencode({
        "maxwidth": THUMBNAIL_WIDTH,
        "maxheight": THUMBNAIL_HEIGHT,
        "photoreference": photo_reference,
        "key": GOOGLE_PLACES_API_KEY,
    })
    return f"{PLACES_PHOTO_URL}?{query}"


def best_candidate(
    candidates: List[Dict[str, Any]], expected_name: Optional[str]
) -> Optional[Dict[str, Any]]:
    """Candidate whose name best matches `expected_name`, if it clears the threshold."""
    if not candidates:
        return None
    if not expected_name:
        return candidates[0]
    scored = [
        (fuzz.token_set_ratio(expected_name.lower(), str(c.get("name", "")).lower()), c)
        for c in candidates
    ]
    score, candidate = max(scored, key=lambda pair: pair[0])
    if score < PLACE_MATCH_THRESHOLD:
        logger.debug(f"✗ Best place candidate '{candidate.get('name')}' scored {score:.0f} for '{expected_name}'")
        return None
    return candidate


def to_place_record(result: Dict[str, Any], place_id: Optional[str] = None) -> PlaceRecord:
    location = (result.get("geometry") or {}).get("location") or {}
    lat, lng = location.get("lat"), location.get("lng")
    rating = None
    if result.get("rating") is not None:
        rating = Rating(stars=float(result["rating"]), number_of_reviewers=int(result.get("user_ratings_total") or 0))
    photos = [
        photo_url(p["photo_reference"])
        for p in (result.get("photos") or [])[:MAX_THUMBNAILS_PER_SALON]
        if p.get("photo_reference")
    ]
    return PlaceRecord(
        place_id=result.get("place_id") or place_id,
        name=result.get("name"),
        formatted_address=result.get("formatted_address"),
        coordinates=Coordinates(float(lat), float(lng)) if lat is not None and lng is not None else None,
        rating=rating,
        phone=result.get("formatted_phone_number"),
        website=result.get("website"),
        business_hours=format_business_hours(result.get("opening_hours")),
        photos=photos,
    )


class PlacesClient:
    """
    Singleton client for Google Places find-place and details lookups.

    Any failure to find a confident match is reported as None, never raised.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not PlacesClient._initialized:
            self.api_key = GOOGLE_PLACES_API_KEY
            self.rate_limiter = AsyncLimiter(max_rate=10, time_period=1.0)
            self._session: Optional[ClientSession] = None
            PlacesClient._initialized = True

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=ClientTimeout(total=PLACES_TIMEOUT))
        return self._session

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with self.rate_limiter:
            session = await self._get_session()
            async with session.get(url, params={**params, "key": self.api_key}) as resp:
                resp.raise_for_status()
                return await resp.json()

    async def find_place(self, query: str, expected_name: Optional[str] = None) -> Optional[PlaceRecord]:
        """
        Look up the best-matching place for a text query.

        Args:
            query: Free-text query, e.g. "Bella Hair salon Newtown".
            expected_name: Business name the candidate should resemble.

        Returns:
            Optional[PlaceRecord]: The matched place, or None.
        """
        if not self.enabled:
            logger.debug("🔕 Google Places disabled (no API key)")
            return None

        try:
            found = await self._get_json(PLACES_FIND_URL, {
                "input": query,
                "inputtype": "textquery",
                "fields": FIND_FIELDS,
            })
            if found.get("status") != "OK":
                logger.debug(f"⚠️ No Google Places results for: {query} (status: {found.get('status')})")
                return None

            candidate = best_candidate(found.get("candidates") or [], expected_name)
            if candidate is None or not candidate.get("place_id"):
                return None
            place_id = candidate["place_id"]
            logger.debug(f"✓ Found place match: {candidate.get('name', 'Unknown place')}")

            details = await self._get_json(PLACES_DETAILS_URL, {"place_id": place_id, "fields": DETAIL_FIELDS})
            if details.get("status") != "OK" or not details.get("result"):
                logger.debug(f"⚠️ No details found for place ID: {place_id} (status: {details.get('status')})")
                return None
        except (ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Google Places lookup failed for '{query}': {e}")
            return None

        place = to_place_record(details["result"], place_id)
        logger.debug(f"📸 Google has {len(place.photos)} photos for {place.name}")
        return place

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
