from typing import Any, Dict, List, Optional
from urllib.parse import urlencode
import os

import httpx

from ecotour.config import settings
from ecotour.errors import UpstreamServiceError
from ecotour.schemas import PlaceData

import logging

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

DETAIL_FIELDS = (
    "name",
    "geometry",
    "editorial_summary",
    "website",
    "photos",
    "rating",
    "formatted_address",
    "user_ratings_total",
)


class PlacesClient:
    """
    Google Places lookup: a text search for ``"<name> <city>"`` followed by a
    details request on the best match.
    """
    TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
    DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
    PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"

    def __init__(self, *, api_key: Optional[str] = None, timeout: Optional[float] = None,
                 photo_max_width: int = 400):
        self.api_key = api_key or settings.places_api_key
        self.timeout = timeout or settings.http_timeout
        self.photo_max_width = photo_max_width

    async def enrich(self, name: str, city: str) -> Optional[PlaceData]:
        """Return place metadata for ``name`` in ``city`` or ``None`` when nothing matches."""
        if not self.api_key:
            raise UpstreamServiceError("places", "GOOGLE_PLACES_API_KEY environment variable not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                search = await client.get(
                    self.TEXT_SEARCH_URL,
                    params={"query": f"{name} {city}", "key": self.api_key},
                )
                search.raise_for_status()
                results = search.json().get("results") or []
                if not results:
                    logger.debug("No places match for %s in %s", name, city)
                    return None
                place_id = results[0].get("place_id")
                if not place_id:
                    return self._to_place_data(results[0])

                details = await client.get(
                    self.DETAILS_URL,
                    params={"place_id": place_id, "fields": ",".join(DETAIL_FIELDS), "key": self.api_key},
                )
                details.raise_for_status()
                result = details.json().get("result")
        except httpx.HTTPError as exc:
            raise UpstreamServiceError("places", f"lookup for {name!r} failed: {exc}") from exc

        if not result:
            return self._to_place_data(results[0])
        return self._to_place_data(result)

    def photo_url(self, reference: str) -> str:
        params = {"maxwidth": self.photo_max_width, "photoreference": reference, "key": self.api_key or ""}
        return f"{self.PHOTO_URL}?{urlencode(params)}"

    @staticmethod
    def _to_place_data(result: Dict[str, Any]) -> PlaceData:
        location = (result.get("geometry") or {}).get("location") or {}
        summary = result.get("editorial_summary")
        if isinstance(summary, dict):
            summary = summary.get("overview")
        photos: List[str] = [
            photo["photo_reference"]
            for photo in result.get("photos") or []
            if isinstance(photo, dict) and photo.get("photo_reference")
        ]
        return PlaceData(
            lat=location.get("lat"),
            lng=location.get("lng"),
            name=result.get("name"),
            editorial_summary=summary or None,
            website=result.get("website"),
            photo_references=tuple(photos),
            rating=result.get("rating"),
            formatted_address=result.get("formatted_address"),
            user_ratings_total=result.get("user_ratings_total"),
        )
