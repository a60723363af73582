"""Route optimization through the Google Directions API.

The first POI is the start of the tour and the last one its end; every POI in
between is sent as a waypoint with ``optimize:true`` so the service decides
the visiting order. The returned ``waypoint_order`` is applied as-is.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
import logging
import os

import httpx

from ecotour.config import settings
from ecotour.errors import UpstreamServiceError
from ecotour.schemas import PointOfInterest, Tour

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

# Tour modes -> Directions API travel modes
TRAVEL_MODES: Dict[str, str] = {
    "walking": "walking",
    "cycling": "bicycling",
    "bicycling": "bicycling",
    "driving": "driving",
    "transit": "transit",
}


def _latlng(poi: PointOfInterest) -> str:
    return f"{poi.gps.lat},{poi.gps.lng}"


class RouteOptimizer:
    DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

    def __init__(self, *, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or settings.maps_api_key
        self.timeout = timeout or settings.http_timeout

    async def optimize(
        self,
        pois: Sequence[PointOfInterest],
        mode: str,
        city: str,
        preferences: Sequence[str],
    ) -> Tour:
        pois = list(pois)
        if not pois:
            raise UpstreamServiceError("optimization", "cannot optimize an empty POI set")
        if len(pois) == 1:
            return Tour(city=city, pois=tuple(pois), mode=mode, user_preferences=tuple(preferences),
                        distance=0.0, duration=0.0)
        if not self.api_key:
            raise UpstreamServiceError("optimization", "GOOGLE_MAPS_API_KEY environment variable not configured")

        travel_mode = TRAVEL_MODES.get(mode.lower())
        if travel_mode is None:
            logger.warning("Unknown travel mode %r; optimizing as walking", mode)
            travel_mode = "walking"

        intermediate = pois[1:-1]
        params: Dict[str, Any] = {
            "origin": _latlng(pois[0]),
            "destination": _latlng(pois[-1]),
            "mode": travel_mode,
            "key": self.api_key,
        }
        if intermediate:
            params["waypoints"] = "optimize:true|" + "|".join(_latlng(p) for p in intermediate)

        logger.info("Optimizing %d POI(s) in %s (%s)", len(pois), city, travel_mode)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.DIRECTIONS_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamServiceError("optimization", str(exc)) from exc

        status = data.get("status")
        routes = data.get("routes") or []
        if status != "OK" or not routes:
            raise UpstreamServiceError(
                "optimization", f"directions status {status}: {data.get('error_message', 'no route')}"
            )

        route = routes[0]
        order: List[int] = list(route.get("waypoint_order") or range(len(intermediate)))
        if sorted(order) != list(range(len(intermediate))):
            raise UpstreamServiceError("optimization", f"invalid waypoint order {order}")

        ordered = [pois[0]] + [intermediate[i] for i in order] + [pois[-1]]
        legs = route.get("legs") or []
        distance = float(sum((leg.get("distance") or {}).get("value", 0) for leg in legs))
        duration = float(sum((leg.get("duration") or {}).get("value", 0) for leg in legs))
        polyline = (route.get("overview_polyline") or {}).get("points")

        logger.debug("Optimized order for %s: %s", city, [p.name for p in ordered])
        return Tour(
            city=city,
            pois=tuple(ordered),
            mode=mode,
            user_preferences=tuple(preferences),
            distance=distance,
            duration=duration,
            polyline=polyline,
        )
