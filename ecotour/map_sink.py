"""Map sinks receive drawing commands from the orchestrator."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from ecotour.schemas import PointOfInterest, Tour

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class RecordingMapSink:
    """Keeps the commands it receives plus the marker set they imply.

    Used by the HTTP API so a client can replay what the map should show.
    """

    def __init__(self, max_commands: int = 200) -> None:
        self.max_commands = max_commands
        self.commands: List[Dict[str, Any]] = []
        self.route: Optional[Tour] = None
        self.markers: Dict[str, PointOfInterest] = {}

    async def draw_route(self, tour: Tour) -> None:
        logger.debug("Drawing %s route with %d stop(s)", tour.city, len(tour.pois))
        self.route = tour
        self.markers = {poi.name: poi for poi in tour.pois}
        self._record("draw_route", city=tour.city, pois=tour.poi_names())

    def add_marker(self, poi: PointOfInterest) -> None:
        self.markers[poi.name] = poi
        self._record("add_marker", name=poi.name)

    def remove_marker(self, name: str) -> None:
        self.markers.pop(name, None)
        self._record("remove_marker", name=name)

    def clear_map(self) -> None:
        self.route = None
        self.markers = {}
        self._record("clear_map")

    def _record(self, command: str, **details: Any) -> None:
        self.commands.append({"command": command, **details})
        if len(self.commands) > self.max_commands:
            del self.commands[: len(self.commands) - self.max_commands]
