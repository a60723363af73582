"""Contracts the orchestrator consumes. Concrete clients live in ``ecotour.tools``."""
from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from ecotour.schemas import PlaceData, PointOfInterest, Tour, TourSummary


class SuggestionService(Protocol):
    async def suggest(
        self,
        city: str,
        count: int,
        preferences: Sequence[str],
        max_time: float,
        mode: str,
        instructions: str,
    ) -> List[PointOfInterest]: ...


class EnrichmentService(Protocol):
    async def enrich(self, name: str, city: str) -> Optional[PlaceData]: ...

    def photo_url(self, reference: str) -> str: ...


class OptimizationService(Protocol):
    async def optimize(
        self,
        pois: Sequence[PointOfInterest],
        mode: str,
        city: str,
        preferences: Sequence[str],
    ) -> Tour: ...


class TourStore(Protocol):
    async def save(self, tour: Tour, name: str) -> str: ...

    async def list_saved(self) -> List[TourSummary]: ...

    async def get_by_id(self, tour_id: str) -> Optional[Tour]: ...


class MapSink(Protocol):
    async def draw_route(self, tour: Tour) -> None: ...

    def add_marker(self, poi: PointOfInterest) -> None: ...

    def remove_marker(self, name: str) -> None: ...

    def clear_map(self) -> None: ...
