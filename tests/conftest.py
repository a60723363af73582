from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union

import pytest

from ecotour.agents.tour_builder import TourBuilder
from ecotour.errors import UpstreamServiceError
from ecotour.map_sink import RecordingMapSink
from ecotour.orchestrator import TourOrchestrator
from ecotour.schemas import LatLng, PlaceData, PointOfInterest, Tour
from ecotour.store import InMemoryTourStore


def _poi(name: str, lat: float = 37.38, lng: float = -5.99, **extra) -> PointOfInterest:
    return PointOfInterest(name=name, gps=LatLng(lat=lat, lng=lng), **extra)


class FakeSuggestions:
    def __init__(self, pois: Sequence[PointOfInterest] = (), error: Optional[Exception] = None):
        self.pois = list(pois)
        self.error = error
        self.calls: List[tuple] = []

    async def suggest(self, city, count, preferences, max_time, mode, instructions):
        self.calls.append((city, count, list(preferences), max_time, mode, instructions))
        if self.error is not None:
            raise self.error
        return list(self.pois)


class FakePlaces:
    def __init__(self, places: Optional[Dict[str, Union[PlaceData, Exception, None]]] = None):
        self.places = places or {}
        self.calls: List[tuple] = []

    async def enrich(self, name, city):
        self.calls.append((name, city))
        result = self.places.get(name)
        if isinstance(result, Exception):
            raise result
        return result

    def photo_url(self, reference: str) -> str:
        return f"https://photos.test/{reference}"


class FakeOptimizer:
    """Keeps the given order unless ``reverse`` is set; can be told to fail."""

    def __init__(self, reverse: bool = False):
        self.reverse = reverse
        self.fail = False
        self.calls: List[dict] = []

    async def optimize(self, pois, mode, city, preferences):
        self.calls.append(
            {"names": [p.name for p in pois], "mode": mode, "city": city, "preferences": list(preferences)}
        )
        if self.fail:
            raise UpstreamServiceError("optimization", "directions status OVER_QUERY_LIMIT")
        ordered = list(reversed(pois)) if self.reverse else list(pois)
        return Tour(
            city=city,
            pois=tuple(ordered),
            mode=mode,
            user_preferences=tuple(preferences),
            distance=1200.0 * len(ordered),
            duration=900.0 * len(ordered),
        )


@pytest.fixture
def make_poi():
    return _poi


@pytest.fixture
def optimizer():
    return FakeOptimizer()


@pytest.fixture
def store():
    return InMemoryTourStore()


@pytest.fixture
def sink():
    return RecordingMapSink()


@pytest.fixture
def candidates():
    return [_poi(name, 37.38 + i / 100, -5.99 + i / 100) for i, name in enumerate(
        ["Alcazar", "Cathedral", "Plaza de Espana", "Metropol Parasol", "Torre del Oro"]
    )]


@pytest.fixture
def build_orchestrator(optimizer, store, sink):
    def _build(suggestions=None, places=None, **kwargs) -> TourOrchestrator:
        builder = TourBuilder(suggestions or FakeSuggestions(), places or FakePlaces(), optimizer)
        return TourOrchestrator(builder, store, sink, current_location_name="current_location", **kwargs)

    return _build


@pytest.fixture
def fakes():
    """Expose the fake service classes to tests that need custom instances."""
    class _Fakes:
        Suggestions = FakeSuggestions
        Places = FakePlaces
        Optimizer = FakeOptimizer

    return _Fakes
