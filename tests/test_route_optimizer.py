import asyncio
from typing import List

import httpx
import pytest

from ecotour.errors import UpstreamServiceError
from ecotour.tools.route_optimizer import RouteOptimizer


class DummyResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


class DummyAsyncClient:
    def __init__(self, payload, requests: List[dict], *args, **kwargs):
        self.payload = payload
        self.requests = requests

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def get(self, url, params=None):
        self.requests.append(params)
        return DummyResponse(self.payload)


def _patch(monkeypatch, payload):
    requests: List[dict] = []
    monkeypatch.setattr(httpx, "AsyncClient", lambda *a, **kw: DummyAsyncClient(payload, requests, *a, **kw))
    return requests


def test_optimize_applies_waypoint_order(monkeypatch, candidates):
    async def run() -> None:
        requests = _patch(
            monkeypatch,
            {
                "status": "OK",
                "routes": [
                    {
                        "waypoint_order": [2, 0, 1],
                        "legs": [
                            {"distance": {"value": 400}, "duration": {"value": 300}},
                            {"distance": {"value": 500}, "duration": {"value": 360}},
                            {"distance": {"value": 300}, "duration": {"value": 240}},
                            {"distance": {"value": 800}, "duration": {"value": 600}},
                        ],
                        "overview_polyline": {"points": "abc~def"},
                    }
                ],
            },
        )

        tour = await RouteOptimizer(api_key="test-key").optimize(candidates, "cycling", "Seville", ["history"])

        assert tour.poi_names() == [
            "Alcazar",
            "Metropol Parasol",
            "Cathedral",
            "Plaza de Espana",
            "Torre del Oro",
        ]
        assert tour.distance == 2000.0
        assert tour.duration == 1500.0
        assert tour.polyline == "abc~def"
        assert tour.mode == "cycling"
        params = requests[0]
        assert params["mode"] == "bicycling"
        assert params["waypoints"].startswith("optimize:true|")
        assert params["origin"] == f"{candidates[0].gps.lat},{candidates[0].gps.lng}"

    asyncio.run(run())


def test_single_poi_needs_no_request(monkeypatch, candidates):
    async def run() -> None:
        requests = _patch(monkeypatch, {})

        tour = await RouteOptimizer(api_key="test-key").optimize(candidates[:1], "walking", "Seville", [])

        assert tour.poi_names() == ["Alcazar"]
        assert tour.distance == 0.0
        assert requests == []

    asyncio.run(run())


def test_non_ok_status_is_upstream_error(monkeypatch, candidates):
    async def run() -> None:
        _patch(monkeypatch, {"status": "ZERO_RESULTS", "routes": []})

        with pytest.raises(UpstreamServiceError):
            await RouteOptimizer(api_key="test-key").optimize(candidates[:3], "walking", "Seville", [])

    asyncio.run(run())


def test_invalid_waypoint_order_is_rejected(monkeypatch, candidates):
    async def run() -> None:
        _patch(monkeypatch, {"status": "OK", "routes": [{"waypoint_order": [0, 0], "legs": []}]})

        with pytest.raises(UpstreamServiceError):
            await RouteOptimizer(api_key="test-key").optimize(candidates[:4], "walking", "Seville", [])

    asyncio.run(run())


def test_empty_poi_set_is_rejected():
    async def run() -> None:
        with pytest.raises(UpstreamServiceError):
            await RouteOptimizer(api_key="test-key").optimize([], "walking", "Seville", [])

    asyncio.run(run())
