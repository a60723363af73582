from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ecotour.events import LoadTour
from ecotour.main import app, get_orchestrator
from ecotour.schemas import TourState


def _sample_payload() -> dict:
    return {
        "city": "Seville",
        "numberOfSites": 3,
        "userPreferences": ["history", "gardens"],
        "maxTime": 120,
        "mode": "walking",
        "systemInstruction": "",
    }


@pytest.fixture
def orchestrator(build_orchestrator, fakes, candidates):
    orchestrator = build_orchestrator(fakes.Suggestions(candidates[:3]))
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield orchestrator
    app.dependency_overrides.clear()


def test_api_tour_lifecycle(orchestrator, candidates):
    with TestClient(app) as client:
        response = client.post("/api/tour", json=_sample_payload())
        assert response.status_code == 200
        body = response.json()
        assert [p["name"] for p in body["tour"]["pois"]] == ["Alcazar", "Cathedral", "Plaza de Espana"]
        assert body["is_loading"] is False and body["has_error"] is False

        added = client.post("/api/tour/pois", json=candidates[3].model_dump(mode="json"))
        assert len(added.json()["tour"]["pois"]) == 4

        removed = client.delete("/api/tour/pois/Cathedral")
        assert [p["name"] for p in removed.json()["tour"]["pois"]] == [
            "Alcazar",
            "Plaza de Espana",
            "Metropol Parasol",
        ]

        summary = client.get("/api/tour/summary").json()
        assert summary == {
            "city": "Seville",
            "mode": "walking",
            "poi_count": 3,
            "distance": "3.6 km",
            "duration": "45 min",
            "user_preferences": ["history", "gardens"],
        }

        saved = client.post("/api/tours/saved", json={"name": "Gardens walk"})
        assert saved.status_code == 200
        tour_id = saved.json()["id"]

        joined = client.post("/api/tour/join").json()
        assert joined["is_joined"] is True

        reset = client.delete("/api/tour").json()
        assert reset["tour"] is None and reset["is_joined"] is False

        listed = client.get("/api/tours/saved").json()
        assert [t["id"] for t in listed["saved_tours"]] == [tour_id]

        reloaded = client.post(f"/api/tours/saved/{tour_id}/load").json()
        assert len(reloaded["tour"]["pois"]) == 3

        map_view = client.get("/api/map").json()
        assert map_view["route"] == ["Alcazar", "Plaza de Espana", "Metropol Parasol"]
        assert "clear_map" in [c["command"] for c in map_view["commands"]]


def test_api_rejects_invalid_tour_request(orchestrator):
    with TestClient(app) as client:
        response = client.post("/api/tour", json={"city": "Seville", "numberOfSites": 0})

    assert response.status_code == 422


def test_api_save_without_tour_conflicts(orchestrator):
    with TestClient(app) as client:
        assert client.post("/api/tours/saved", json={"name": "Empty"}).status_code == 409
        assert client.get("/api/tour/summary").status_code == 404


def test_api_load_tour_dispatches_event(orchestrator, monkeypatch):
    dispatch = AsyncMock(return_value=TourState(is_loading=False))
    monkeypatch.setattr(orchestrator, "dispatch", dispatch)

    with TestClient(app) as client:
        response = client.post("/api/tour", json=_sample_payload())

    assert response.status_code == 200
    dispatch.assert_awaited_once()
    event = dispatch.await_args.args[0]
    assert isinstance(event, LoadTour)
    assert event.number_of_sites == 3
    assert event.user_preferences == ["history", "gardens"]
    assert response.json()["tour"] is None
