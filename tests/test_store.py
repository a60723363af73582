import asyncio
import json

import pytest

from ecotour.config import Settings
from ecotour.errors import StoreError
from ecotour.schemas import LatLng, PointOfInterest, Tour
from ecotour.store import InMemoryTourStore, JsonFileTourStore, build_store


def _tour() -> Tour:
    return Tour(
        city="Seville",
        pois=(
            PointOfInterest(name="Alcazar", gps=LatLng(lat=37.3831, lng=-5.9902), rating=4.7),
            PointOfInterest(name="Cathedral", gps=LatLng(lat=37.3858, lng=-5.9931), address="Av. de la Constitucion"),
        ),
        mode="walking",
        user_preferences=["history", "architecture"],
        distance=650.0,
        duration=540.0,
    )


def test_json_store_round_trip(tmp_path):
    async def run() -> None:
        path = tmp_path / "nested" / "tours.json"
        store = JsonFileTourStore(str(path))

        tour_id = await store.save(_tour(), "Old town")
        loaded = await JsonFileTourStore(str(path)).get_by_id(tour_id)

        assert loaded == _tour()
        summaries = await store.list_saved()
        assert [(s.id, s.name, s.city, s.poi_count) for s in summaries] == [(tour_id, "Old town", "Seville", 2)]

    asyncio.run(run())


def test_json_store_unknown_id_and_missing_file(tmp_path):
    async def run() -> None:
        store = JsonFileTourStore(str(tmp_path / "tours.json"))

        assert await store.get_by_id("nope") is None
        assert await store.list_saved() == []

    asyncio.run(run())


def test_json_store_corrupt_file_raises_store_error(tmp_path):
    async def run() -> None:
        path = tmp_path / "tours.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileTourStore(str(path))

        with pytest.raises(StoreError):
            await store.list_saved()
        with pytest.raises(StoreError):
            await store.save(_tour(), "broken")

    asyncio.run(run())


def test_json_store_skips_unreadable_records(tmp_path):
    async def run() -> None:
        path = tmp_path / "tours.json"
        store = JsonFileTourStore(str(path))
        tour_id = await store.save(_tour(), "Good")
        data = json.loads(path.read_text(encoding="utf-8"))
        data["tours"]["bad"] = {"id": "bad"}
        path.write_text(json.dumps(data), encoding="utf-8")

        summaries = await store.list_saved()

        assert [s.id for s in summaries] == [tour_id]
        with pytest.raises(StoreError):
            await store.get_by_id("bad")

    asyncio.run(run())


def test_in_memory_store_lists_newest_first():
    async def run() -> None:
        store = InMemoryTourStore()
        first = await store.save(_tour(), "First")
        second = await store.save(_tour(), "Second")

        summaries = await store.list_saved()

        assert {s.id for s in summaries} == {first, second}
        assert summaries[0].saved_at >= summaries[1].saved_at

    asyncio.run(run())


def test_build_store_honours_backend(tmp_path):
    assert isinstance(build_store(Settings(store_backend="memory")), InMemoryTourStore)
    store = build_store(Settings(store_backend="local", store_path=str(tmp_path / "t.json")))
    assert isinstance(store, JsonFileTourStore)
    assert store.path == str(tmp_path / "t.json")
