"""Saved-tour persistence.

``JsonFileTourStore`` keeps every saved tour in one JSON document on disk;
``InMemoryTourStore`` is the process-local variant used by tests and by
``TOUR_PLANNER_STORE_BACKEND=memory``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ecotour.config import Settings, settings as default_settings
from ecotour.errors import StoreError
from ecotour.schemas import SavedTour, Tour, TourSummary

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


def _new_id() -> str:
    return uuid.uuid4().hex


def _summaries(records: List[SavedTour]) -> List[TourSummary]:
    return [record.summary() for record in sorted(records, key=lambda r: r.saved_at, reverse=True)]


class InMemoryTourStore:
    def __init__(self) -> None:
        self._tours: Dict[str, SavedTour] = {}

    async def save(self, tour: Tour, name: str) -> str:
        record = SavedTour(id=_new_id(), name=name, tour=tour)
        self._tours[record.id] = record
        return record.id

    async def list_saved(self) -> List[TourSummary]:
        return _summaries(list(self._tours.values()))

    async def get_by_id(self, tour_id: str) -> Optional[Tour]:
        record = self._tours.get(tour_id)
        return record.tour if record else None


class JsonFileTourStore:
    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    async def save(self, tour: Tour, name: str) -> str:
        record = SavedTour(id=_new_id(), name=name, tour=tour)
        await asyncio.to_thread(self._write_record, record)
        logger.info("Saved tour %r (%s) to %s", name, record.id, self.path)
        return record.id

    async def list_saved(self) -> List[TourSummary]:
        data = await asyncio.to_thread(self._load)
        return _summaries(self._records(data))

    async def get_by_id(self, tour_id: str) -> Optional[Tour]:
        data = await asyncio.to_thread(self._load)
        raw = data["tours"].get(tour_id)
        if raw is None:
            return None
        try:
            return SavedTour.model_validate(raw).tour
        except ValidationError as exc:
            raise StoreError(f"saved tour {tour_id} is corrupt") from exc

    def _write_record(self, record: SavedTour) -> None:
        with self._lock:
            data = self._load_unlocked()
            data["tours"][record.id] = record.model_dump(mode="json")
            try:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(self.path, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
            except OSError as exc:
                raise StoreError(f"unable to write {self.path}: {exc}") from exc

    def _load(self) -> Dict[str, Any]:
        with self._lock:
            return self._load_unlocked()

    def _load_unlocked(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {"tours": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"unable to read {self.path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("tours"), dict):
            raise StoreError(f"{self.path} is not a tour store")
        return data

    @staticmethod
    def _records(data: Dict[str, Any]) -> List[SavedTour]:
        records: List[SavedTour] = []
        for tour_id, raw in data["tours"].items():
            try:
                records.append(SavedTour.model_validate(raw))
            except ValidationError:
                logger.warning("Skipping unreadable saved tour %s", tour_id)
        return records


def build_store(config: Optional[Settings] = None):
    config = config or default_settings
    if config.store_backend == "memory":
        return InMemoryTourStore()
    return JsonFileTourStore(config.store_path)
