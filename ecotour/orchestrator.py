# ecotour/orchestrator.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type

from ecotour.agents.tour_builder import TourBuilder
from ecotour.config import settings
from ecotour.errors import StoreError, TourPlannerError
from ecotour.events import (
    AddPoi,
    JoinTour,
    LoadSavedTours,
    LoadTour,
    LoadTourFromSaved,
    RemovePoi,
    ResetTour,
    TourEvent,
)
from ecotour.protocols import MapSink, TourStore
from ecotour.schemas import PointOfInterest, Tour, TourState

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

_CLOSED = object()
# States a subscriber may leave unread before the oldest is dropped.
DEFAULT_MAX_PENDING = 100


class StateSubscription:
    """Async iterator over the states an orchestrator emits after subscribing.

    At most ``max_pending`` unread states are kept (``0`` keeps all of them);
    a reader that falls behind loses the oldest ones. Subscriptions stay
    registered until ``close()`` or the orchestrator's own ``close()``.
    """

    def __init__(self, owner: "TourOrchestrator", max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self._owner = owner
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def _offer(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def _push(self, state: TourState) -> None:
        if not self.closed:
            self._offer(state)

    def pending(self) -> List[TourState]:
        """Return (and consume) every state received but not yet iterated."""
        states: List[TourState] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                states.append(item)
        return states

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._owner._unsubscribe(self)
        self._offer(_CLOSED)

    def __aiter__(self) -> "StateSubscription":
        return self

    async def __anext__(self) -> TourState:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "StateSubscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class TourOrchestrator:
    """Single-writer state machine over the current tour.

    Events are queued and handled one at a time by a worker task; a handler,
    including every outbound call it awaits, finishes before the next event
    reads the state.
    """

    def __init__(
        self,
        builder: TourBuilder,
        store: TourStore,
        map_sink: MapSink,
        *,
        current_location_name: Optional[str] = None,
    ) -> None:
        self.builder = builder
        self.store = store
        self.map_sink = map_sink
        self.current_location_name = current_location_name or settings.current_location_name
        self._state = TourState()
        self._subscribers: List[StateSubscription] = []
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None
        self._handlers: Dict[Type[Any], Callable[[Any], Awaitable[None]]] = {
            LoadTour: self._on_load_tour,
            AddPoi: self._on_add_poi,
            RemovePoi: self._on_remove_poi,
            JoinTour: self._on_join_tour,
            ResetTour: self._on_reset_tour,
            LoadSavedTours: self._on_load_saved_tours,
            LoadTourFromSaved: self._on_load_tour_from_saved,
        }

    # ---------- public surface ----------
    @property
    def state(self) -> TourState:
        return self._state

    def subscribe(self, max_pending: int = DEFAULT_MAX_PENDING) -> StateSubscription:
        subscription = StateSubscription(self, max_pending)
        self._subscribers.append(subscription)
        return subscription

    def add(self, event: TourEvent) -> "asyncio.Future[TourState]":
        """Queue ``event``; the returned future resolves once it has been handled."""
        if type(event) not in self._handlers:
            raise TypeError(f"Unsupported event type {type(event).__name__}")
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            # first event, or the previous loop is gone (e.g. one loop per sync API call)
            self._cancel_pending()
            self._loop = loop
            self._queue = asyncio.Queue()
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())
        done: asyncio.Future = loop.create_future()
        self._queue.put_nowait((event, done))
        return done

    async def dispatch(self, event: TourEvent) -> TourState:
        return await self.add(event)

    async def save_current_tour(self, name: str) -> Optional[str]:
        tour = self._state.tour
        if tour is None:
            logger.info("No active tour to save")
            return None
        try:
            tour_id = await self.store.save(tour, name)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"unable to save tour {name!r}: {exc}") from exc
        logger.info("Saved %s tour as %r (%s)", tour.city, name, tour_id)
        return tour_id

    async def close(self) -> None:
        if self._worker is not None:
            if self._loop is not None and not self._loop.is_closed():
                self._worker.cancel()
            if self._loop is asyncio.get_running_loop():
                try:
                    await self._worker
                except asyncio.CancelledError:
                    pass
            self._worker = None
        self._cancel_pending()
        for subscription in list(self._subscribers):
            subscription.close()

    async def __aenter__(self) -> "TourOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ---------- event loop ----------
    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            event, done = await self._queue.get()
            self._inflight = done
            try:
                await self._handlers[type(event)](event)
            except asyncio.CancelledError:
                self._emit(is_loading=False)
                done.cancel()
                raise
            except Exception:
                logger.exception("Unhandled failure while processing %s", type(event).__name__)
                self._emit(is_loading=False, has_error=True)
            finally:
                self._inflight = None
                self._queue.task_done()
            if not done.done():
                done.set_result(self._state)

    def _cancel_pending(self) -> None:
        """Cancel the futures of the event in flight and of every queued event."""
        futures = [] if self._inflight is None else [self._inflight]
        self._inflight = None
        if self._queue is not None:
            while not self._queue.empty():
                _, done = self._queue.get_nowait()
                futures.append(done)
        if self._loop is None or self._loop.is_closed():
            return
        for done in futures:
            if not done.done():
                done.cancel()

    def _emit(self, **changes: Any) -> None:
        new_state = self._state.model_copy(update=changes)
        if new_state == self._state:
            return
        self._state = new_state
        for subscription in list(self._subscribers):
            subscription._push(new_state)

    def _unsubscribe(self, subscription: StateSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    # ---------- handlers ----------
    async def _on_load_tour(self, event: LoadTour) -> None:
        logger.info("Loading tour for %s with %d site(s)", event.city, event.number_of_sites)
        self._emit(is_loading=True, has_error=False)
        try:
            tour = await self.builder.build_tour(
                city=event.city,
                desired_count=event.number_of_sites,
                preferences=event.user_preferences,
                max_time=event.max_time,
                mode=event.mode,
                system_instruction=event.system_instruction,
            )
        except TourPlannerError as exc:
            logger.error("Error loading tour for %s: %s", event.city, exc)
            self._emit(is_loading=False, has_error=True)
            return
        self._emit(tour=tour, is_loading=False)
        logger.info("Loaded %s tour with %d POI(s)", tour.city, len(tour.pois))
        await self._draw(tour)

    async def _on_add_poi(self, event: AddPoi) -> None:
        tour = self._state.tour
        if tour is None:
            return
        if event.poi.name in tour.poi_names():
            logger.warning("POI %r is already part of the tour; ignoring", event.poi.name)
            return
        logger.info("Adding POI %s", event.poi.name)
        self._emit(is_loading=True, has_error=False)
        if await self._apply_pois([*tour.pois, event.poi], tour):
            self._notify(self.map_sink.add_marker, event.poi)

    async def _on_remove_poi(self, event: RemovePoi) -> None:
        tour = self._state.tour
        if tour is None:
            return
        if event.name == self.current_location_name:
            logger.info("Current location removed from the tour; leaving it")
            self._emit(is_joined=False)
        remaining = [poi for poi in tour.pois if poi.name != event.name]
        if len(remaining) == len(tour.pois):
            logger.info("POI %r is not part of the tour; nothing to remove", event.name)
            return
        logger.info("Removing POI %s", event.name)
        self._emit(is_loading=True, has_error=False)
        if await self._apply_pois(remaining, tour):
            self._notify(self.map_sink.remove_marker, event.name)

    async def _on_join_tour(self, event: JoinTour) -> None:
        logger.info("Join flag toggled to %s", not self._state.is_joined)
        self._emit(is_joined=not self._state.is_joined)

    async def _on_reset_tour(self, event: ResetTour) -> None:
        self._emit(tour=None, is_joined=False)
        self._notify(self.map_sink.clear_map)

    async def _on_load_saved_tours(self, event: LoadSavedTours) -> None:
        self._emit(is_loading=True, has_error=False)
        try:
            saved = await self.store.list_saved()
        except Exception as exc:
            logger.error("Error loading saved tours: %s", exc)
            self._emit(is_loading=False, has_error=True)
            return
        self._emit(saved_tours=tuple(saved), is_loading=False)
        logger.info("Loaded %d saved tour(s)", len(saved))

    async def _on_load_tour_from_saved(self, event: LoadTourFromSaved) -> None:
        self._emit(is_loading=True, has_error=False)
        try:
            tour = await self.store.get_by_id(event.tour_id)
        except Exception as exc:
            logger.error("Error loading saved tour %s: %s", event.tour_id, exc)
            self._emit(is_loading=False, has_error=True)
            return
        if tour is None or not tour.pois:
            logger.warning("Saved tour %s does not exist or is empty", event.tour_id)
            self._emit(is_loading=False, has_error=True)
            return
        self._emit(tour=tour, is_loading=False)
        logger.info("Loaded saved tour %s for %s", event.tour_id, tour.city)
        await self._draw(tour)

    # ---------- helpers ----------
    async def _apply_pois(self, pois: Sequence[PointOfInterest], prior: Tour) -> bool:
        """Recompute the tour over ``pois``; commit it and draw it. False on failure."""
        logger.debug("Updating tour with %d POI(s)", len(pois))
        try:
            new_tour = await self.builder.recompute(pois, prior)
        except TourPlannerError as exc:
            logger.error("Error recomputing %s tour: %s", prior.city, exc)
            self._emit(is_loading=False, has_error=True)
            return False
        self._emit(tour=new_tour, is_loading=False)
        if new_tour is not None:
            await self._draw(new_tour)
        return True

    async def _draw(self, tour: Tour) -> None:
        try:
            await self.map_sink.draw_route(tour)
        except Exception:
            logger.exception("Map sink failed to draw the %s route", tour.city)
            self._emit(has_error=True)

    def _notify(self, command: Callable[..., None], *args: Any) -> None:
        try:
            command(*args)
        except Exception:
            logger.exception("Map sink rejected %s", getattr(command, "__name__", command))
