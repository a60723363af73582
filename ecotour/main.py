from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from ecotour.agents.tour_builder import TourBuilder
from ecotour.agents.tour_summary import summarize_tour
from ecotour.config import settings
from ecotour.errors import StoreError
from ecotour.events import (
    AddPoi,
    JoinTour,
    LoadSavedTours,
    LoadTour,
    LoadTourFromSaved,
    RemovePoi,
    ResetTour,
)
from ecotour.llm import SuggestionClient
from ecotour.map_sink import RecordingMapSink
from ecotour.orchestrator import TourOrchestrator
from ecotour.schemas import PointOfInterest, SaveTourRequest, TourState
from ecotour.store import build_store
from ecotour.tools.places import PlacesClient
from ecotour.tools.route_optimizer import RouteOptimizer

app = FastAPI(title="Eco City Tour API")

# Local UIs (Vite dev server, emulators) need CORS; operators can narrow it
# through TOUR_PLANNER_ALLOWED_ORIGINS.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_orchestrator() -> TourOrchestrator:
    """One orchestrator (and therefore one current tour) per process."""
    builder = TourBuilder(SuggestionClient(), PlacesClient(), RouteOptimizer())
    return TourOrchestrator(builder, build_store(), RecordingMapSink())


def _dump(state: TourState) -> Dict[str, Any]:
    return state.model_dump(mode="json")


@app.get("/api/state")
async def api_state(orchestrator: TourOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return _dump(orchestrator.state)


@app.post("/api/tour")
async def api_load_tour(
    event: LoadTour, orchestrator: TourOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Primary endpoint: suggest, enrich and optimize a new tour."""
    return _dump(await orchestrator.dispatch(event))


@app.delete("/api/tour")
async def api_reset_tour(orchestrator: TourOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return _dump(await orchestrator.dispatch(ResetTour()))


@app.post("/api/tour/pois")
async def api_add_poi(
    poi: PointOfInterest, orchestrator: TourOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    return _dump(await orchestrator.dispatch(AddPoi(poi=poi)))


@app.delete("/api/tour/pois/{name}")
async def api_remove_poi(
    name: str, orchestrator: TourOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    return _dump(await orchestrator.dispatch(RemovePoi(name=name)))


@app.post("/api/tour/join")
async def api_join_tour(orchestrator: TourOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return _dump(await orchestrator.dispatch(JoinTour()))


@app.get("/api/tour/summary")
async def api_tour_summary(orchestrator: TourOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    tour = orchestrator.state.tour
    if tour is None:
        raise HTTPException(status_code=404, detail="No active tour")
    return summarize_tour(tour).model_dump()


@app.get("/api/tours/saved")
async def api_saved_tours(orchestrator: TourOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return _dump(await orchestrator.dispatch(LoadSavedTours()))


@app.post("/api/tours/saved")
async def api_save_tour(
    request: SaveTourRequest = Body(...), orchestrator: TourOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    try:
        tour_id = await orchestrator.save_current_tour(request.name)
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if tour_id is None:
        raise HTTPException(status_code=409, detail="No active tour to save")
    return {"id": tour_id, "name": request.name}


@app.post("/api/tours/saved/{tour_id}/load")
async def api_load_saved_tour(
    tour_id: str, orchestrator: TourOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    return _dump(await orchestrator.dispatch(LoadTourFromSaved(tour_id=tour_id)))


@app.get("/api/map")
async def api_map(orchestrator: TourOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    sink = orchestrator.map_sink
    if not isinstance(sink, RecordingMapSink):
        raise HTTPException(status_code=404, detail="Map sink does not record commands")
    return {
        "commands": list(sink.commands),
        "markers": sorted(sink.markers),
        "route": sink.route.poi_names() if sink.route else None,
    }
