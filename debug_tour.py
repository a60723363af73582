# debug_tour.py
import asyncio
import json

from ecotour.agents.tour_builder import TourBuilder
from ecotour.events import LoadTour
from ecotour.llm import SuggestionClient
from ecotour.map_sink import RecordingMapSink
from ecotour.orchestrator import TourOrchestrator
from ecotour.store import InMemoryTourStore
from ecotour.tools.places import PlacesClient
from ecotour.tools.route_optimizer import RouteOptimizer


async def main():
    event = LoadTour(
        city="Seville",
        number_of_sites=5,
        user_preferences=["history", "gardens", "food"],
        max_time=180,
        mode="walking",
        system_instruction="Prefer places that are open in the morning.",
    )

    sink = RecordingMapSink()
    builder = TourBuilder(SuggestionClient(), PlacesClient(), RouteOptimizer())
    async with TourOrchestrator(builder, InMemoryTourStore(), sink) as orchestrator:
        # Drive the orchestrator directly
        state = await orchestrator.dispatch(event)

    print("➡️ Orchestrator state:\n")
    print(json.dumps(state.model_dump(mode="json"), indent=2))
    print("\n➡️ Map commands:\n")
    print(json.dumps(sink.commands, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
