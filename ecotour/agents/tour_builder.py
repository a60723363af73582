"""Tour build and recompute pipelines.

``TourBuilder.build_tour`` runs suggestion -> enrichment fan-out ->
optimization. ``TourBuilder.recompute`` re-optimizes an edited POI set with
the trip parameters of the tour it replaces.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, List, Optional, Sequence

from ecotour.errors import EnrichmentMiss, UpstreamServiceError
from ecotour.protocols import EnrichmentService, OptimizationService, SuggestionService
from ecotour.schemas import LatLng, PlaceData, PointOfInterest, Tour

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


def merge_poi(
    original: PointOfInterest,
    place: PlaceData,
    photo_url_for: Optional[Callable[[str], str]] = None,
) -> PointOfInterest:
    """Return a new POI preferring ``place`` fields and falling back to ``original``.

    Coordinates are only replaced when the place supplies both axes. The image
    URL comes from the first photo reference and is left untouched otherwise.
    """
    gps = original.gps
    if place.lat is not None and place.lng is not None:
        gps = LatLng(lat=place.lat, lng=place.lng)

    image_url = original.image_url
    if place.photo_references and photo_url_for is not None:
        image_url = photo_url_for(place.photo_references[0])

    def pick(enriched, fallback):
        return enriched if enriched is not None else fallback

    return PointOfInterest(
        name=place.name or original.name,
        gps=gps,
        description=pick(place.editorial_summary, original.description),
        url=pick(place.website, original.url),
        image_url=image_url,
        rating=pick(place.rating, original.rating),
        address=pick(place.formatted_address, original.address),
        user_ratings_total=pick(place.user_ratings_total, original.user_ratings_total),
    )


class TourBuilder:
    def __init__(
        self,
        suggestions: SuggestionService,
        places: EnrichmentService,
        optimizer: OptimizationService,
    ) -> None:
        self.suggestions = suggestions
        self.places = places
        self.optimizer = optimizer

    async def build_tour(
        self,
        city: str,
        desired_count: int,
        preferences: Sequence[str],
        max_time: float,
        mode: str,
        system_instruction: str = "",
    ) -> Tour:
        try:
            candidates = await self.suggestions.suggest(
                city, desired_count, list(preferences), max_time, mode, system_instruction
            )
        except UpstreamServiceError:
            raise
        except Exception as exc:
            raise UpstreamServiceError("suggestion", str(exc)) from exc

        candidates = _unique_by_name(candidates)[:desired_count]
        if not candidates:
            raise UpstreamServiceError("suggestion", f"no points of interest suggested for {city}")
        logger.debug("Fetched %d candidate POI(s) for %s", len(candidates), city)

        enriched = await self.enrich_pois(candidates, city)
        return await self._optimize(enriched, mode, city, preferences)

    async def enrich_pois(self, candidates: Sequence[PointOfInterest], city: str) -> List[PointOfInterest]:
        """Enrich every candidate concurrently; misses keep the candidate as-is."""
        results = await asyncio.gather(
            *[self._enrich_one(poi, city) for poi in candidates], return_exceptions=True
        )

        enriched: List[PointOfInterest] = []
        # Names must stay unique: an enriched name may not take over another POI's name.
        taken = {poi.name for poi in candidates}
        misses = 0
        for poi, result in zip(candidates, results):
            if isinstance(result, EnrichmentMiss):
                misses += 1
                logger.warning("Enrichment miss for %s: %s", poi.name, result.reason)
                result = poi
            elif isinstance(result, BaseException):
                raise result
            if result.name != poi.name:
                if result.name in taken:
                    result = result.model_copy(update={"name": poi.name})
                taken.add(result.name)
            enriched.append(result)

        logger.info("Enriched %d/%d POI(s) for %s", len(candidates) - misses, len(candidates), city)
        return enriched

    async def recompute(self, pois: Sequence[PointOfInterest], prior: Tour) -> Optional[Tour]:
        """Optimize ``pois`` with ``prior``'s trip parameters; ``None`` when nothing is left."""
        if not pois:
            logger.info("No POIs left in %s tour; clearing it", prior.city)
            return None
        return await self._optimize(list(pois), prior.mode, prior.city, prior.user_preferences)

    async def _enrich_one(self, poi: PointOfInterest, city: str) -> PointOfInterest:
        try:
            place = await self.places.enrich(poi.name, city)
            if place is None:
                raise EnrichmentMiss(poi.name)
            return merge_poi(poi, place, self.places.photo_url)
        except EnrichmentMiss:
            raise
        except Exception as exc:
            raise EnrichmentMiss(poi.name, str(exc)) from exc

    async def _optimize(
        self, pois: List[PointOfInterest], mode: str, city: str, preferences: Sequence[str]
    ) -> Tour:
        try:
            tour = await self.optimizer.optimize(pois, mode, city, list(preferences))
        except UpstreamServiceError:
            raise
        except Exception as exc:
            raise UpstreamServiceError("optimization", str(exc)) from exc
        if not tour.pois:
            raise UpstreamServiceError("optimization", "optimizer returned an empty route")
        return tour


def _unique_by_name(pois: Sequence[PointOfInterest]) -> List[PointOfInterest]:
    seen: set[str] = set()
    unique: List[PointOfInterest] = []
    for poi in pois:
        if poi.name in seen:
            continue
        seen.add(poi.name)
        unique.append(poi)
    return unique
