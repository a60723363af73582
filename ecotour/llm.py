# ecotour/llm.py
import os
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from ecotour.config import settings
from ecotour.errors import UpstreamServiceError
from ecotour.schemas import LatLng, PointOfInterest

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TOUR_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

SYSTEM_PROMPT = """You are a local guide who designs sustainable city tours.
Suggest real, existing points of interest that can be visited on foot or by bike.
Return ONLY valid JSON with the schema:
  {"pois": [{"name": str, "gps": [lat, lng], "description": str, "url": str, "imageUrl": str}]}
Use the place's commonly known name so it can be found on a map.
Do not invent places, coordinates or URLs; leave url and imageUrl empty when unsure.
"""

USER_TEMPLATE = """City: {city}
Number of points of interest: {count}
Visitor interests: {preferences}
Maximum tour time: {max_time} minutes
Travel mode: {mode}

Suggest exactly {count} points of interest that fit the interests and can be
visited within the time budget using the travel mode.
"""


def _coerce_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_gps(item: Dict[str, Any]) -> Optional[LatLng]:
    gps = item.get("gps")
    if isinstance(gps, (list, tuple)) and len(gps) == 2:
        lat, lng = _coerce_float(gps[0]), _coerce_float(gps[1])
    elif isinstance(gps, dict):
        lat, lng = _coerce_float(gps.get("lat")), _coerce_float(gps.get("lng"))
    else:
        lat, lng = _coerce_float(item.get("lat")), _coerce_float(item.get("lng"))
    if lat is None or lng is None:
        return None
    return LatLng(lat=lat, lng=lng)


def parse_suggestions(payload: Dict[str, Any], count: int) -> List[PointOfInterest]:
    """Turn the model's JSON payload into at most ``count`` uniquely named POIs.

    Entries without a name or usable coordinates are skipped rather than
    failing the whole batch.
    """
    raw_items = payload.get("pois")
    if not isinstance(raw_items, list):
        raw_items = payload.get("points_of_interest") or []

    pois: List[PointOfInterest] = []
    seen: set[str] = set()
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        gps = _parse_gps(item)
        if not name or gps is None:
            logger.debug("Skipping suggestion without name/coordinates: %s", item)
            continue
        if name in seen:
            continue
        seen.add(name)
        pois.append(
            PointOfInterest(
                name=name,
                gps=gps,
                description=item.get("description") or None,
                url=item.get("url") or None,
                image_url=item.get("imageUrl") or item.get("image_url") or None,
            )
        )
        if len(pois) >= count:
            break
    return pois


class SuggestionClient:
    """Generative POI suggestions backed by an OpenAI chat model in JSON mode."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model or settings.model
        key = api_key or settings.openai_api_key
        if client is not None:
            self._client: Optional[AsyncOpenAI] = client
        elif key:
            self._client = AsyncOpenAI(api_key=key)
        else:
            self._client = None
            logger.warning("OPENAI_API_KEY not set; POI suggestions will fail until it is configured")

    async def suggest(
        self,
        city: str,
        count: int,
        preferences: Sequence[str],
        max_time: float,
        mode: str,
        instructions: str,
    ) -> List[PointOfInterest]:
        if self._client is None:
            raise UpstreamServiceError("suggestion", "OpenAI client not configured")

        user_prompt = USER_TEMPLATE.format(
            city=city,
            count=count,
            preferences=", ".join(preferences) if preferences else "none stated",
            max_time=max_time,
            mode=mode,
        )
        system_prompt = SYSTEM_PROMPT
        if instructions:
            system_prompt = f"{SYSTEM_PROMPT}\n{instructions}"

        logger.info("Invoking LLM model %s for %d POIs in %s", self.model, count, city)
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.2,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise UpstreamServiceError("suggestion", str(exc)) from exc

        raw = resp.choices[0].message.content or ""
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("LLM response was not valid JSON")
            raise UpstreamServiceError("suggestion", "invalid JSON from model") from exc
        if not isinstance(parsed, dict):
            raise UpstreamServiceError("suggestion", "unexpected payload shape")

        pois = parse_suggestions(parsed, count)
        logger.info("LLM suggested %d POI(s) for %s", len(pois), city)
        return pois
