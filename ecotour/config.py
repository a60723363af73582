"""Runtime settings for the tour planner.

Everything comes from environment variables (a local ``.env`` file is
honoured). Service clients read the module-level ``settings`` by default but
accept explicit overrides so tests never depend on the environment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _split_origins(raw: str) -> List[str]:
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


@dataclass
class Settings:
    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    places_api_key: Optional[str] = None
    maps_api_key: Optional[str] = None
    http_timeout: float = 10.0
    store_backend: str = "local"
    store_path: str = os.path.join(os.path.expanduser("~"), ".ecotour_saved_tours.json")
    current_location_name: str = "current_location"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        places_key = os.getenv("GOOGLE_PLACES_API_KEY")
        try:
            timeout = float(os.getenv("TOUR_PLANNER_HTTP_TIMEOUT", defaults.http_timeout))
        except ValueError:
            timeout = defaults.http_timeout
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            model=os.getenv("TOUR_PLANNER_MODEL", defaults.model),
            places_api_key=places_key,
            maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY") or places_key,
            http_timeout=timeout,
            store_backend=os.getenv("TOUR_PLANNER_STORE_BACKEND", defaults.store_backend).lower(),
            store_path=os.getenv("TOUR_PLANNER_STORE_PATH", defaults.store_path),
            current_location_name=os.getenv(
                "TOUR_PLANNER_CURRENT_LOCATION_NAME", defaults.current_location_name
            ),
            allowed_origins=_split_origins(os.getenv("TOUR_PLANNER_ALLOWED_ORIGINS") or "*"),
        )


settings = Settings.from_env()
