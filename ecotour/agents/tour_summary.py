"""Human-readable tour figures for summary views."""
from __future__ import annotations

from typing import Optional

from ecotour.schemas import Tour, TourSummaryView


def format_distance(metres: Optional[float]) -> str:
    metres = metres or 0.0
    if metres < 1000:
        return f"{int(round(metres))} m"
    return f"{metres / 1000:.1f} km"


def format_duration(seconds: Optional[float]) -> str:
    minutes = int(round((seconds or 0.0) / 60))
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours} h {minutes} min"
    return f"{minutes} min"


def summarize_tour(tour: Tour) -> TourSummaryView:
    return TourSummaryView(
        city=tour.city,
        mode=tour.mode,
        poi_count=len(tour.pois),
        distance=format_distance(tour.distance),
        duration=format_duration(tour.duration),
        user_preferences=list(tour.user_preferences),
    )
