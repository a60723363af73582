from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


# ------- Domain values -------
class LatLng(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class PointOfInterest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    gps: LatLng
    description: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = Field(None, validation_alias=AliasChoices("image_url", "imageUrl"))
    rating: Optional[float] = None
    address: Optional[str] = None
    user_ratings_total: Optional[int] = Field(
        None, validation_alias=AliasChoices("user_ratings_total", "userRatingsTotal")
    )


class Tour(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    city: str
    pois: Tuple[PointOfInterest, ...]
    mode: str
    user_preferences: Tuple[str, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("user_preferences", "userPreferences")
    )
    distance: Optional[float] = None   # metres
    duration: Optional[float] = None   # seconds
    polyline: Optional[str] = None

    @field_validator("user_preferences")
    @classmethod
    def _distinct_preferences(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        seen: List[str] = []
        for pref in value:
            if pref not in seen:
                seen.append(pref)
        return tuple(seen)

    def poi_names(self) -> List[str]:
        return [poi.name for poi in self.pois]


class PlaceData(BaseModel):
    """Optional metadata a places lookup may supply for one POI."""

    model_config = ConfigDict(frozen=True)

    lat: Optional[float] = None
    lng: Optional[float] = None
    name: Optional[str] = None
    editorial_summary: Optional[str] = None
    website: Optional[str] = None
    photo_references: Tuple[str, ...] = Field(default_factory=tuple)
    rating: Optional[float] = None
    formatted_address: Optional[str] = None
    user_ratings_total: Optional[int] = None


# ------- Persistence -------
class TourSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    city: str
    mode: str
    poi_count: int
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SavedTour(BaseModel):
    id: str
    name: str
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tour: Tour

    def summary(self) -> TourSummary:
        return TourSummary(
            id=self.id,
            name=self.name,
            city=self.tour.city,
            mode=self.tour.mode,
            poi_count=len(self.tour.pois),
            saved_at=self.saved_at,
        )


# ------- Orchestrator state -------
class TourState(BaseModel):
    model_config = ConfigDict(frozen=True)

    tour: Optional[Tour] = None
    is_loading: bool = False
    has_error: bool = False
    is_joined: bool = False
    saved_tours: Tuple[TourSummary, ...] = Field(default_factory=tuple)


# ------- API payloads -------
class SaveTourRequest(BaseModel):
    name: str = Field(..., min_length=1)


class TourSummaryView(BaseModel):
    city: str
    mode: str
    poi_count: int
    distance: str
    duration: str
    user_preferences: List[str] = Field(default_factory=list)
