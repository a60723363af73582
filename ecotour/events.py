"""Events accepted by :class:`ecotour.orchestrator.TourOrchestrator`."""
from __future__ import annotations

from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field, AliasChoices

from ecotour.schemas import PointOfInterest


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class LoadTour(_Event):
    city: str = Field(..., min_length=1)
    number_of_sites: int = Field(
        ..., ge=1, validation_alias=AliasChoices("number_of_sites", "numberOfSites", "n_poi")
    )
    user_preferences: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("user_preferences", "userPreferences")
    )
    max_time: float = Field(90, gt=0, validation_alias=AliasChoices("max_time", "maxTime"))  # minutes
    mode: str = "walking"
    system_instruction: str = Field(
        "", validation_alias=AliasChoices("system_instruction", "systemInstruction")
    )


class AddPoi(_Event):
    poi: PointOfInterest


class RemovePoi(_Event):
    name: str


class JoinTour(_Event):
    pass


class ResetTour(_Event):
    pass


class LoadSavedTours(_Event):
    pass


class LoadTourFromSaved(_Event):
    tour_id: str


TourEvent = Union[LoadTour, AddPoi, RemovePoi, JoinTour, ResetTour, LoadSavedTours, LoadTourFromSaved]
