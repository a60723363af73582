"""Error taxonomy shared by the tour pipelines and their service clients."""
from __future__ import annotations


class TourPlannerError(Exception):
    """Base class for failures the orchestrator knows how to report."""


class UpstreamServiceError(TourPlannerError):
    """A suggestion, enrichment or optimization call failed."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class EnrichmentMiss(TourPlannerError):
    """A single POI could not be enriched. Recovered locally, never surfaced."""

    def __init__(self, name: str, reason: str = "no place data") -> None:
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


class StoreError(TourPlannerError):
    """Reading or writing the tour store failed."""
