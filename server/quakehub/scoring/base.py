"""Scoring interface (port) used by the ingestion pipeline."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from quakehub.core.models import AlertAssessment, Enrichment, ImpactRadius


class Scorer(Protocol):
    """Port: turns raw acceleration into seismic metrics. Must be pure."""

    def enrich(self, ax: float, ay: float, az: float) -> Enrichment: ...

    def classify(self, magnitude: float) -> str: ...

    def assess_alert(self, magnitude: float, intensity: float) -> AlertAssessment: ...

    def is_earthquake(self, magnitude: float, threshold: float = 3.0) -> bool: ...

    def energy(self, magnitude: float) -> float: ...

    def impact_radius(self, magnitude: float) -> ImpactRadius: ...
