"""Seismic scoring formulas.

Simplified models that turn a single 3-axis acceleration sample (in g) into
magnitude, Mercalli-style intensity, JMA seismic intensity, classification,
alert level, energy, and impact radius. Every function here is pure.
"""

from __future__ import annotations

import math

from quakehub.core.models import AlertAssessment, Enrichment, ImpactRadius

GRAVITY_MPS2 = 9.8
DEFAULT_DISTANCE_KM = 10.0
DEFAULT_EARTHQUAKE_THRESHOLD = 3.0

# Upper PGA bound (m/s^2, exclusive) for each JMA intensity step.
_JMA_LADDER: tuple[tuple[float, float], ...] = (
    (0.0017, 0.0),
    (0.014, 1.0),
    (0.039, 1.5),
    (0.098, 2.0),
    (0.197, 2.5),
    (0.394, 3.0),
    (0.787, 3.5),
    (1.637, 4.0),
    (3.386, 4.5),
    (6.889, 5.0),
    (14.050, 5.5),
    (28.650, 6.0),
)
_JMA_MAX = 6.5

# (exclusive upper magnitude, label)
_CLASSES: tuple[tuple[float, str], ...] = (
    (2.0, "micro"),
    (3.0, "minor"),
    (5.0, "light"),
    (6.0, "moderate"),
    (7.0, "strong"),
    (8.0, "major"),
)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _vector_norm(ax: float, ay: float, az: float) -> float:
    return math.sqrt(ax * ax + ay * ay + az * az)


def calculate_magnitude(ax: float, ay: float, az: float) -> float:
    """Log-scaled magnitude of the acceleration vector, clamped to [0, 10]."""
    acceleration = _vector_norm(ax, ay, az)
    return _clamp(math.log10(acceleration + 1) * 2, 0.0, 10.0)


def calculate_intensity(
    ax: float, ay: float, az: float, distance_km: float = DEFAULT_DISTANCE_KM,
) -> float:
    """Modified-Mercalli style intensity (I-XII) from magnitude and distance."""
    magnitude = math.log10(_vector_norm(ax, ay, az) + 1) * 2
    if distance_km <= 0:
        distance_km = 1.0
    intensity = magnitude - math.log10(distance_km) * 0.2 - 0.5
    return _clamp(intensity, 1.0, 12.0)


def calculate_jma_intensity(
    ax: float, ay: float, az: float, correction_factor: float = 1.0,
) -> tuple[float, float, float]:
    """Return ``(jma_intensity, pga_corrected, pga_raw)``."""
    pga_raw = _vector_norm(ax, ay, az) * GRAVITY_MPS2
    pga = pga_raw * correction_factor
    for upper, level in _JMA_LADDER:
        if pga < upper:
            return level, pga, pga_raw
    return _JMA_MAX, pga, pga_raw


def classify_earthquake(magnitude: float) -> str:
    for upper, label in _CLASSES:
        if magnitude < upper:
            return label
    return "great"


def assess_alert_level(magnitude: float, intensity: float) -> AlertAssessment:
    if magnitude >= 7.0 or intensity >= 9:
        return AlertAssessment("severe", "Violent earthquake, major damage likely", "red")
    if magnitude >= 5.0 or intensity >= 7:
        return AlertAssessment("high", "Strong earthquake, damage possible", "orange")
    if magnitude >= 4.0 or intensity >= 5:
        return AlertAssessment("medium", "Moderate earthquake, shaking will be felt", "yellow")
    if magnitude >= 3.0 or intensity >= 3:
        return AlertAssessment("low", "Light earthquake, felt by some people", "blue")
    return AlertAssessment("none", "No seismic activity detected", "green")


def detect_earthquake(magnitude: float, threshold: float = DEFAULT_EARTHQUAKE_THRESHOLD) -> bool:
    return magnitude >= threshold


def calculate_energy(magnitude: float) -> float:
    """Gutenberg-Richter energy relation: log E = 4.8 + 1.5 M."""
    return 10 ** (4.8 + 1.5 * magnitude)


def calculate_impact_radius(magnitude: float) -> ImpactRadius:
    return ImpactRadius(
        extreme=10 ** (magnitude / 2 - 1) if magnitude > 6.0 else 0.0,
        strong=10 ** (magnitude / 2) if magnitude > 5.0 else 10 ** (magnitude / 2.5),
        moderate=10 ** (magnitude / 2 + 1),
        felt=10 ** (magnitude / 1.5 + 2),
    )


class SeismicScorer:
    """Default ``Scorer`` built on the module-level formulas."""

    def __init__(
        self,
        distance_km: float = DEFAULT_DISTANCE_KM,
        correction_factor: float = 1.0,
    ) -> None:
        self._distance_km = distance_km
        self._correction_factor = correction_factor

    def enrich(self, ax: float, ay: float, az: float) -> Enrichment:
        jma, pga_corrected, pga_raw = calculate_jma_intensity(
            ax, ay, az, self._correction_factor,
        )
        return Enrichment(
            magnitude=calculate_magnitude(ax, ay, az),
            intensity=calculate_intensity(ax, ay, az, self._distance_km),
            jma_intensity=jma,
            pga=pga_raw,
            pga_corrected=pga_corrected,
        )

    def classify(self, magnitude: float) -> str:
        return classify_earthquake(magnitude)

    def assess_alert(self, magnitude: float, intensity: float) -> AlertAssessment:
        return assess_alert_level(magnitude, intensity)

    def is_earthquake(self, magnitude: float, threshold: float = DEFAULT_EARTHQUAKE_THRESHOLD) -> bool:
        return detect_earthquake(magnitude, threshold)

    def energy(self, magnitude: float) -> float:
        return calculate_energy(magnitude)

    def impact_radius(self, magnitude: float) -> ImpactRadius:
        return calculate_impact_radius(magnitude)
