"""Quadrant and hotspot classification of local autocorrelation results.

A significant unit is placed in a quadrant of the Moran scatterplot by the
sign of its standardized value and the sign of its spatial lag. Values of
exactly zero count as "low". Units whose p-value exceeds the threshold are
not significant regardless of sign.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

import numpy as np

from lisaflow.core.errors import InvalidConfigurationError, MisalignedInputError

DEFAULT_SIGNIFICANCE = 0.05


class Quadrant(str, Enum):
    """LISA quadrant category."""

    HIGH_HIGH = "high-high"
    LOW_LOW = "low-low"
    HIGH_LOW = "high-low"
    LOW_HIGH = "low-high"
    NOT_SIGNIFICANT = "not-significant"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class HotspotLabel(str, Enum):
    """Coarsened hotspot category."""

    HOTSPOT = "Hotspot"
    COLDSPOT = "Coldspot"
    NONE = "None"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


# (value is high, lag is high) -> quadrant
QUADRANT_TABLE: dict[tuple[bool, bool], Quadrant] = {
    (True, True): Quadrant.HIGH_HIGH,
    (False, False): Quadrant.LOW_LOW,
    (True, False): Quadrant.HIGH_LOW,
    (False, True): Quadrant.LOW_HIGH,
}

HOTSPOT_TABLE: dict[Quadrant, HotspotLabel] = {
    Quadrant.HIGH_HIGH: HotspotLabel.HOTSPOT,
    Quadrant.LOW_LOW: HotspotLabel.COLDSPOT,
    Quadrant.HIGH_LOW: HotspotLabel.NONE,
    Quadrant.LOW_HIGH: HotspotLabel.NONE,
    Quadrant.NOT_SIGNIFICANT: HotspotLabel.NONE,
}


def check_threshold(threshold: float) -> float:
    """Validate a significance threshold (0 < threshold < 1)."""
    if not 0.0 < threshold < 1.0:
        raise InvalidConfigurationError(
            f"significance_threshold must be in (0, 1), got {threshold!r}"
        )
    return float(threshold)


def classify_quadrant(
    z_value: float,
    lag_value: float,
    p_value: float,
    threshold: float = DEFAULT_SIGNIFICANCE,
) -> Quadrant:
    """
    Classify one unit into a LISA quadrant.

    Args:
        z_value: Standardized attribute value of the unit
        lag_value: Spatial lag of the standardized values
        p_value: Local p-value
        threshold: Significance threshold

    Returns:
        Quadrant, NOT_SIGNIFICANT when p_value > threshold
    """
    threshold = check_threshold(threshold)
    if np.isnan(p_value) or p_value > threshold:
        return Quadrant.NOT_SIGNIFICANT
    return QUADRANT_TABLE[(bool(z_value > 0), bool(lag_value > 0))]


def classify_quadrants(
    z_values: Sequence[float] | np.ndarray,
    lag_values: Sequence[float] | np.ndarray,
    p_values: Sequence[float] | np.ndarray,
    threshold: float = DEFAULT_SIGNIFICANCE,
) -> tuple[Quadrant, ...]:
    """Vector form of :func:`classify_quadrant`."""
    if not len(z_values) == len(lag_values) == len(p_values):
        raise MisalignedInputError("z, lag and p-value vectors must have the same length")
    return tuple(
        classify_quadrant(z, lag, p, threshold) for z, lag, p in zip(z_values, lag_values, p_values)
    )


def hotspot_label(quadrant: Quadrant | str) -> HotspotLabel:
    """Coarsen a quadrant: high-high is a Hotspot, low-low a Coldspot."""
    return HOTSPOT_TABLE[Quadrant(quadrant)]


def hotspot_labels(quadrants: Sequence[Quadrant | str]) -> tuple[HotspotLabel, ...]:
    """Vector form of :func:`hotspot_label`."""
    return tuple(hotspot_label(q) for q in quadrants)
