"""Tests for quadrant and hotspot classification."""

import math

import pytest

from lisaflow.core.classification import (
    HOTSPOT_TABLE,
    HotspotLabel,
    Quadrant,
    classify_quadrant,
    classify_quadrants,
    hotspot_label,
    hotspot_labels,
)
from lisaflow.core.errors import InvalidConfigurationError, MisalignedInputError


@pytest.mark.parametrize(
    ("z_value", "lag_value", "p_value", "expected"),
    [
        (1.2, 0.8, 0.01, Quadrant.HIGH_HIGH),
        (-1.0, -0.5, 0.01, Quadrant.LOW_LOW),
        (1.0, -1.0, 0.01, Quadrant.HIGH_LOW),
        (-1.0, 1.0, 0.01, Quadrant.LOW_HIGH),
        (1.0, 1.0, 0.20, Quadrant.NOT_SIGNIFICANT),
        (-1.0, -1.0, 0.051, Quadrant.NOT_SIGNIFICANT),
        # p equal to the threshold is significant
        (1.0, 1.0, 0.05, Quadrant.HIGH_HIGH),
        # zero counts as low
        (0.0, 1.0, 0.01, Quadrant.LOW_HIGH),
        (1.0, 0.0, 0.01, Quadrant.HIGH_LOW),
        (0.0, 0.0, 0.01, Quadrant.LOW_LOW),
        (1.0, 1.0, math.nan, Quadrant.NOT_SIGNIFICANT),
    ],
)
def test_classify_quadrant(
    z_value: float, lag_value: float, p_value: float, expected: Quadrant
) -> None:
    assert classify_quadrant(z_value, lag_value, p_value, 0.05) is expected


@pytest.mark.parametrize(
    ("quadrant", "label"),
    [
        (Quadrant.HIGH_HIGH, HotspotLabel.HOTSPOT),
        (Quadrant.LOW_LOW, HotspotLabel.COLDSPOT),
        (Quadrant.HIGH_LOW, HotspotLabel.NONE),
        (Quadrant.LOW_HIGH, HotspotLabel.NONE),
        (Quadrant.NOT_SIGNIFICANT, HotspotLabel.NONE),
        ("high-high", HotspotLabel.HOTSPOT),
    ],
)
def test_hotspot_label(quadrant: Quadrant | str, label: HotspotLabel) -> None:
    assert hotspot_label(quadrant) is label


def test_hotspot_table_covers_every_quadrant() -> None:
    assert set(HOTSPOT_TABLE) == set(Quadrant)


def test_threshold_controls_significance() -> None:
    assert classify_quadrant(1.0, 1.0, 0.08, threshold=0.1) is Quadrant.HIGH_HIGH
    assert classify_quadrant(1.0, 1.0, 0.08, threshold=0.05) is Quadrant.NOT_SIGNIFICANT


def test_vector_forms() -> None:
    quadrants = classify_quadrants([1.0, -1.0, 0.5], [1.0, -1.0, -0.5], [0.01, 0.02, 0.9])
    assert quadrants == (Quadrant.HIGH_HIGH, Quadrant.LOW_LOW, Quadrant.NOT_SIGNIFICANT)
    assert hotspot_labels(quadrants) == (
        HotspotLabel.HOTSPOT,
        HotspotLabel.COLDSPOT,
        HotspotLabel.NONE,
    )


def test_vector_length_mismatch() -> None:
    with pytest.raises(MisalignedInputError):
        classify_quadrants([1.0, 2.0], [1.0], [0.01, 0.01])


@pytest.mark.parametrize("threshold", [0.0, 1.0, -0.1, 2.0])
def test_invalid_threshold(threshold: float) -> None:
    with pytest.raises(InvalidConfigurationError):
        classify_quadrant(1.0, 1.0, 0.01, threshold)


def test_unknown_quadrant_label() -> None:
    with pytest.raises(ValueError):
        hotspot_label("sideways")
