"""Local Moran's I (LISA) with analytic or conditional permutation inference."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import polars as pl

from lisaflow.core.classification import (
    DEFAULT_SIGNIFICANCE,
    HotspotLabel,
    Quadrant,
    check_threshold,
    classify_quadrants,
    hotspot_labels,
)
from lisaflow.core.errors import DegenerateVarianceError
from lisaflow.core.moran import check_attribute_vector, check_permutations, normal_p_value
from lisaflow.core.utils import folded_pseudo_p, get_logger, unit_rng
from lisaflow.core.weights import SpatialWeights

logger = get_logger(__name__)


@dataclass(frozen=True)
class LocalMoranResult:
    """
    Per-unit local Moran statistics, aligned with the weights' unit order.

    Attributes:
        ids: Unit identifiers
        z: Standardized attribute values
        lag: Spatial lag of the standardized values
        Is: Local Moran statistics z_i * lag_i / m2
        expected: Expected local statistic under the null
        variance: Variance of the local statistic under the null
        z_scores: Standardized local statistics
        p_values: Local p-values
        quadrants: Quadrant per unit
        hotspots: Hotspot label per unit
        method: "analytic" or "permutation"
        threshold: Significance threshold used for classification
        s0: Total weight of the weights matrix
        permutations: Number of permutation draws (0 for analytic)
        seed: Base random seed of the draws
        attribute: Name of the analysed attribute, when known
    """

    ids: tuple[str, ...]
    z: np.ndarray = field(repr=False)
    lag: np.ndarray = field(repr=False)
    Is: np.ndarray = field(repr=False)
    expected: np.ndarray = field(repr=False)
    variance: np.ndarray = field(repr=False)
    z_scores: np.ndarray = field(repr=False)
    p_values: np.ndarray = field(repr=False)
    quadrants: tuple[Quadrant, ...] = field(repr=False)
    hotspots: tuple[HotspotLabel, ...] = field(repr=False)
    method: str = "analytic"
    threshold: float = DEFAULT_SIGNIFICANCE
    s0: float = 0.0
    permutations: int = 0
    seed: int | None = None
    attribute: str | None = None

    @property
    def n(self) -> int:
        """Number of units."""
        return len(self.ids)

    @property
    def implied_global_I(self) -> float:
        """
        Global Moran's I recovered from the local statistics, sum(Is) / s0.

        For row-standardized weights s0 equals N, so this is the mean local
        statistic.
        """
        return float(self.Is.sum() / self.s0)

    @property
    def significant(self) -> np.ndarray:
        """Boolean mask of units with p-value <= threshold."""
        return self.p_values <= self.threshold

    def quadrant_counts(self) -> dict[Quadrant, int]:
        """Number of units per quadrant, including empty quadrants."""
        counts = Counter(self.quadrants)
        return {q: counts.get(q, 0) for q in Quadrant}

    def hotspot_counts(self) -> dict[HotspotLabel, int]:
        """Number of units per hotspot label, including empty labels."""
        counts = Counter(self.hotspots)
        return {label: counts.get(label, 0) for label in HotspotLabel}

    def to_frame(self, id_col: str = "GEOID") -> pl.DataFrame:
        """Return one row per unit with statistics and labels."""
        return pl.DataFrame(
            {
                id_col: list(self.ids),
                "z": self.z,
                "lag": self.lag,
                "local_i": self.Is,
                "z_score": self.z_scores,
                "p_value": self.p_values,
                "quadrant": [q.value for q in self.quadrants],
                "hotspot": [h.value for h in self.hotspots],
            }
        )


def _analytic_moments(
    z: np.ndarray, weights: SpatialWeights, m2: float
) -> tuple[np.ndarray, np.ndarray]:
    """Expectation and variance of I_i under total randomization."""
    n = z.shape[0]
    wi = weights.row_sums()
    wi2 = weights.row_square_sums()
    b2 = (float((z**4).sum()) / n) / m2**2

    expected = -wi / (n - 1)
    variance = wi2 * (n - b2) / (n - 1)
    variance += (wi**2 - wi2) * (2 * b2 - n) / ((n - 1) * (n - 2))
    variance -= expected**2
    return expected, variance


def _conditional_draws(
    z: np.ndarray,
    Is: np.ndarray,
    weights: SpatialWeights,
    m2: float,
    permutations: int,
    seed: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Conditional permutation test for every unit.

    Unit ``i`` keeps its own value while its ``k_i`` neighbour values are
    replaced by ``k_i`` values drawn without replacement from the other
    ``N - 1`` units. One draw matrix, row ``d`` seeded with ``(seed, d)``,
    is shared by all units.
    """
    n = z.shape[0]
    cardinalities = weights.cardinalities()
    k_max = int(cardinalities.max())
    draws = np.vstack(
        [unit_rng(seed, d).permutation(n - 1)[:k_max] for d in range(permutations)]
    )

    w = weights.sparse
    p_values = np.empty(n)
    expected = np.empty(n)
    std = np.empty(n)
    for i in range(n):
        k = int(cardinalities[i])
        row_weights = w.data[w.indptr[i] : w.indptr[i + 1]]
        idx = draws[:, :k].copy()
        idx[idx >= i] += 1  # skip the unit itself
        simulated = z[i] * (z[idx] @ row_weights) / m2
        p_values[i] = folded_pseudo_p(simulated, Is[i])
        expected[i] = simulated.mean()
        std[i] = simulated.std()
    return p_values, expected, std


def moran_local(
    values: Sequence[float] | np.ndarray,
    weights: SpatialWeights,
    *,
    permutations: int = 0,
    seed: int | None = None,
    threshold: float = DEFAULT_SIGNIFICANCE,
    ids: Sequence[str] | None = None,
    attribute: str | None = None,
) -> LocalMoranResult:
    """
    Compute local Moran statistics, spatial lags, significance and labels.

    Values are standardized with the population standard deviation, the lag
    is the weighted combination of neighbouring z values and the local
    statistic is ``I_i = z_i * lag_i / m2`` with ``m2 = sum(z^2) / N``. The
    local statistics add up to ``s0`` times the global Moran's I.

    Args:
        values: Attribute vector aligned with ``weights.ids``
        weights: Spatial weights without islands
        permutations: Conditional permutation draws (0 = analytic)
        seed: Base random seed, required with permutations
        threshold: Significance threshold for quadrant classification
        ids: Optional identifiers *values* is ordered by
        attribute: Attribute name used in messages and results

    Returns:
        LocalMoranResult

    Raises:
        MisalignedInputError, MissingAttributeError, IslandUnitError,
        DegenerateVarianceError, InvalidConfigurationError
    """
    threshold = check_threshold(threshold)
    check_permutations(permutations, seed)
    x = check_attribute_vector(values, weights, ids=ids, attribute=attribute)

    n = x.shape[0]
    z = (x - x.mean()) / x.std()
    m2 = float((z * z).sum()) / n
    lag = weights.lag(z)
    Is = z * lag / m2

    expected, variance = _analytic_moments(z, weights, m2)
    if permutations > 0:
        assert seed is not None
        p_values, expected_sim, std_sim = _conditional_draws(z, Is, weights, m2, permutations, seed)
        # Zero spread means every draw equals I_i, so the unit sits at its null mean
        with np.errstate(divide="ignore", invalid="ignore"):
            z_scores = np.where(std_sim > 0, (Is - expected_sim) / std_sim, 0.0)
        expected, variance = expected_sim, std_sim**2
        method = "permutation"
    else:
        if np.any(variance <= 0):
            raise DegenerateVarianceError(
                attribute,
                detail="Analytic variance of a local statistic is not positive",
            )
        z_scores = (Is - expected) / np.sqrt(variance)
        p_values = normal_p_value(z_scores, two_tailed=True)
        method = "analytic"

    quadrants = classify_quadrants(z, lag, p_values, threshold)
    result = LocalMoranResult(
        ids=weights.ids,
        z=z,
        lag=lag,
        Is=Is,
        expected=np.asarray(expected, dtype=float),
        variance=np.asarray(variance, dtype=float),
        z_scores=np.asarray(z_scores, dtype=float),
        p_values=np.asarray(p_values, dtype=float),
        quadrants=quadrants,
        hotspots=hotspot_labels(quadrants),
        method=method,
        threshold=threshold,
        s0=weights.s0,
        permutations=permutations,
        seed=seed,
        attribute=attribute,
    )

    counts = result.quadrant_counts()
    logger.info(
        "Local Moran%s (%s): %d significant of %d units; HH=%d LL=%d HL=%d LH=%d",
        f" for {attribute}" if attribute else "",
        method,
        int(result.significant.sum()),
        n,
        counts[Quadrant.HIGH_HIGH],
        counts[Quadrant.LOW_LOW],
        counts[Quadrant.HIGH_LOW],
        counts[Quadrant.LOW_HIGH],
    )
    return result
