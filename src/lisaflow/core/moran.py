"""Global Moran's I with analytic and permutation inference."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from scipy import stats

from lisaflow.core.errors import (
    DegenerateVarianceError,
    InvalidConfigurationError,
    MissingAttributeError,
)
from lisaflow.core.schema import VarianceAssumption, parse_option
from lisaflow.core.utils import FLOAT_TOLERANCE, folded_pseudo_p, get_logger, unit_rng
from lisaflow.core.weights import SpatialWeights

logger = get_logger(__name__)

MIN_UNITS = 4


@dataclass(frozen=True)
class MoranResult:
    """
    Global Moran's I for one attribute over one weights matrix.

    Attributes:
        statistic: Moran's I
        expected: Expected I under the null, -1/(N-1)
        variance: Variance of I under the selected null
        z_score: Standardized statistic
        p_value: Significance under the selected method
        method: "normality", "randomization" or "permutation"
        n: Number of units
        variance_normality: Analytic variance assuming normality
        variance_randomization: Analytic variance assuming randomization
        permutations: Number of permutation draws (0 for analytic)
        seed: Base random seed of the draws
        attribute: Name of the analysed attribute, when known
        expected_sim: Mean of the simulated statistics
        std_sim: Standard deviation of the simulated statistics
        simulated: Simulated statistics, one per draw
    """

    statistic: float
    expected: float
    variance: float
    z_score: float
    p_value: float
    method: str
    n: int
    variance_normality: float
    variance_randomization: float
    permutations: int = 0
    seed: int | None = None
    attribute: str | None = None
    expected_sim: float | None = None
    std_sim: float | None = None
    simulated: np.ndarray | None = field(default=None, repr=False, compare=False)

    @property
    def I(self) -> float:  # noqa: E743
        """Alias for :attr:`statistic`."""
        return self.statistic

    def is_significant(self, threshold: float = 0.05) -> bool:
        """True when the p-value does not exceed *threshold*."""
        return self.p_value <= threshold

    def to_dict(self) -> dict[str, Any]:
        """Return scalar fields as a plain dict."""
        return {
            "attribute": self.attribute,
            "moran_i": self.statistic,
            "expected_i": self.expected,
            "variance": self.variance,
            "z_score": self.z_score,
            "p_value": self.p_value,
            "method": self.method,
            "n": self.n,
            "permutations": self.permutations,
        }


def check_attribute_vector(
    values: Sequence[float] | np.ndarray,
    weights: SpatialWeights,
    *,
    ids: Sequence[str] | None = None,
    attribute: str | None = None,
) -> np.ndarray:
    """
    Validate an attribute vector for an autocorrelation test.

    Raises:
        MisalignedInputError: On a length or ordering mismatch
        MissingAttributeError: If any value is NaN or infinite
        InvalidConfigurationError: If fewer than four units are included
        IslandUnitError: If any unit has no neighbours
        DegenerateVarianceError: If the attribute is constant
    """
    array = weights.check_alignment(values, ids)

    undefined = ~np.isfinite(array)
    if undefined.any():
        raise MissingAttributeError(
            attribute, [weights.ids[i] for i in np.flatnonzero(undefined)]
        )
    if array.shape[0] < MIN_UNITS:
        raise InvalidConfigurationError(
            f"At least {MIN_UNITS} units are required, got {array.shape[0]}"
        )

    weights.ensure_no_islands()

    if np.ptp(array) == 0:
        raise DegenerateVarianceError(attribute)
    return array


def check_permutations(permutations: int, seed: int | None) -> None:
    """Permutation counts must be non-negative and seeded."""
    if permutations < 0:
        raise InvalidConfigurationError(f"permutations must be >= 0, got {permutations}")
    if permutations > 0 and seed is None:
        raise InvalidConfigurationError("random_seed is required when permutations > 0")
    if seed is not None and seed < 0:
        raise InvalidConfigurationError(f"random_seed must be >= 0, got {seed}")


def normal_p_value(z: float | np.ndarray, two_tailed: bool) -> Any:
    """Normal-approximation p-value of a z-score."""
    p = stats.norm.sf(np.abs(z))
    return 2.0 * p if two_tailed else p


def moran_global(
    values: Sequence[float] | np.ndarray,
    weights: SpatialWeights,
    *,
    permutations: int = 0,
    seed: int | None = None,
    variance_assumption: VarianceAssumption | str = VarianceAssumption.RANDOMIZATION,
    two_tailed: bool = True,
    ids: Sequence[str] | None = None,
    attribute: str | None = None,
) -> MoranResult:
    """
    Compute global Moran's I and its significance.

    I = (N / W) * sum_ij w_ij (x_i - xbar)(x_j - xbar) / sum_i (x_i - xbar)^2

    Analytic inference compares I with E[I] = -1/(N-1) using the variance
    under normality or randomization. With ``permutations > 0`` the values
    are reassigned to units that many times and the pseudo p-value
    ``(extreme + 1) / (permutations + 1)`` is reported instead. Draw ``d``
    uses the generator seeded with ``(seed, d)``.

    Args:
        values: Attribute vector aligned with ``weights.ids``
        weights: Spatial weights without islands
        permutations: Number of permutation draws (0 = analytic)
        seed: Base random seed, required with permutations
        variance_assumption: Null used for analytic inference
        two_tailed: Report a two-tailed analytic p-value
        ids: Optional identifiers *values* is ordered by
        attribute: Attribute name used in messages and results

    Returns:
        MoranResult

    Raises:
        MisalignedInputError, MissingAttributeError, IslandUnitError,
        DegenerateVarianceError, InvalidConfigurationError
    """
    variance_assumption = parse_option(
        VarianceAssumption, variance_assumption, "variance assumption"
    )
    check_permutations(permutations, seed)
    x = check_attribute_vector(values, weights, ids=ids, attribute=attribute)

    n = x.shape[0]
    s0, s1, s2 = weights.s0, weights.s1, weights.s2
    w = weights.sparse

    z = x - x.mean()
    z2ss = float((z * z).sum())

    def _statistic(dev: np.ndarray) -> float:
        return float(n / s0 * (dev @ (w @ dev)) / z2ss)

    statistic = _statistic(z)
    expected = -1.0 / (n - 1)

    # Variance under normality
    n2 = n * n
    s02 = s0 * s0
    variance_normality = (n2 * s1 - n * s2 + 3 * s02) / ((n - 1) * (n + 1) * s02) - expected**2

    # Variance under randomization (kurtosis corrected)
    k = (float((z**4).sum()) / n) / (z2ss / n) ** 2
    a = n * ((n2 - 3 * n + 3) * s1 - n * s2 + 3 * s02)
    b = k * ((n2 - n) * s1 - 2 * n * s2 + 6 * s02)
    variance_randomization = (a - b) / ((n - 1) * (n - 2) * (n - 3) * s02) - expected**2

    if variance_assumption is VarianceAssumption.NORMALITY:
        variance = variance_normality
    else:
        variance = variance_randomization

    expected_sim = std_sim = None
    simulated = None
    if permutations > 0:
        assert seed is not None
        simulated = np.array(
            [_statistic(unit_rng(seed, d).permutation(z)) for d in range(permutations)]
        )
        expected_sim = float(simulated.mean())
        std_sim = float(simulated.std())
        # Every reassignment yields the same I, e.g. one distinct value on a ring
        if std_sim <= FLOAT_TOLERANCE:
            raise DegenerateVarianceError(
                attribute,
                detail="Permutation distribution of Moran's I has zero spread",
            )
        variance = std_sim**2
        z_score = (statistic - expected_sim) / std_sim
        p_value = float(folded_pseudo_p(simulated, statistic))
        method = "permutation"
    else:
        if variance <= FLOAT_TOLERANCE:
            raise DegenerateVarianceError(
                attribute,
                detail=f"Analytic variance of Moran's I is not positive ({variance:.3g})",
            )
        z_score = (statistic - expected) / np.sqrt(variance)
        p_value = float(normal_p_value(z_score, two_tailed))
        method = variance_assumption.value

    result = MoranResult(
        statistic=statistic,
        expected=expected,
        variance=float(variance),
        z_score=float(z_score),
        p_value=p_value,
        method=method,
        n=n,
        variance_normality=float(variance_normality),
        variance_randomization=float(variance_randomization),
        permutations=permutations,
        seed=seed,
        attribute=attribute,
        expected_sim=expected_sim,
        std_sim=std_sim,
        simulated=simulated,
    )
    logger.info(
        "Moran's I%s = %.4f (E[I] = %.4f, z = %.3f, p = %.4f, %s)",
        f" for {attribute}" if attribute else "",
        result.statistic,
        result.expected,
        result.z_score,
        result.p_value,
        method,
    )
    return result
