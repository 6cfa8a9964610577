"""Global and local Moran's I steps.

Each step:
- Requires weights built for the frame's current units
- Records its result in UnitMetadata keyed by attribute
- Registers derived per-unit columns with ResultProvenance
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator

from lisaflow.core.classification import DEFAULT_SIGNIFICANCE
from lisaflow.core.errors import InvalidConfigurationError
from lisaflow.core.local import LocalMoranResult, moran_local
from lisaflow.core.moran import moran_global
from lisaflow.core.pipeline import Step
from lisaflow.core.schema import ResultProvenance, VarianceAssumption
from lisaflow.core.utils import get_logger
from lisaflow.core.weights import SpatialWeights

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Pydantic Config Models for Step Parameters
# -----------------------------------------------------------------------------


class _PermutationConfig(BaseModel):
    permutations: int = Field(default=0, ge=0, description="Permutation draws (0 = analytic)")
    random_seed: int | None = Field(default=None, ge=0, description="Base random seed")

    @model_validator(mode="after")
    def check_seed(self) -> _PermutationConfig:
        if self.permutations > 0 and self.random_seed is None:
            raise ValueError("random_seed is required when permutations > 0")
        return self


class GlobalMoranConfig(_PermutationConfig):
    """Configuration for global Moran's I step."""

    attribute: str = Field(..., description="Attribute column to test")
    variance_assumption: VarianceAssumption = Field(
        default=VarianceAssumption.RANDOMIZATION, description="Null for analytic inference"
    )


class LocalMoranConfig(_PermutationConfig):
    """Configuration for local Moran's I (LISA) step."""

    attribute: str = Field(..., description="Attribute column to test")
    significance_threshold: float = Field(
        default=DEFAULT_SIGNIFICANCE, gt=0, lt=1, description="Classification p-value cut-off"
    )


def _require_weights(unit_frame: UnitFrame, step_name: str) -> SpatialWeights:
    if unit_frame.weights is None:
        raise InvalidConfigurationError(
            f"{step_name} needs spatial weights; run build_weights first"
        )
    return unit_frame.weights


def local_columns(attribute: str, result: LocalMoranResult) -> dict[str, Any]:
    """Per-unit LISA columns named ``{attribute}_<field>``."""
    return {
        f"{attribute}_z": result.z,
        f"{attribute}_lag": result.lag,
        f"{attribute}_local_i": result.Is,
        f"{attribute}_z_score": result.z_scores,
        f"{attribute}_p_value": result.p_values,
        f"{attribute}_quadrant": [q.value for q in result.quadrants],
        f"{attribute}_hotspot": [h.value for h in result.hotspots],
    }


# -----------------------------------------------------------------------------
# Autocorrelation Steps
# -----------------------------------------------------------------------------


class GlobalMoranStep(Step):
    """Compute global Moran's I for one attribute.

    Inputs:
        - attribute column, weights

    Outputs:
        - MoranResult in metadata.global_results[attribute]
    """

    def __init__(
        self,
        attribute: str,
        permutations: int = 0,
        random_seed: int | None = None,
        variance_assumption: VarianceAssumption | str = VarianceAssumption.RANDOMIZATION,
    ) -> None:
        self.attribute = attribute
        self.permutations = permutations
        self.random_seed = random_seed
        self.variance_assumption = variance_assumption

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the global test."""
        weights = _require_weights(unit_frame, "GlobalMoranStep")
        result = moran_global(
            unit_frame.attribute(self.attribute),
            weights,
            permutations=self.permutations,
            seed=self.random_seed,
            variance_assumption=self.variance_assumption,
            ids=unit_frame.ids,
            attribute=self.attribute,
        )
        return unit_frame.record_result(self.attribute, result)

    def __repr__(self) -> str:
        return f"GlobalMoranStep({self.attribute!r})"


class LocalMoranStep(Step):
    """Compute local Moran's I (LISA) for one attribute.

    Inputs:
        - attribute column, weights

    Outputs:
        - {attribute}_z, _lag, _local_i, _z_score, _p_value, _quadrant and
          _hotspot columns
        - LocalMoranResult in metadata.local_results[attribute]
    """

    def __init__(
        self,
        attribute: str,
        permutations: int = 0,
        random_seed: int | None = None,
        significance_threshold: float = DEFAULT_SIGNIFICANCE,
    ) -> None:
        self.attribute = attribute
        self.permutations = permutations
        self.random_seed = random_seed
        self.significance_threshold = significance_threshold

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the local test."""
        weights = _require_weights(unit_frame, "LocalMoranStep")
        result = moran_local(
            unit_frame.attribute(self.attribute),
            weights,
            permutations=self.permutations,
            seed=self.random_seed,
            threshold=self.significance_threshold,
            ids=unit_frame.ids,
            attribute=self.attribute,
        )

        provenance = ResultProvenance(
            produced_by="LocalMoranStep",
            inputs=[self.attribute],
            description=f"Local Moran's I ({result.method}) for {self.attribute}",
            metadata={
                "contiguity": weights.neighbors.contiguity.value,
                "weight_style": weights.style.value,
                "permutations": self.permutations,
                "seed": self.random_seed,
                "threshold": self.significance_threshold,
            },
        )
        result_frame = unit_frame.with_derived_columns(
            local_columns(self.attribute, result), provenance
        )
        return result_frame.record_result(self.attribute, result, local=True)

    def __repr__(self) -> str:
        return f"LocalMoranStep({self.attribute!r})"
