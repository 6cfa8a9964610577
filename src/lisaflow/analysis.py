"""End-to-end autocorrelation analysis over a UnitFrame."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import polars as pl

from lisaflow.core.classification import HotspotLabel
from lisaflow.core.errors import (
    DegenerateVarianceError,
    InvalidConfigurationError,
    MisalignedInputError,
)
from lisaflow.core.local import LocalMoranResult
from lisaflow.core.moran import MoranResult
from lisaflow.core.pipeline import Pipeline, Step
from lisaflow.core.registry import StepRegistry
from lisaflow.core.schema import AnalysisConfig, MissingPolicy
from lisaflow.core.steps import (
    BuildWeightsStep,
    DropMissingStep,
    FilterUnitsStep,
    GlobalMoranStep,
    LocalMoranStep,
    get_default_registry,
)
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import get_logger

logger = get_logger(__name__)


@dataclass
class AnalysisResult:
    """
    Outcome of an analysis run.

    Attributes:
        frame: Filtered UnitFrame carrying weights, derived columns and the
            exclusion log
        config: Configuration the analysis ran with
        global_results: Global Moran's I per attribute
        local_results: Local Moran statistics per attribute
        skipped: Attributes skipped because their variance is zero
    """

    frame: UnitFrame
    config: AnalysisConfig
    global_results: dict[str, MoranResult] = field(default_factory=dict)
    local_results: dict[str, LocalMoranResult] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def attributes(self) -> list[str]:
        """Attributes with results, in analysis order."""
        return list(self.global_results)

    @property
    def excluded_ids(self) -> list[str]:
        """Units removed before testing."""
        return self.frame.excluded_ids()

    def _local(self, attribute: str) -> LocalMoranResult:
        try:
            return self.local_results[attribute]
        except KeyError:
            raise MisalignedInputError(f"No local results for attribute '{attribute}'") from None

    def unit_table(self, attribute: str) -> pl.DataFrame:
        """Per-unit table: id, value, z, lag, local_i, z_score, p_value, quadrant, hotspot."""
        local = self._local(attribute)
        table = local.to_frame(self.frame.id_col)
        return table.insert_column(1, pl.Series("value", self.frame.attribute(attribute)))

    def hotspot_counts(self, attribute: str) -> dict[str, int]:
        """Number of units per hotspot label."""
        return {label.value: n for label, n in self._local(attribute).hotspot_counts().items()}

    def summary(self) -> pl.DataFrame:
        """One row per attribute with the global test and local label counts."""
        rows = []
        for attribute, result in self.global_results.items():
            row = result.to_dict()
            local = self.local_results.get(attribute)
            if local is not None:
                counts = local.hotspot_counts()
                row["n_significant"] = int(local.significant.sum())
                row["n_hotspot"] = counts[HotspotLabel.HOTSPOT]
                row["n_coldspot"] = counts[HotspotLabel.COLDSPOT]
            rows.append(row)
        return pl.DataFrame(rows)

    def __repr__(self) -> str:
        return (
            f"AnalysisResult(attributes={self.attributes}, units={len(self.frame)}, "
            f"excluded={len(self.excluded_ids)}, skipped={self.skipped})"
        )


class AutocorrelationAnalyzer:
    """
    Run global and local Moran's I for one or more attributes.

    Filtering, the missing-value policy and weights construction run once as
    a pipeline; the tests then run per attribute against the same weights.

    Example:
        >>> config = AnalysisConfig.create(contiguity="queen", permutations=999, random_seed=7)
        >>> result = AutocorrelationAnalyzer(config).run(frame, ["single_ratio"])
        >>> result.summary()
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        *,
        step_registry: StepRegistry | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.step_registry = step_registry

    def build_pipeline(self, attributes: Sequence[str]) -> Pipeline:
        """
        Pipeline preparing the unit set and its weights.

        Configured ``steps`` are resolved through the step registry (the
        built-in steps unless one was given). Otherwise the outlier filter,
        the missing-value policy and weights construction run in order.
        """
        if self.config.steps:
            registry = self.step_registry or get_default_registry()
            return registry.build_pipeline(self.config.steps)

        steps: list[Step] = []
        if self.config.outlier_filter is not None:
            steps.append(
                FilterUnitsStep(predicate=self.config.outlier_filter, reason="outlier filter")
            )
        if self.config.missing is MissingPolicy.DROP:
            steps.append(DropMissingStep(list(attributes)))
        steps.append(
            BuildWeightsStep(
                self.config.contiguity,
                self.config.weight_style,
                method=self.config.adjacency_method,
            )
        )
        return Pipeline(steps)

    def attribute_steps(self, attribute: str) -> list[Step]:
        """Global (and optionally local) test steps for *attribute*."""
        config = self.config
        steps: list[Step] = [
            GlobalMoranStep(
                attribute,
                permutations=config.permutations,
                random_seed=config.random_seed,
                variance_assumption=config.variance_assumption,
            )
        ]
        if config.local:
            steps.append(
                LocalMoranStep(
                    attribute,
                    permutations=config.permutations,
                    random_seed=config.random_seed,
                    significance_threshold=config.significance_threshold,
                )
            )
        return steps

    def run(self, frame: UnitFrame, attributes: Sequence[str] | None = None) -> AnalysisResult:
        """
        Analyse *attributes* of *frame*.

        Args:
            frame: Input units
            attributes: Attributes to test (all schema attributes if omitted)

        Returns:
            AnalysisResult

        Raises:
            LisaflowError subclasses from filtering, weights construction or
            the tests. DegenerateVarianceError is only raised when
            ``skip_degenerate`` is off.
        """
        attributes = list(attributes or frame.schema.attribute_cols)
        if not attributes:
            raise MisalignedInputError("No attributes to analyse")
        unknown = [a for a in attributes if a not in frame.data.columns]
        if unknown:
            raise MisalignedInputError(f"Attributes not found: {unknown}")

        logger.info(
            f"Analysing {attributes} over {len(frame)} units "
            f"({self.config.contiguity}, {self.config.weight_style})"
        )
        current = self.build_pipeline(attributes).run(frame)
        if current.weights is None:
            raise InvalidConfigurationError(
                "The preparation steps did not build spatial weights; add build_weights"
            )
        if self.config.missing is MissingPolicy.RAISE:
            current.require_complete(attributes)

        skipped: list[str] = []
        for attribute in attributes:
            try:
                current = Pipeline(self.attribute_steps(attribute)).run(current)
            except DegenerateVarianceError as e:
                if not self.config.skip_degenerate:
                    raise
                logger.warning(f"Skipping attribute '{attribute}': {e}")
                skipped.append(attribute)

        return AnalysisResult(
            frame=current,
            config=self.config,
            global_results=dict(current.metadata.global_results),
            local_results=dict(current.metadata.local_results),
            skipped=skipped,
        )
