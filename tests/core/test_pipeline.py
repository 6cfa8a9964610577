"""Tests for pipeline orchestration and unit-frame transition checks."""

from __future__ import annotations

import numpy as np
import pytest

from lisaflow.core.errors import MisalignedInputError
from lisaflow.core.pipeline import Pipeline, Step, transition_issues
from lisaflow.core.schema import ResultProvenance
from lisaflow.core.steps import BuildWeightsStep, GlobalMoranStep
from lisaflow.core.unit_frame import UnitFrame


class ExcludeStep(Step):
    """Exclude fixed units through the frame's exclusion log."""

    def __init__(self, *unit_ids: str) -> None:
        self.unit_ids = unit_ids

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        return unit_frame.exclude(self.unit_ids, reason="test")


class SliceStep(Step):
    """Keep the first rows without recording an exclusion."""

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        keep = len(unit_frame) - 1
        return UnitFrame(
            unit_frame.data[:keep],
            unit_frame.geometries[:keep],
            unit_frame.schema,
            unit_frame.metadata,
        )


class StripWeightsStep(Step):
    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        return UnitFrame(
            unit_frame.data, unit_frame.geometries, unit_frame.schema, unit_frame.metadata
        )


class CountStep(Step):
    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        return len(unit_frame)  # type: ignore[return-value]


def test_pipeline_detects_dropped_provenance(grid_frame: UnitFrame) -> None:
    enriched = grid_frame.with_derived_columns(
        {"gradient_z": np.zeros(9)}, ResultProvenance(produced_by="ZStep")
    )

    class DropDerivedStep(Step):
        def run(self, unit_frame: UnitFrame) -> UnitFrame:
            mutated_schema = unit_frame.schema.model_copy(update={"derived_cols": {}})
            return UnitFrame(
                unit_frame.data, unit_frame.geometries, mutated_schema, unit_frame.metadata
            )

    with pytest.raises(MisalignedInputError, match="missing derived column provenance"):
        Pipeline([DropDerivedStep()]).run(enriched)


def test_pipeline_rejects_non_frame_results(grid_frame: UnitFrame) -> None:
    with pytest.raises(TypeError, match="instead of UnitFrame"):
        Pipeline([CountStep()]).run(grid_frame)


def test_pipeline_rejects_unlogged_removal(grid_frame: UnitFrame) -> None:
    with pytest.raises(MisalignedInputError, match="without an exclusion record: r2c2"):
        Pipeline([SliceStep()]).run(grid_frame)


def test_pipeline_rejects_dropped_weights(grid_frame: UnitFrame) -> None:
    pipeline = Pipeline([BuildWeightsStep(), StripWeightsStep()])
    with pytest.raises(MisalignedInputError, match="dropped the spatial weights"):
        pipeline.run(grid_frame)


def test_pipeline_rejects_removal_after_results(grid_frame: UnitFrame) -> None:
    pipeline = Pipeline([BuildWeightsStep(), GlobalMoranStep("gradient"), ExcludeStep("r1c1")])
    with pytest.raises(MisalignedInputError, match=r"after results were recorded for \['gradient'\]"):
        pipeline.run(grid_frame)


def test_exclusions_keep_weights_aligned(grid_frame: UnitFrame) -> None:
    pipeline = Pipeline([BuildWeightsStep(), ExcludeStep("r0c0"), ExcludeStep("r2c2")])
    result = pipeline.run(grid_frame)

    assert len(pipeline) == 3
    assert result.excluded_ids() == ["r0c0", "r2c2"]
    assert result.weights is not None
    assert result.weights.ids == result.ids
    assert "r0c0" not in result.weights.neighbors_of("r0c1")
    assert "ExcludeStep" in repr(pipeline)


def test_pipeline_keeps_derived_columns(grid_frame: UnitFrame) -> None:
    class AddColumnStep(Step):
        def run(self, unit_frame: UnitFrame) -> UnitFrame:
            return unit_frame.with_derived_columns(
                {"gradient_twice": unit_frame.attribute("gradient") * 2},
                ResultProvenance(produced_by="Adder", inputs=["gradient"]),
            )

    result = Pipeline([AddColumnStep()]).run(grid_frame)
    assert "gradient_twice" in result.schema.derived_cols
    assert result.data["gradient_twice"].to_list() == [0.0] * 3 + [2.0] * 3 + [4.0] * 3


def test_transition_issues_flags_new_units(grid_frame: UnitFrame) -> None:
    smaller = grid_frame.exclude(["r1c1"], reason="test")
    issues = transition_issues(smaller, grid_frame)
    assert issues == ["introduced units r1c1"]

    assert transition_issues(grid_frame, smaller) == []


def test_empty_pipeline_returns_input(grid_frame: UnitFrame) -> None:
    assert Pipeline([]).run(grid_frame) is grid_frame
