"""Tests for registered analysis steps."""

from __future__ import annotations

import numpy as np
import polars as pl
import pytest

from lisaflow.core.errors import GeometryError, InvalidConfigurationError, IslandUnitError
from lisaflow.core.local import LocalMoranResult
from lisaflow.core.moran import MoranResult
from lisaflow.core.pipeline import Pipeline
from lisaflow.core.schema import Contiguity, WeightStyle
from lisaflow.core.steps import (
    BuildWeightsStep,
    DropMissingStep,
    ExcludeIslandsStep,
    FilterUnitsStep,
    GlobalMoranStep,
    LocalMoranStep,
    TransformCRSStep,
    ValidateGeometryStep,
)
from lisaflow.core.unit_frame import UnitFrame
from shapely.geometry import Polygon, box


class TestGeometrySteps:
    def test_validate_geometry_passes_valid_frame(self, grid_frame: UnitFrame) -> None:
        assert ValidateGeometryStep().run(grid_frame) is grid_frame

    def test_validate_geometry_rejects_bowtie(self) -> None:
        frame = UnitFrame.from_records(
            [
                {"GEOID": "ok", "v": 1.0, "geometry": box(0, 0, 1, 1)},
                {"GEOID": "bad", "v": 2.0, "geometry": Polygon([(0, 0), (1, 1), (1, 0), (0, 1)])},
            ]
        )
        with pytest.raises(GeometryError):
            ValidateGeometryStep().run(frame)

    def test_transform_crs_noop_when_matching(self) -> None:
        frame = UnitFrame.from_records(
            [{"GEOID": "a", "v": 1.0, "geometry": box(0, 0, 1, 1)}], crs="EPSG:5070"
        )
        assert TransformCRSStep("EPSG:5070").run(frame) is frame


class TestFilterSteps:
    def test_filter_units_declarative(self, grid_frame: UnitFrame) -> None:
        step = FilterUnitsStep("single_ratio", "total_pop", 50)
        result = step.run(grid_frame)
        assert result.excluded_ids() == ["r0c2", "r1c2"]
        assert result.metadata.excluded[0].reason == "small population"

    def test_filter_units_with_predicate(self, grid_frame: UnitFrame) -> None:
        step = FilterUnitsStep(predicate=pl.col("total_pop") > 300, reason="large")
        assert step.run(grid_frame).excluded_ids() == ["r2c2"]

    def test_filter_units_needs_a_rule(self) -> None:
        with pytest.raises(InvalidConfigurationError):
            FilterUnitsStep("single_ratio")

    def test_drop_missing_uses_schema_attributes(self, grid) -> None:
        ids, geoms = grid
        values = [1.0, 2.0, None, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0]
        frame = UnitFrame.from_records(
            [{"GEOID": i, "v": v, "geometry": g} for i, v, g in zip(ids, values, geoms)]
        )
        assert DropMissingStep().run(frame).excluded_ids() == ["r0c2"]

    def test_exclude_islands_keeps_frame_rule(self, island_frame: UnitFrame) -> None:
        frame = BuildWeightsStep("queen", "binary").run(island_frame)
        result = ExcludeIslandsStep().run(frame)
        assert "island" not in result.ids
        assert result.neighbors is not None
        assert result.neighbors.contiguity is Contiguity.QUEEN
        assert result.weights is not None
        assert result.weights.style is WeightStyle.BINARY


class TestAutocorrelationSteps:
    def test_requires_weights(self, grid_frame: UnitFrame) -> None:
        with pytest.raises(InvalidConfigurationError, match="build_weights"):
            GlobalMoranStep("gradient").run(grid_frame)

    def test_global_result_recorded(self, grid_frame: UnitFrame) -> None:
        frame = Pipeline([BuildWeightsStep(), GlobalMoranStep("checker")]).run(grid_frame)
        result = frame.metadata.global_results["checker"]
        assert isinstance(result, MoranResult)
        assert result.statistic == pytest.approx(-1.0)

    def test_local_columns_and_provenance(self, grid_frame: UnitFrame) -> None:
        frame = Pipeline([BuildWeightsStep(), LocalMoranStep("gradient")]).run(grid_frame)
        for suffix in ("z", "lag", "local_i", "z_score", "p_value", "quadrant", "hotspot"):
            column = f"gradient_{suffix}"
            assert column in frame.data.columns
            assert frame.schema.derived_cols[column].produced_by == "LocalMoranStep"

        local = frame.metadata.local_results["gradient"]
        assert isinstance(local, LocalMoranResult)
        assert np.allclose(frame.data["gradient_local_i"].to_numpy(), local.Is)
        assert frame.schema.derived_cols["gradient_z"].metadata["contiguity"] == "rook"

    def test_island_raises_until_excluded(self, island_frame: UnitFrame) -> None:
        with pytest.raises(IslandUnitError) as excinfo:
            Pipeline([BuildWeightsStep(), GlobalMoranStep("value")]).run(island_frame)
        assert excinfo.value.unit_ids == ["island"]

        frame = Pipeline(
            [BuildWeightsStep(), ExcludeIslandsStep(), GlobalMoranStep("value")]
        ).run(island_frame)
        assert frame.metadata.global_results["value"].n == 9
