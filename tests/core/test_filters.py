"""Tests for outlier and island filters."""

import polars as pl
import pytest

from lisaflow.core.errors import InvalidConfigurationError
from lisaflow.core.filters import exclude_islands, exclusion_mask, small_population_filter
from lisaflow.core.schema import OutlierFilterConfig
from lisaflow.core.unit_frame import UnitFrame


@pytest.fixture
def table() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "GEOID": ["a", "b", "c", "d"],
            "single_ratio": [1.0, 1.0, 0.4, None],
            "total_pop": [12, 500, 8, 40],
        }
    )


class TestExclusionMask:
    def test_small_population_expression(self, table: pl.DataFrame) -> None:
        expr = small_population_filter("single_ratio", "total_pop", 50)
        assert exclusion_mask(table, expr) == [True, False, False, False]

    def test_declarative_config(self, table: pl.DataFrame) -> None:
        config = OutlierFilterConfig(ratio_col="single_ratio", count_col="total_pop", min_count=600)
        assert exclusion_mask(table, config) == [True, True, False, False]

    def test_callable_predicate(self, table: pl.DataFrame) -> None:
        mask = exclusion_mask(table, lambda row: row["total_pop"] < 10)
        assert mask == [False, False, True, False]

    def test_null_results_are_kept(self, table: pl.DataFrame) -> None:
        mask = exclusion_mask(table, pl.col("single_ratio") > 0.5)
        assert mask[3] is False

    def test_unknown_column(self, table: pl.DataFrame) -> None:
        with pytest.raises(InvalidConfigurationError):
            exclusion_mask(table, pl.col("nope") > 1)

    def test_non_boolean_expression(self, table: pl.DataFrame) -> None:
        with pytest.raises(InvalidConfigurationError):
            exclusion_mask(table, pl.col("total_pop") * 2)

    def test_unsupported_predicate(self, table: pl.DataFrame) -> None:
        with pytest.raises(InvalidConfigurationError):
            exclusion_mask(table, "total_pop < 10")  # type: ignore[arg-type]


class TestFilterUnits:
    def test_filtered_units_leave_every_structure(self, grid_frame: UnitFrame) -> None:
        frame = grid_frame.build_weights("rook")
        expr = small_population_filter("single_ratio", "total_pop", 50)
        filtered = frame.filter_units(expr, reason="small population")

        # r0c2 (pop 30) and r1c2 (pop 10) have ratio 1.0
        assert filtered.excluded_ids() == ["r0c2", "r1c2"]
        assert "r0c2" not in filtered.ids
        assert len(filtered.geometries) == 7
        assert filtered.neighbors is not None and filtered.weights is not None
        assert filtered.weights.n == 7
        for unit_id in filtered.ids:
            assert "r0c2" not in filtered.neighbors[unit_id]
            assert "r1c2" not in filtered.neighbors[unit_id]
        assert filtered.metadata.excluded[0].reason == "small population"

    def test_no_match_returns_same_frame(self, grid_frame: UnitFrame) -> None:
        assert grid_frame.filter_units(pl.col("total_pop") < 0) is grid_frame


class TestExcludeIslands:
    def test_removes_island_only(self, island_frame: UnitFrame) -> None:
        with_weights = island_frame.build_weights("rook")
        before = with_weights.neighbors.cardinalities
        result = exclude_islands(island_frame, "rook")

        assert "island" not in result.ids
        assert result.neighbors is not None
        assert result.neighbors.islands == []
        after = result.neighbors.cardinalities
        assert all(after[uid] == before[uid] for uid in result.ids)
        assert result.metadata.excluded[-1].unit_ids == ["island"]

    def test_no_islands_is_noop(self, grid_frame: UnitFrame) -> None:
        frame = grid_frame.build_weights("queen")
        assert exclude_islands(frame, "queen") is frame
