"""Common test fixtures and utilities."""

import polars as pl
import pytest
from shapely.geometry import box

from lisaflow.core.adjacency import NeighborList, build_neighbors
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.weights import SpatialWeights


def grid_units(nrows: int = 3, ncols: int = 3) -> tuple[list[str], list]:
    """Unit squares laid out row-major; ids are 'r{row}c{col}'."""
    ids = []
    geoms = []
    for r in range(nrows):
        for c in range(ncols):
            ids.append(f"r{r}c{c}")
            geoms.append(box(c, r, c + 1, r + 1))
    return ids, geoms


@pytest.fixture
def grid_factory():
    """Builder for arbitrary nrows x ncols grids."""
    return grid_units


@pytest.fixture
def grid():
    """3x3 grid of unit squares."""
    return grid_units()


@pytest.fixture
def rook_neighbors(grid) -> NeighborList:
    ids, geoms = grid
    return build_neighbors(ids, geoms, "rook")


@pytest.fixture
def rook_weights(rook_neighbors: NeighborList) -> SpatialWeights:
    return SpatialWeights(rook_neighbors, "row_standardized")


@pytest.fixture
def checkerboard() -> list[float]:
    """Alternating 1/0 values over the 3x3 grid (row-major)."""
    return [float((r + c) % 2 == 0) for r in range(3) for c in range(3)]


@pytest.fixture
def gradient() -> list[float]:
    """Row index as value over the 3x3 grid."""
    return [float(r) for r in range(3) for _ in range(3)]


@pytest.fixture
def grid_frame(grid, checkerboard, gradient) -> UnitFrame:
    """UnitFrame over the 3x3 grid with a few attributes."""
    ids, geoms = grid
    data = pl.DataFrame(
        {
            "GEOID": ids,
            "checker": checkerboard,
            "gradient": gradient,
            "constant": [5.0] * 9,
            "total_pop": [120, 80, 30, 200, 150, 10, 95, 60, 400],
            "single_ratio": [0.4, 0.3, 1.0, 0.5, 0.2, 1.0, 0.35, 0.45, 0.25],
        }
    )
    return UnitFrame.from_records(
        [dict(row, geometry=geom) for row, geom in zip(data.iter_rows(named=True), geoms)],
        attribute_cols=["checker", "gradient", "constant", "total_pop", "single_ratio"],
        dataset_name="grid",
    )


@pytest.fixture
def island_frame(grid, gradient) -> UnitFrame:
    """3x3 grid plus one detached unit far away."""
    ids, geoms = grid
    records = [
        {"GEOID": unit_id, "value": value, "geometry": geom}
        for unit_id, value, geom in zip(ids, gradient, geoms)
    ]
    records.append({"GEOID": "island", "value": 7.0, "geometry": box(10, 10, 11, 11)})
    return UnitFrame.from_records(records, dataset_name="with-island")
