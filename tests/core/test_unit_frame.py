"""Tests for UnitFrame."""

import math

import numpy as np
import polars as pl
import pytest
from shapely.geometry import box

from lisaflow.core.errors import MisalignedInputError, MissingAttributeError
from lisaflow.core.schema import ResultProvenance, UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame


def test_unit_frame_creation(grid) -> None:
    ids, geoms = grid
    data = pl.DataFrame({"GEOID": ids, "value": list(range(9))})
    frame = UnitFrame(data, geoms, UnitSchema(), UnitMetadata(dataset_name="test"))

    assert len(frame) == 9
    assert frame.ids[0] == "r0c0"
    assert frame.schema.attribute_cols == ["value"]
    assert frame.metadata.dataset_name == "test"
    assert frame.neighbors is None


def test_ids_are_cast_to_strings(grid) -> None:
    _, geoms = grid
    data = pl.DataFrame({"GEOID": list(range(9)), "value": [1.0] * 9})
    frame = UnitFrame(data, geoms, UnitSchema())
    assert frame.ids[:2] == ("0", "1")


def test_duplicate_ids_rejected(grid) -> None:
    _, geoms = grid
    data = pl.DataFrame({"GEOID": ["a"] * 9, "value": [1.0] * 9})
    with pytest.raises(MisalignedInputError, match="unique"):
        UnitFrame(data, geoms, UnitSchema())


def test_geometry_count_mismatch(grid) -> None:
    ids, geoms = grid
    data = pl.DataFrame({"GEOID": ids, "value": [1.0] * 9})
    with pytest.raises(MisalignedInputError):
        UnitFrame(data, geoms[:-1], UnitSchema())


def test_missing_id_column(grid) -> None:
    ids, geoms = grid
    data = pl.DataFrame({"tract": ids})
    with pytest.raises(MisalignedInputError):
        UnitFrame(data, geoms, UnitSchema())


def test_from_wkt(grid) -> None:
    ids, geoms = grid
    data = pl.DataFrame(
        {"GEOID": ids, "geometry": [g.wkt for g in geoms], "rate": np.linspace(0, 1, 9)}
    )
    frame = UnitFrame.from_wkt(data, crs="EPSG:5070")
    assert "geometry" not in frame.data.columns
    assert frame.geometries[4].equals(box(1, 1, 2, 2))
    assert frame.metadata.crs == "EPSG:5070"
    assert frame.to_wkt_frame()["geometry"][0] == geoms[0].wkt


def test_attribute_nulls_become_nan(grid) -> None:
    ids, geoms = grid
    values = [1.0, None, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0]
    frame = UnitFrame(pl.DataFrame({"GEOID": ids, "v": values}), geoms, UnitSchema())
    array = frame.attribute("v")
    assert math.isnan(array[1])
    assert frame.missing_ids("v") == ["r0c1"]
    with pytest.raises(MissingAttributeError) as excinfo:
        frame.require_complete(["v"])
    assert excinfo.value.unit_ids == ["r0c1"]

    dropped = frame.drop_missing(["v"])
    assert len(dropped) == 8
    assert dropped.excluded_ids() == ["r0c1"]


def test_build_weights_attaches_structures(grid_frame: UnitFrame) -> None:
    frame = grid_frame.build_weights("queen", "binary")
    assert frame.neighbors is not None and frame.weights is not None
    assert frame.weights.ids == frame.ids
    assert frame.weights.style.value == "binary"
    # Original snapshot is unchanged
    assert grid_frame.weights is None


def test_exclude_keeps_weight_style(grid_frame: UnitFrame) -> None:
    frame = grid_frame.build_weights("rook", "binary").exclude(["r1c1"], reason="test")
    assert frame.weights is not None
    assert frame.weights.style.value == "binary"
    assert frame.weights.ids == frame.ids
    assert frame.metadata.excluded[0].reason == "test"


def test_exclude_unknown_unit(grid_frame: UnitFrame) -> None:
    with pytest.raises(MisalignedInputError):
        grid_frame.exclude(["nowhere"], reason="test")


def test_with_derived_columns(grid_frame: UnitFrame) -> None:
    provenance = ResultProvenance(produced_by="test", inputs=["gradient"])
    frame = grid_frame.with_derived_columns({"double": np.arange(9) * 2.0}, provenance)
    assert frame.data["double"][3] == 6.0
    assert frame.schema.derived_cols["double"].produced_by == "test"

    with pytest.raises(MisalignedInputError):
        grid_frame.with_derived_columns({"short": [1.0, 2.0]}, provenance)


def test_to_crs_requires_crs(grid_frame: UnitFrame) -> None:
    with pytest.raises(MisalignedInputError):
        grid_frame.to_crs("EPSG:5070")


def test_to_crs_updates_metadata() -> None:
    records = [
        {"GEOID": f"u{i}", "v": float(i), "geometry": box(-88 + i * 0.1, 41, -87.9 + i * 0.1, 41.1)}
        for i in range(4)
    ]
    frame = UnitFrame.from_records(records, crs="EPSG:4326")
    projected = frame.to_crs("EPSG:5070")
    assert projected.metadata.crs == "EPSG:5070"
    assert projected.geometries[0].area > 1e6


def test_repr(grid_frame: UnitFrame) -> None:
    assert "units=9" in repr(grid_frame)
