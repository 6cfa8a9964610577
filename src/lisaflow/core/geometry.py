"""Polygon validation and coordinate transformation for unit boundaries."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import shapely
from pyproj import CRS, Transformer
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from lisaflow.core.errors import GeometryError
from lisaflow.core.utils import format_ids, get_logger

logger = get_logger(__name__)

POLYGONAL_TYPES = frozenset({"Polygon", "MultiPolygon"})


def validate_polygons(ids: Sequence[str], geometries: Sequence[BaseGeometry | None]) -> None:
    """
    Check that every unit boundary is a valid, non-empty polygon.

    Args:
        ids: Unit identifiers aligned with *geometries*
        geometries: Unit boundaries

    Raises:
        GeometryError: If any boundary is missing, empty, non-polygonal or
            invalid (e.g. self-intersecting). The message names every
            offending unit and the reason reported by shapely.
    """
    if len(ids) != len(geometries):
        raise GeometryError(f"Got {len(geometries)} geometries for {len(ids)} units")

    problems: list[tuple[str, str]] = []
    for unit_id, geom in zip(ids, geometries):
        if geom is None:
            problems.append((unit_id, "missing geometry"))
        elif geom.is_empty:
            problems.append((unit_id, "empty geometry"))
        elif geom.geom_type not in POLYGONAL_TYPES:
            problems.append((unit_id, f"expected Polygon or MultiPolygon, got {geom.geom_type}"))
        elif not geom.is_valid:
            problems.append((unit_id, shapely.is_valid_reason(geom)))

    if problems:
        for unit_id, reason in problems:
            logger.error("Invalid geometry for unit %s: %s", unit_id, reason)
        first_id, first_reason = problems[0]
        raise GeometryError(
            f"{len(problems)} unit(s) have malformed geometry "
            f"({format_ids([p[0] for p in problems])}); first: {first_id}: {first_reason}",
            unit_ids=[p[0] for p in problems],
        )

    logger.debug("Validated %d unit geometries", len(geometries))


def parse_wkt(ids: Sequence[str], wkt_values: Sequence[str | None]) -> tuple[BaseGeometry, ...]:
    """
    Parse WKT strings into shapely geometries.

    Raises:
        GeometryError: If a value is missing or not parseable WKT
    """
    geometries: list[BaseGeometry] = []
    for unit_id, wkt in zip(ids, wkt_values):
        if wkt is None:
            raise GeometryError(f"Unit {unit_id} has no geometry", unit_ids=[unit_id])
        try:
            geometries.append(shapely.from_wkt(wkt))
        except GEOSException as e:
            raise GeometryError(f"Unit {unit_id} has unparseable WKT: {e}", unit_ids=[unit_id]) from e
    return tuple(geometries)


def is_geographic(crs: str | None) -> bool:
    """Return True when *crs* is a geographic (degree based) CRS."""
    if crs is None:
        return False
    return bool(CRS.from_user_input(crs).is_geographic)


def transform_geometries(
    geometries: Sequence[BaseGeometry],
    source_crs: str,
    target_crs: str,
) -> tuple[BaseGeometry, ...]:
    """
    Re-project unit boundaries to a different CRS.

    Args:
        geometries: Unit boundaries in *source_crs*
        source_crs: Current CRS (e.g. "EPSG:4326")
        target_crs: Target CRS (e.g. "EPSG:5070")

    Returns:
        Boundaries in *target_crs*, in the same order
    """
    if source_crs == target_crs:
        logger.debug(f"CRS already matches target: {target_crs}")
        return tuple(geometries)

    logger.info(f"Transforming {len(geometries)} boundaries from {source_crs} to {target_crs}")
    transformer = Transformer.from_crs(source_crs, target_crs, always_xy=True)

    def _project(coords: np.ndarray) -> np.ndarray:
        x, y = transformer.transform(coords[:, 0], coords[:, 1])
        return np.column_stack([x, y])

    array = np.empty(len(geometries), dtype=object)
    for i, geom in enumerate(geometries):
        array[i] = geom
    return tuple(shapely.transform(array, _project))
