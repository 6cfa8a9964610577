"""Outlier and edge-case filters applied before autocorrelation tests.

Filters are caller policy: the engine never decides on its own which units to
drop. A filter is a predicate selecting units to *exclude*; excluded units
are removed from the attribute table, the geometry, the neighbour list and
the weights together.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import polars as pl

from lisaflow.core.errors import InvalidConfigurationError
from lisaflow.core.schema import (
    AdjacencyMethod,
    Contiguity,
    OutlierFilterConfig,
    OutlierPredicate,
    WeightStyle,
    parse_option,
)
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)


def small_population_filter(
    ratio_col: str,
    count_col: str,
    min_count: float,
    ratio_value: float = 1.0,
) -> pl.Expr:
    """
    Predicate for degenerate small-population ratios.

    Selects units whose ratio equals ``ratio_value`` (by default exactly 1.0)
    while the population count behind it is below ``min_count``. Such
    ratios are extreme values produced by tiny denominators and distort
    Moran's I.

    Example:
        >>> expr = small_population_filter("single_ratio", "total_pop", 50)
        >>> frame = frame.filter_units(expr, reason="small population")
    """
    return OutlierFilterConfig(
        ratio_col=ratio_col,
        count_col=count_col,
        min_count=min_count,
        ratio_value=ratio_value,
    ).to_expr()


def exclusion_mask(data: pl.DataFrame, predicate: OutlierPredicate) -> list[bool]:
    """
    Evaluate *predicate* over every row of *data*.

    Args:
        data: Unit attribute table
        predicate: polars expression, OutlierFilterConfig, or a callable
            receiving one row as a mapping

    Returns:
        One flag per row, True where the unit must be excluded. Null
        predicate results count as "keep".
    """
    if isinstance(predicate, OutlierFilterConfig):
        predicate = predicate.to_expr()

    if isinstance(predicate, pl.Expr):
        try:
            flags = data.select(predicate.alias("_exclude"))["_exclude"]
        except pl.exceptions.ColumnNotFoundError as e:
            raise InvalidConfigurationError(f"Outlier filter references unknown column: {e}") from e
        if flags.dtype != pl.Boolean:
            raise InvalidConfigurationError(
                f"Outlier filter must evaluate to a boolean, got {flags.dtype}"
            )
        return flags.fill_null(False).to_list()

    if callable(predicate):
        return [bool(predicate(row)) for row in data.iter_rows(named=True)]

    raise InvalidConfigurationError(
        f"Unsupported outlier filter of type {type(predicate).__name__}"
    )


def exclude_islands(
    frame: UnitFrame,
    contiguity: Contiguity | str = Contiguity.ROOK,
    weight_style: WeightStyle | str = WeightStyle.ROW_STANDARDIZED,
    method: AdjacencyMethod | str = AdjacencyMethod.STRTREE,
) -> UnitFrame:
    """
    Remove units without neighbours from *frame*.

    Islands have no neighbours, so removing them leaves every other unit's
    neighbour count unchanged. The returned frame carries the neighbour list
    and weights of the remaining units.
    """
    contiguity = parse_option(Contiguity, contiguity, "contiguity")
    if frame.neighbors is None or frame.neighbors.contiguity is not contiguity:
        frame = frame.build_weights(contiguity, weight_style, method=method)

    assert frame.neighbors is not None
    islands = frame.neighbors.islands
    if not islands:
        logger.debug("No island units to exclude")
        return frame
    return frame.exclude(islands, reason=f"island ({frame.neighbors.contiguity.value})")
