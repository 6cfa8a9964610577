"""Filtering steps removing units from the analysis set."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from lisaflow.core.errors import InvalidConfigurationError
from lisaflow.core.filters import exclude_islands
from lisaflow.core.pipeline import Step
from lisaflow.core.schema import (
    AdjacencyMethod,
    Contiguity,
    OutlierFilterConfig,
    OutlierPredicate,
    WeightStyle,
)
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)


class FilterUnitsConfig(BaseModel):
    """Configuration for the small-population outlier filter step."""

    ratio_col: str = Field(..., description="Ratio attribute column")
    count_col: str = Field(..., description="Population count column")
    min_count: float = Field(..., gt=0, description="Minimum meaningful population")
    ratio_value: float = Field(default=1.0, description="Degenerate ratio value")
    reason: str = Field(default="small population", description="Recorded exclusion reason")


class DropMissingConfig(BaseModel):
    """Configuration for dropping units with undefined attributes."""

    attributes: list[str] | None = Field(
        default=None, description="Attributes to check (all schema attributes if None)"
    )


class ExcludeIslandsConfig(BaseModel):
    """Configuration for island exclusion step."""

    contiguity: Contiguity | None = Field(
        default=None, description="Neighbour rule (the frame's current rule if None)"
    )
    weight_style: WeightStyle | None = Field(
        default=None, description="Weight style (the frame's current style if None)"
    )
    method: AdjacencyMethod = Field(
        default=AdjacencyMethod.STRTREE, description="Candidate pair search"
    )


class FilterUnitsStep(Step):
    """Remove units matching an outlier predicate.

    Either a declarative small-population filter (ratio/count columns) or an
    arbitrary predicate passed from code.
    """

    def __init__(
        self,
        ratio_col: str | None = None,
        count_col: str | None = None,
        min_count: float | None = None,
        ratio_value: float = 1.0,
        reason: str = "small population",
        *,
        predicate: OutlierPredicate | None = None,
    ) -> None:
        if predicate is None:
            if ratio_col is None or count_col is None or min_count is None:
                raise InvalidConfigurationError(
                    "FilterUnitsStep needs a predicate or ratio_col, count_col and min_count"
                )
            predicate = OutlierFilterConfig(
                ratio_col=ratio_col,
                count_col=count_col,
                min_count=min_count,
                ratio_value=ratio_value,
            )
        self.predicate = predicate
        self.reason = reason

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the outlier filter."""
        return unit_frame.filter_units(self.predicate, reason=self.reason)

    def __repr__(self) -> str:
        return f"FilterUnitsStep({self.reason!r})"


class DropMissingStep(Step):
    """Remove units whose analysed attributes are null or NaN."""

    def __init__(self, attributes: list[str] | None = None) -> None:
        self.attributes = attributes

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the missing-value policy."""
        attributes = self.attributes or unit_frame.schema.attribute_cols
        return unit_frame.drop_missing(attributes)


class ExcludeIslandsStep(Step):
    """Remove units without neighbours.

    Outputs:
        - Frame without islands, carrying the remaining units' weights
    """

    def __init__(
        self,
        contiguity: Contiguity | str | None = None,
        weight_style: WeightStyle | str | None = None,
        method: AdjacencyMethod | str = AdjacencyMethod.STRTREE,
    ) -> None:
        self.contiguity = contiguity
        self.weight_style = weight_style
        self.method = method

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute island exclusion."""
        contiguity = self.contiguity
        if contiguity is None:
            contiguity = (
                unit_frame.neighbors.contiguity if unit_frame.neighbors else Contiguity.ROOK
            )
        weight_style = self.weight_style
        if weight_style is None:
            weight_style = (
                unit_frame.weights.style if unit_frame.weights else WeightStyle.ROW_STANDARDIZED
            )
        return exclude_islands(unit_frame, contiguity, weight_style, method=self.method)
