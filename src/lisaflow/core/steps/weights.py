"""Neighbour list and spatial weights construction step."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from lisaflow.core.pipeline import Step
from lisaflow.core.schema import AdjacencyMethod, Contiguity, WeightStyle
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)


class BuildWeightsConfig(BaseModel):
    """Configuration for weights construction step."""

    contiguity: Contiguity = Field(default=Contiguity.ROOK, description="Neighbour rule")
    weight_style: WeightStyle = Field(
        default=WeightStyle.ROW_STANDARDIZED, description="Weight standardization"
    )
    method: AdjacencyMethod = Field(
        default=AdjacencyMethod.STRTREE, description="Candidate pair search"
    )


class BuildWeightsStep(Step):
    """Derive contiguity neighbours and spatial weights from unit boundaries.

    Outputs:
        - Neighbour list and weights attached to the frame
    """

    def __init__(
        self,
        contiguity: Contiguity | str = Contiguity.ROOK,
        weight_style: WeightStyle | str = WeightStyle.ROW_STANDARDIZED,
        method: AdjacencyMethod | str = AdjacencyMethod.STRTREE,
    ) -> None:
        self.contiguity = contiguity
        self.weight_style = weight_style
        self.method = method

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute weights construction."""
        logger.info(
            f"Building {self.contiguity} weights ({self.weight_style}) for {len(unit_frame)} units"
        )
        return unit_frame.build_weights(self.contiguity, self.weight_style, method=self.method)

    def __repr__(self) -> str:
        return f"BuildWeightsStep({self.contiguity}, {self.weight_style})"
