"""Geometry pipeline steps: boundary validation and re-projection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from lisaflow.core.pipeline import Step
from lisaflow.core.utils import get_logger

if TYPE_CHECKING:
    from lisaflow.core.unit_frame import UnitFrame

logger = get_logger(__name__)


class TransformCRSConfig(BaseModel):
    """Configuration for CRS transformation step."""

    target_crs: str = Field(..., description="Target CRS (e.g., 'EPSG:5070')")


class ValidateGeometryStep(Step):
    """Reject units with missing, empty, non-polygonal or invalid boundaries."""

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute geometry validation."""
        logger.info(f"Validating {len(unit_frame)} unit boundaries")
        return unit_frame.validate_geometry()


class TransformCRSStep(Step):
    """Re-project unit boundaries to a different CRS.

    Outputs:
        - Re-projected geometries
        - Updated CRS in metadata
    """

    def __init__(self, target_crs: str) -> None:
        self.target_crs = target_crs

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute CRS transformation."""
        if unit_frame.metadata.crs == self.target_crs:
            logger.debug(f"CRS already matches target: {self.target_crs}")
            return unit_frame

        logger.info(f"Transforming CRS from {unit_frame.metadata.crs} to {self.target_crs}")
        return unit_frame.to_crs(self.target_crs)

    def __repr__(self) -> str:
        return f"TransformCRSStep({self.target_crs!r})"
