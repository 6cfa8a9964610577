"""Core module containing the spatial weights and autocorrelation engine."""

from lisaflow.core.adjacency import NeighborList, build_neighbors
from lisaflow.core.classification import HotspotLabel, Quadrant, classify_quadrant
from lisaflow.core.errors import (
    DegenerateVarianceError,
    GeometryError,
    InvalidConfigurationError,
    IslandUnitError,
    LisaflowError,
    MisalignedInputError,
    MissingAttributeError,
)
from lisaflow.core.filters import exclude_islands, small_population_filter
from lisaflow.core.local import LocalMoranResult, moran_local
from lisaflow.core.moran import MoranResult, moran_global
from lisaflow.core.registry import StepRegistry, StepSpec
from lisaflow.core.schema import (
    AnalysisConfig,
    Contiguity,
    OutlierFilterConfig,
    ResultProvenance,
    UnitMetadata,
    UnitSchema,
    WeightStyle,
)
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.weights import SpatialWeights

__all__ = [
    "UnitFrame",
    "UnitSchema",
    "UnitMetadata",
    "ResultProvenance",
    "AnalysisConfig",
    "OutlierFilterConfig",
    "Contiguity",
    "WeightStyle",
    "NeighborList",
    "build_neighbors",
    "SpatialWeights",
    "MoranResult",
    "moran_global",
    "LocalMoranResult",
    "moran_local",
    "Quadrant",
    "HotspotLabel",
    "classify_quadrant",
    "small_population_filter",
    "exclude_islands",
    "StepRegistry",
    "StepSpec",
    "LisaflowError",
    "GeometryError",
    "IslandUnitError",
    "DegenerateVarianceError",
    "MisalignedInputError",
    "InvalidConfigurationError",
    "MissingAttributeError",
]
