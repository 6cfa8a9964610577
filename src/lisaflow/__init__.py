"""Lisaflow: Global and local spatial autocorrelation for areal units."""

__version__ = "0.1.0"

from lisaflow.analysis import AnalysisResult, AutocorrelationAnalyzer
from lisaflow.core.schema import AnalysisConfig, UnitMetadata, UnitSchema
from lisaflow.core.unit_frame import UnitFrame

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "AutocorrelationAnalyzer",
    "UnitFrame",
    "UnitMetadata",
    "UnitSchema",
    "__version__",
]
