"""
Registered Step implementations for spatial autocorrelation analysis.

All steps in this package:
- Inherit from lisaflow.core.pipeline.Step
- Declare their parameters via pydantic config models
- Record results and derived columns with provenance
"""

from lisaflow.core.steps.autocorrelation import GlobalMoranStep, LocalMoranStep
from lisaflow.core.steps.filtering import DropMissingStep, ExcludeIslandsStep, FilterUnitsStep
from lisaflow.core.steps.geometry import TransformCRSStep, ValidateGeometryStep
from lisaflow.core.steps.registration import get_default_registry, register_builtin_steps
from lisaflow.core.steps.weights import BuildWeightsStep

__all__ = [
    # Registration
    "get_default_registry",
    "register_builtin_steps",
    # Geometry steps
    "TransformCRSStep",
    "ValidateGeometryStep",
    # Filter steps
    "DropMissingStep",
    "ExcludeIslandsStep",
    "FilterUnitsStep",
    # Weights
    "BuildWeightsStep",
    # Autocorrelation tests
    "GlobalMoranStep",
    "LocalMoranStep",
]
