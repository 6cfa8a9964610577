"""Step registration for built-in geometry, filter, weights and test steps.

This module registers all built-in steps with the StepRegistry.
It can be called explicitly or discovered via entry points.
"""

from __future__ import annotations

from lisaflow.core.registry import StepRegistry
from lisaflow.core.steps.autocorrelation import (
    GlobalMoranConfig,
    GlobalMoranStep,
    LocalMoranConfig,
    LocalMoranStep,
)
from lisaflow.core.steps.filtering import (
    DropMissingConfig,
    DropMissingStep,
    ExcludeIslandsConfig,
    ExcludeIslandsStep,
    FilterUnitsConfig,
    FilterUnitsStep,
)
from lisaflow.core.steps.geometry import TransformCRSConfig, TransformCRSStep, ValidateGeometryStep
from lisaflow.core.steps.weights import BuildWeightsConfig, BuildWeightsStep


def register_builtin_steps(registry: StepRegistry) -> None:
    """Register all built-in steps with the given registry.

    This function can be called directly or via entry point discovery.

    Args:
        registry: The StepRegistry to register steps with.
    """
    # Geometry steps
    registry.register(
        "validate_geometry",
        ValidateGeometryStep,
        tags=["geometry"],
        description="Reject missing, empty, non-polygonal or invalid boundaries",
    )

    registry.register(
        "to_crs",
        TransformCRSStep,
        tags=["geometry"],
        description="Re-project unit boundaries to a different CRS",
        config_model=TransformCRSConfig,
    )

    # Filter steps
    registry.register(
        "filter_units",
        FilterUnitsStep,
        tags=["filter"],
        description="Remove small-population outliers from the analysis set",
        config_model=FilterUnitsConfig,
    )

    registry.register(
        "drop_missing",
        DropMissingStep,
        tags=["filter"],
        description="Remove units with undefined attribute values",
        config_model=DropMissingConfig,
    )

    registry.register(
        "exclude_islands",
        ExcludeIslandsStep,
        tags=["filter", "weights"],
        description="Remove units without neighbours",
        config_model=ExcludeIslandsConfig,
    )

    # Weights
    registry.register(
        "build_weights",
        BuildWeightsStep,
        tags=["weights"],
        description="Build rook/queen neighbours and spatial weights",
        config_model=BuildWeightsConfig,
    )

    # Autocorrelation tests
    registry.register(
        "global_moran",
        GlobalMoranStep,
        tags=["autocorrelation"],
        description="Compute global Moran's I and its significance",
        config_model=GlobalMoranConfig,
    )

    registry.register(
        "local_moran",
        LocalMoranStep,
        tags=["autocorrelation"],
        description="Compute local Moran's I, quadrants and hotspot labels",
        config_model=LocalMoranConfig,
    )


def get_default_registry() -> StepRegistry:
    """Create and return a registry with all built-in steps registered.

    Returns:
        StepRegistry with all built-in steps.
    """
    registry = StepRegistry()
    register_builtin_steps(registry)
    return registry
