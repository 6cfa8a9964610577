"""Error taxonomy for the autocorrelation engine.

Every error describes exactly one root cause. All of them derive from
``ValueError`` so callers that already guard against bad input keep working.
"""

from __future__ import annotations

from collections.abc import Iterable

from lisaflow.core.utils import format_ids


class LisaflowError(ValueError):
    """Base class for all lisaflow errors."""


class GeometryError(LisaflowError):
    """Malformed, empty, non-polygonal or self-intersecting unit geometry."""

    def __init__(self, message: str, unit_ids: Iterable[str] = ()) -> None:
        self.unit_ids = list(unit_ids)
        super().__init__(message)


class IslandUnitError(LisaflowError):
    """Units without neighbours were included in a test that needs a spatial lag."""

    def __init__(self, unit_ids: Iterable[str]) -> None:
        self.unit_ids = list(unit_ids)
        super().__init__(
            f"{len(self.unit_ids)} unit(s) have no neighbours and cannot receive a "
            f"spatial lag: {format_ids(self.unit_ids)}. Exclude them or change the "
            "contiguity rule."
        )


class DegenerateVarianceError(LisaflowError):
    """Attribute is constant across all included units."""

    def __init__(self, attribute: str | None = None, detail: str | None = None) -> None:
        self.attribute = attribute
        label = f"Attribute '{attribute}'" if attribute else "Attribute"
        super().__init__(detail or f"{label} has zero variance across all included units")


class MisalignedInputError(LisaflowError):
    """Attribute vector does not match the weights' unit ordering."""


class InvalidConfigurationError(LisaflowError):
    """Unrecognised option or inconsistent option combination."""


class MissingAttributeError(LisaflowError):
    """Attribute has null, NaN or infinite values that were not excluded."""

    def __init__(self, attribute: str | None, unit_ids: Iterable[str]) -> None:
        self.attribute = attribute
        self.unit_ids = list(unit_ids)
        label = f"Attribute '{attribute}'" if attribute else "Attribute"
        super().__init__(
            f"{label} is missing or non-finite for {len(self.unit_ids)} unit(s): "
            f"{format_ids(self.unit_ids)}"
        )
