"""Schema and configuration models for spatial units and analyses."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import polars as pl
import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from lisaflow.core.errors import InvalidConfigurationError


class Contiguity(str, Enum):
    """Rule deciding when two areal units are neighbours."""

    ROOK = "rook"  # shared edge
    QUEEN = "queen"  # shared edge or vertex

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class WeightStyle(str, Enum):
    """Standardization applied to a neighbour list."""

    ROW_STANDARDIZED = "row_standardized"
    BINARY = "binary"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class VarianceAssumption(str, Enum):
    """Null hypothesis used for analytic Moran's I inference."""

    NORMALITY = "normality"
    RANDOMIZATION = "randomization"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class MissingPolicy(str, Enum):
    """What to do with units whose analysed attribute is undefined."""

    RAISE = "raise"
    DROP = "drop"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class AdjacencyMethod(str, Enum):
    """Candidate pair search used by the adjacency builder."""

    STRTREE = "strtree"
    BRUTE_FORCE = "brute_force"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


def parse_option(enum_cls: type[Enum], value: Any, option: str) -> Any:
    """Coerce *value* into *enum_cls* or raise InvalidConfigurationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise InvalidConfigurationError(
            f"Unrecognised {option} {value!r}; expected one of: {allowed}"
        ) from None


class ResultProvenance(BaseModel):
    """Record describing how a derived column or result was produced."""

    produced_by: str | None = None
    inputs: list[str] = Field(default_factory=list)
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExclusionRecord(BaseModel):
    """Units removed from the analysis set and why."""

    reason: str
    unit_ids: list[str] = Field(default_factory=list)


class UnitSchema(BaseModel):
    """
    Describes the structure of a spatial unit table.

    Attributes:
        id_col: Name of the unique unit identifier column
        attribute_cols: Numeric attribute columns available for analysis
        derived_cols: Columns produced by analysis steps, keyed by name
    """

    id_col: str = "GEOID"
    attribute_cols: list[str] = Field(default_factory=list)
    derived_cols: dict[str, ResultProvenance] = Field(default_factory=dict)

    def compatibility_issues(self, other: UnitSchema) -> list[str]:
        """Return human-readable compatibility issues when transitioning to *other*."""

        issues: list[str] = []

        if self.id_col != other.id_col:
            issues.append(f"id_col mismatch: {self.id_col!r} -> {other.id_col!r}")

        missing_attributes = set(self.attribute_cols) - set(other.attribute_cols)
        if missing_attributes:
            issues.append("missing attribute columns: " + ", ".join(sorted(missing_attributes)))

        missing_derived = set(self.derived_cols) - set(other.derived_cols)
        if missing_derived:
            issues.append("missing derived column provenance: " + ", ".join(sorted(missing_derived)))

        return issues


class UnitMetadata(BaseModel):
    """
    Metadata about a spatial unit snapshot.

    Attributes:
        dataset_name: Name of the dataset
        crs: Coordinate reference system of the unit boundaries
        excluded: Log of units removed from the analysis set
        global_results: Global test results keyed by attribute
        local_results: Local test results keyed by attribute
        custom: Additional custom metadata
    """

    dataset_name: str = "units"
    crs: str | None = None
    excluded: list[ExclusionRecord] = Field(default_factory=list)
    global_results: dict[str, Any] = Field(default_factory=dict)
    local_results: dict[str, Any] = Field(default_factory=dict)
    custom: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)


class OutlierFilterConfig(BaseModel):
    """
    Declarative small-population outlier filter.

    Removes units whose ratio attribute equals ``ratio_value`` while the
    underlying population count is below ``min_count``.
    """

    ratio_col: str = Field(..., description="Ratio attribute column")
    count_col: str = Field(..., description="Population count column")
    min_count: float = Field(..., gt=0, description="Minimum meaningful population")
    ratio_value: float = Field(default=1.0, description="Degenerate ratio value")

    def to_expr(self) -> pl.Expr:
        """Return the polars predicate selecting units to exclude."""
        return (pl.col(self.ratio_col) == self.ratio_value) & (
            pl.col(self.count_col) < self.min_count
        )


OutlierPredicate = pl.Expr | Callable[[Mapping[str, Any]], bool] | OutlierFilterConfig

_ENUM_OPTIONS: tuple[tuple[str, type[Enum]], ...] = (
    ("contiguity", Contiguity),
    ("weight_style", WeightStyle),
    ("variance_assumption", VarianceAssumption),
    ("missing", MissingPolicy),
    ("adjacency_method", AdjacencyMethod),
)


class AnalysisConfig(BaseModel):
    """
    Configuration for a global/local autocorrelation analysis.

    Attributes:
        contiguity: Neighbour rule (rook or queen)
        weight_style: Weight standardization (row_standardized or binary)
        significance_threshold: Local p-value cut-off for classification
        permutations: Permutation draws; 0 selects analytic inference
        random_seed: Base seed, required when permutations > 0
        outlier_filter: Optional predicate selecting units to exclude
        variance_assumption: Null used for analytic global inference
        missing: Policy for undefined attribute values
        adjacency_method: Candidate pair search for the adjacency builder
        local: Whether to run the local (LISA) test
        skip_degenerate: Skip zero-variance attributes instead of raising
        steps: Registered step definitions that prepare the units and build
            the weights, in place of outlier_filter, missing="drop" and the
            weights options
    """

    contiguity: Contiguity = Contiguity.ROOK
    weight_style: WeightStyle = WeightStyle.ROW_STANDARDIZED
    significance_threshold: float = Field(default=0.05, gt=0, lt=1)
    permutations: int = Field(default=0, ge=0)
    random_seed: int | None = Field(default=None, ge=0)
    outlier_filter: OutlierPredicate | None = None
    variance_assumption: VarianceAssumption = VarianceAssumption.RANDOMIZATION
    missing: MissingPolicy = MissingPolicy.RAISE
    adjacency_method: AdjacencyMethod = AdjacencyMethod.STRTREE
    local: bool = True
    skip_degenerate: bool = False
    steps: list[str | dict[str, Any]] | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    def __init__(self, **options: Any) -> None:
        """
        Build a config, reporting problems as InvalidConfigurationError.

        Args:
            **options: Recognised configuration options; enum options accept
                their string values

        Raises:
            InvalidConfigurationError: For unknown options, unknown enum
                values, out-of-range numbers or permutations without a seed
        """
        unknown = set(options) - set(type(self).model_fields)
        if unknown:
            raise InvalidConfigurationError(f"Unrecognised options: {sorted(unknown)}")

        for name, enum_cls in _ENUM_OPTIONS:
            if name in options:
                options[name] = parse_option(enum_cls, options[name], name)

        try:
            super().__init__(**options)
        except ValidationError as e:
            raise InvalidConfigurationError(str(e)) from None

    @field_validator("outlier_filter", mode="before")
    @classmethod
    def parse_outlier_filter(cls, v: Any) -> Any:
        """Accept a mapping (e.g. from YAML) as an OutlierFilterConfig."""
        if isinstance(v, Mapping):
            return OutlierFilterConfig(**v)
        return v

    @model_validator(mode="after")
    def check_seed(self) -> AnalysisConfig:
        """Permutation inference must be reproducible."""
        if self.permutations > 0 and self.random_seed is None:
            raise ValueError("random_seed is required when permutations > 0")
        return self

    @classmethod
    def create(cls, **options: Any) -> AnalysisConfig:
        """Build a config from keyword options (same validation as the constructor)."""
        return cls(**options)

    @classmethod
    def from_yaml(cls, path: str | Path) -> AnalysisConfig:
        """
        Load an AnalysisConfig from a YAML file.

        The options live either at the top level or under an ``analysis`` key.
        """
        try:
            with open(path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(f"Config file {path} is not valid YAML: {e}") from None

        raw = {} if raw is None else raw
        if not isinstance(raw, dict):
            raise InvalidConfigurationError(f"Config file {path} must contain a mapping")
        section = raw.get("analysis", raw)
        if not isinstance(section, dict):
            raise InvalidConfigurationError(
                f"The 'analysis' section of {path} must be a mapping, got {section!r}"
            )
        return cls.create(**section)

    @property
    def uses_permutations(self) -> bool:
        """True when significance comes from permutation draws."""
        return self.permutations > 0
