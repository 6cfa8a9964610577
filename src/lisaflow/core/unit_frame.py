"""UnitFrame: central abstraction for areal unit data."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import numpy as np
import polars as pl
from shapely.geometry.base import BaseGeometry

from lisaflow.core.adjacency import NeighborList, build_neighbors
from lisaflow.core.errors import MisalignedInputError, MissingAttributeError
from lisaflow.core.filters import exclusion_mask
from lisaflow.core.geometry import (
    is_geographic,
    parse_wkt,
    transform_geometries,
    validate_polygons,
)
from lisaflow.core.schema import (
    AdjacencyMethod,
    Contiguity,
    ExclusionRecord,
    OutlierPredicate,
    ResultProvenance,
    UnitMetadata,
    UnitSchema,
    WeightStyle,
)
from lisaflow.core.utils import format_ids, get_logger
from lisaflow.core.weights import SpatialWeights

logger = get_logger(__name__)

_NUMERIC_DTYPES = (
    pl.Int8,
    pl.Int16,
    pl.Int32,
    pl.Int64,
    pl.UInt8,
    pl.UInt16,
    pl.UInt32,
    pl.UInt64,
    pl.Float32,
    pl.Float64,
)


class UnitFrame:
    """
    Immutable snapshot of spatial units.

    Wraps a polars DataFrame (one row per unit: identifier plus numeric
    attributes) together with the aligned polygon boundaries, a schema and
    metadata. Optionally carries the neighbour list and weights built for
    exactly this set of units. Every operation returns a new UnitFrame.

    Attributes:
        data: Attribute table
        geometries: Polygon boundaries aligned with the rows of *data*
        schema: Column structure
        metadata: Dataset metadata, exclusion log and recorded results
        neighbors: Neighbour list for these units, if built
        weights: Spatial weights for these units, if built
    """

    def __init__(
        self,
        data: pl.DataFrame,
        geometries: Sequence[BaseGeometry],
        schema: UnitSchema,
        metadata: UnitMetadata | None = None,
        *,
        neighbors: NeighborList | None = None,
        weights: SpatialWeights | None = None,
    ) -> None:
        """
        Initialize a UnitFrame.

        Args:
            data: Attribute table with the identifier column
            geometries: One polygon per row
            schema: Schema describing the table
            metadata: Metadata about the dataset
            neighbors: Neighbour list built for these units
            weights: Weights built for these units

        Raises:
            MisalignedInputError: If identifiers are missing or duplicated,
                columns are unknown, or geometry/neighbour alignment fails
        """
        id_col = schema.id_col
        if id_col not in data.columns:
            raise MisalignedInputError(f"Identifier column '{id_col}' not found")
        if len(geometries) != data.height:
            raise MisalignedInputError(
                f"Got {len(geometries)} geometries for {data.height} units"
            )

        data = data.with_columns(pl.col(id_col).cast(pl.Utf8))
        if data[id_col].null_count():
            raise MisalignedInputError(f"Identifier column '{id_col}' contains nulls")
        duplicates = data.filter(pl.col(id_col).is_duplicated())[id_col].unique().to_list()
        if duplicates:
            raise MisalignedInputError(
                f"Unit identifiers must be unique; duplicated: {format_ids(sorted(duplicates))}"
            )

        if not schema.attribute_cols:
            inferred = [
                name
                for name, dtype in data.schema.items()
                if name != id_col and dtype in _NUMERIC_DTYPES
            ]
            schema = schema.model_copy(update={"attribute_cols": inferred})
        unknown = [c for c in schema.attribute_cols if c not in data.columns]
        if unknown:
            raise MisalignedInputError(f"Attribute columns not found: {unknown}")

        ids = tuple(data[id_col].to_list())
        for name, built in (("neighbour list", neighbors), ("weights", weights)):
            if built is not None and tuple(built.ids) != ids:
                raise MisalignedInputError(f"The {name} does not match the frame's units")

        self.data = data
        self.geometries = tuple(geometries)
        self.schema = schema
        self.metadata = metadata or UnitMetadata()
        self.neighbors = neighbors
        self.weights = weights
        self._ids = ids
        logger.debug(
            f"Created UnitFrame for dataset '{self.metadata.dataset_name}' with {len(ids)} units"
        )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def from_wkt(
        cls,
        data: pl.DataFrame,
        *,
        id_col: str = "GEOID",
        geometry_col: str = "geometry",
        attribute_cols: Sequence[str] | None = None,
        dataset_name: str = "units",
        crs: str | None = None,
    ) -> UnitFrame:
        """
        Build a UnitFrame from a table holding WKT polygons.

        Args:
            data: Table with identifier, WKT geometry and attribute columns
            id_col: Identifier column
            geometry_col: Column of WKT strings
            attribute_cols: Attribute columns (numeric columns if omitted)
            dataset_name: Dataset name for metadata
            crs: CRS of the WKT coordinates

        Returns:
            UnitFrame without the geometry column in its table
        """
        if geometry_col not in data.columns:
            raise MisalignedInputError(f"Geometry column '{geometry_col}' not found")
        ids = [str(v) for v in data[id_col].to_list()] if id_col in data.columns else []
        geometries = parse_wkt(ids, data[geometry_col].to_list())
        return cls(
            data.drop(geometry_col),
            geometries,
            UnitSchema(id_col=id_col, attribute_cols=list(attribute_cols or [])),
            UnitMetadata(dataset_name=dataset_name, crs=crs),
        )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        *,
        id_col: str = "GEOID",
        geometry_key: str = "geometry",
        attribute_cols: Sequence[str] | None = None,
        dataset_name: str = "units",
        crs: str | None = None,
    ) -> UnitFrame:
        """
        Build a UnitFrame from row mappings holding shapely geometries or WKT.

        Example:
            >>> frame = UnitFrame.from_records(
            ...     [{"GEOID": "a", "pop": 10, "geometry": box(0, 0, 1, 1)}, ...]
            ... )
        """
        rows = [dict(r) for r in records]
        raw_geoms = [r.pop(geometry_key, None) for r in rows]
        ids = [str(r.get(id_col)) for r in rows]
        wkt = [g for g in raw_geoms if isinstance(g, str)]
        if wkt and len(wkt) != len(raw_geoms):
            raise MisalignedInputError("Geometries must be all WKT strings or all shapely objects")
        geometries = parse_wkt(ids, wkt) if wkt else tuple(raw_geoms)
        data = pl.DataFrame(rows) if rows else pl.DataFrame({id_col: []}, schema={id_col: pl.Utf8})
        return cls(
            data,
            geometries,
            UnitSchema(id_col=id_col, attribute_cols=list(attribute_cols or [])),
            UnitMetadata(dataset_name=dataset_name, crs=crs),
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def ids(self) -> tuple[str, ...]:
        """Unit identifiers in row order."""
        return self._ids

    @property
    def id_col(self) -> str:
        """Identifier column name."""
        return self.schema.id_col

    def __len__(self) -> int:
        return len(self._ids)

    def attribute(self, name: str) -> np.ndarray:
        """
        Return attribute *name* as a float vector in unit order.

        Nulls become NaN; statistical functions reject NaN and infinite values.
        """
        if name not in self.data.columns:
            raise MisalignedInputError(f"Attribute '{name}' not found")
        return self.data[name].cast(pl.Float64).to_numpy().astype(float)

    def missing_ids(self, name: str) -> list[str]:
        """Identifiers of units whose attribute *name* is null, NaN or infinite."""
        missing = ~np.isfinite(self.attribute(name))
        return [self._ids[i] for i in np.flatnonzero(missing)]

    def require_complete(self, names: Iterable[str]) -> None:
        """Raise MissingAttributeError if any of *names* has undefined values."""
        for name in names:
            missing = self.missing_ids(name)
            if missing:
                raise MissingAttributeError(name, missing)

    def excluded_ids(self) -> list[str]:
        """All identifiers removed from this snapshot so far."""
        return [unit_id for record in self.metadata.excluded for unit_id in record.unit_ids]

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------
    def _spawn(self, **updates: Any) -> UnitFrame:
        """Internal helper to create new UnitFrame instances preserving invariants."""
        fields: dict[str, Any] = {
            "data": self.data,
            "geometries": self.geometries,
            "schema": self.schema,
            "metadata": self.metadata,
            "neighbors": self.neighbors,
            "weights": self.weights,
        }
        fields.update(updates)
        return UnitFrame(
            fields["data"],
            fields["geometries"],
            fields["schema"],
            fields["metadata"],
            neighbors=fields["neighbors"],
            weights=fields["weights"],
        )

    def with_metadata(self, **updates: Any) -> UnitFrame:
        """Return a new UnitFrame with updated metadata."""
        return self._spawn(metadata=self.metadata.model_copy(update=updates))

    def with_weights(self, neighbors: NeighborList, weights: SpatialWeights | None = None) -> UnitFrame:
        """Return a new UnitFrame carrying *neighbors* and *weights*."""
        return self._spawn(neighbors=neighbors, weights=weights)

    def with_derived_columns(
        self,
        columns: Mapping[str, Sequence[Any] | np.ndarray],
        provenance: ResultProvenance,
    ) -> UnitFrame:
        """
        Return a new UnitFrame with derived per-unit columns added.

        Args:
            columns: Column name to values in unit order
            provenance: How the columns were produced
        """
        series = []
        for name, values in columns.items():
            if len(values) != len(self):
                raise MisalignedInputError(
                    f"Derived column '{name}' has {len(values)} values for {len(self)} units"
                )
            series.append(pl.Series(name, list(values) if not isinstance(values, np.ndarray) else values))

        derived = dict(self.schema.derived_cols)
        derived.update({name: provenance for name in columns})
        logger.debug("Adding derived columns %s", sorted(columns))
        return self._spawn(
            data=self.data.with_columns(series),
            schema=self.schema.model_copy(update={"derived_cols": derived}),
        )

    def record_result(self, attribute: str, result: Any, *, local: bool = False) -> UnitFrame:
        """Return a new UnitFrame with a global or local test result recorded."""
        key = "local_results" if local else "global_results"
        results = dict(getattr(self.metadata, key))
        results[attribute] = result
        return self.with_metadata(**{key: results})

    def exclude(self, unit_ids: Iterable[str], reason: str) -> UnitFrame:
        """
        Remove units from the analysis set.

        The units are dropped from the table, the geometry, the neighbour list
        and the weights together, so no removed unit remains as a neighbour.

        Args:
            unit_ids: Identifiers to remove
            reason: Why the units are removed (recorded in metadata)
        """
        drop = {str(u) for u in unit_ids}
        unknown = drop - set(self._ids)
        if unknown:
            raise MisalignedInputError(f"Cannot exclude unknown units: {format_ids(sorted(unknown))}")
        if not drop:
            return self

        keep_idx = [i for i, unit_id in enumerate(self._ids) if unit_id not in drop]
        removed = [unit_id for unit_id in self._ids if unit_id in drop]
        logger.warning(
            "Excluding %d unit(s) (%s): %s", len(removed), reason, format_ids(removed)
        )

        neighbors = weights = None
        if self.neighbors is not None:
            neighbors = self.neighbors.subset(self._ids[i] for i in keep_idx)
            if self.weights is not None:
                weights = SpatialWeights(neighbors, self.weights.style)

        excluded = list(self.metadata.excluded)
        excluded.append(ExclusionRecord(reason=reason, unit_ids=removed))
        return self._spawn(
            data=self.data[keep_idx] if keep_idx else self.data.clear(),
            geometries=tuple(self.geometries[i] for i in keep_idx),
            metadata=self.metadata.model_copy(update={"excluded": excluded}),
            neighbors=neighbors,
            weights=weights,
        )

    def filter_units(self, predicate: OutlierPredicate, reason: str = "outlier filter") -> UnitFrame:
        """
        Remove every unit matching *predicate*.

        Args:
            predicate: polars expression, OutlierFilterConfig or callable over
                a row mapping; True means "exclude"
            reason: Recorded exclusion reason
        """
        mask = exclusion_mask(self.data, predicate)
        matched = [unit_id for unit_id, flag in zip(self._ids, mask) if flag]
        if not matched:
            logger.info("Filter '%s' matched no units", reason)
            return self
        return self.exclude(matched, reason=reason)

    def drop_missing(self, names: Iterable[str]) -> UnitFrame:
        """Remove units with a null, NaN or infinite value in any of *names*."""
        result = self
        for name in names:
            missing = result.missing_ids(name)
            if missing:
                result = result.exclude(missing, reason=f"missing {name}")
        return result

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    def validate_geometry(self) -> UnitFrame:
        """Raise GeometryError for malformed boundaries; return self otherwise."""
        validate_polygons(self._ids, self.geometries)
        return self

    def to_crs(self, target_crs: str) -> UnitFrame:
        """Return a new UnitFrame with boundaries re-projected to *target_crs*."""
        if self.metadata.crs is None:
            raise MisalignedInputError("Cannot re-project a UnitFrame without a CRS")
        geometries = transform_geometries(self.geometries, self.metadata.crs, target_crs)
        return self._spawn(
            geometries=geometries,
            metadata=self.metadata.model_copy(update={"crs": target_crs}),
        )

    def build_weights(
        self,
        contiguity: Contiguity | str = Contiguity.ROOK,
        weight_style: WeightStyle | str = WeightStyle.ROW_STANDARDIZED,
        *,
        method: AdjacencyMethod | str = AdjacencyMethod.STRTREE,
    ) -> UnitFrame:
        """Return a new UnitFrame carrying neighbours and weights for its units."""
        if is_geographic(self.metadata.crs):
            logger.warning(
                "Unit boundaries are in geographic CRS %s; contiguity is computed on "
                "raw coordinates",
                self.metadata.crs,
            )
        neighbors = build_neighbors(self._ids, self.geometries, contiguity, method=method)
        return self.with_weights(neighbors, SpatialWeights(neighbors, weight_style))

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def to_wkt_frame(self, geometry_col: str = "geometry") -> pl.DataFrame:
        """Return the table with boundaries as a WKT column."""
        return self.data.with_columns(
            pl.Series(geometry_col, [g.wkt for g in self.geometries], dtype=pl.Utf8)
        )

    def __repr__(self) -> str:
        return (
            f"UnitFrame(dataset={self.metadata.dataset_name!r}, units={len(self)}, "
            f"attributes={self.schema.attribute_cols})"
        )
