"""Contiguity-based neighbour detection for polygon units.

Two units are rook neighbours when their boundaries share a line segment and
queen neighbours when their boundaries share at least one point. Candidate
pairs come from a bounding-box query on a shapely ``STRtree``; a brute-force
search over every pair is kept as the reference implementation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry.base import BaseGeometry

from lisaflow.core.errors import MisalignedInputError
from lisaflow.core.geometry import validate_polygons
from lisaflow.core.schema import AdjacencyMethod, Contiguity, parse_option
from lisaflow.core.utils import format_ids, get_logger

logger = get_logger(__name__)

# Positions in a DE-9IM intersection matrix string
_INTERIOR_INTERIOR = 0
_BOUNDARY_BOUNDARY = 4

_SHARED_BOUNDARY_DIMS = {
    Contiguity.ROOK: frozenset("1"),
    Contiguity.QUEEN: frozenset("01"),
}


@dataclass(frozen=True)
class NeighborList:
    """
    Neighbour sets for an ordered collection of spatial units.

    Attributes:
        ids: Unit identifiers in analysis order
        neighbors: Neighbour ids for every unit
        contiguity: Rule the neighbours were derived with
        overlapping_pairs: Unit pairs whose interiors overlap
    """

    ids: tuple[str, ...]
    neighbors: Mapping[str, frozenset[str]]
    contiguity: Contiguity = Contiguity.ROOK
    overlapping_pairs: tuple[tuple[str, str], ...] = field(default=())

    def __post_init__(self) -> None:
        if len(set(self.ids)) != len(self.ids):
            raise MisalignedInputError("Unit identifiers must be unique")
        known = set(self.ids)
        if set(self.neighbors) != known:
            raise MisalignedInputError("Neighbour mapping keys must match the unit ids")
        for unit_id, nbrs in self.neighbors.items():
            unknown = nbrs - known
            if unknown:
                raise MisalignedInputError(
                    f"Unit {unit_id} references unknown neighbours: {format_ids(sorted(unknown))}"
                )
            if unit_id in nbrs:
                raise MisalignedInputError(f"Unit {unit_id} lists itself as a neighbour")

        asymmetric = self.asymmetric_pairs()
        if asymmetric:
            logger.warning(
                "Neighbour list is not symmetric; %d link(s) are not reciprocated: %s",
                len(asymmetric),
                format_ids([f"{a}->{b}" for a, b in asymmetric]),
            )

    @classmethod
    def from_dict(
        cls,
        neighbors: Mapping[str, Iterable[str]],
        contiguity: Contiguity | str = Contiguity.ROOK,
    ) -> NeighborList:
        """Build a NeighborList from a plain ``{id: [neighbour ids]}`` mapping."""
        return cls(
            ids=tuple(neighbors),
            neighbors={k: frozenset(v) for k, v in neighbors.items()},
            contiguity=parse_option(Contiguity, contiguity, "contiguity"),
        )

    def __len__(self) -> int:
        return len(self.ids)

    def __getitem__(self, unit_id: str) -> frozenset[str]:
        return self.neighbors[unit_id]

    @property
    def cardinalities(self) -> dict[str, int]:
        """Number of neighbours per unit."""
        return {unit_id: len(self.neighbors[unit_id]) for unit_id in self.ids}

    @property
    def islands(self) -> list[str]:
        """Units without any neighbour, in unit order."""
        return [unit_id for unit_id in self.ids if not self.neighbors[unit_id]]

    @property
    def n_links(self) -> int:
        """Total number of directed neighbour links."""
        return sum(len(nbrs) for nbrs in self.neighbors.values())

    def asymmetric_pairs(self) -> list[tuple[str, str]]:
        """Return (a, b) pairs where b is a neighbour of a but not vice versa."""
        pairs = []
        for unit_id in self.ids:
            for other in sorted(self.neighbors[unit_id]):
                if unit_id not in self.neighbors[other]:
                    pairs.append((unit_id, other))
        return pairs

    @property
    def is_symmetric(self) -> bool:
        """True when every neighbour relation is reciprocated."""
        return not self.asymmetric_pairs()

    def subset(self, keep: Iterable[str]) -> NeighborList:
        """
        Restrict the neighbour list to *keep*.

        Removed units disappear from every remaining unit's neighbour set, so
        no removed unit is left behind as a phantom neighbour.
        """
        keep_set = set(keep)
        unknown = keep_set - set(self.ids)
        if unknown:
            raise MisalignedInputError(f"Cannot keep unknown units: {format_ids(sorted(unknown))}")

        ids = tuple(unit_id for unit_id in self.ids if unit_id in keep_set)
        neighbors = {unit_id: self.neighbors[unit_id] & keep_set for unit_id in ids}
        overlaps = tuple(
            (a, b) for a, b in self.overlapping_pairs if a in keep_set and b in keep_set
        )
        return NeighborList(ids, neighbors, self.contiguity, overlaps)

    def to_dict(self) -> dict[str, list[str]]:
        """Return ``{id: sorted neighbour ids}`` in unit order."""
        return {unit_id: sorted(self.neighbors[unit_id]) for unit_id in self.ids}

    def __repr__(self) -> str:
        return (
            f"NeighborList(n={len(self)}, contiguity={self.contiguity.value}, "
            f"links={self.n_links}, islands={len(self.islands)})"
        )


def _candidate_pairs(geometries: np.ndarray, method: AdjacencyMethod) -> tuple[np.ndarray, np.ndarray]:
    """Return index arrays (left, right) of candidate pairs with left < right."""
    n = len(geometries)
    if method is AdjacencyMethod.BRUTE_FORCE:
        left, right = np.triu_indices(n, k=1)
        return left, right

    # Bounding-box query only; exact topology is decided by relate()
    tree = STRtree(geometries)
    left, right = tree.query(geometries)
    keep = left < right
    return left[keep], right[keep]


def build_neighbors(
    ids: Sequence[str],
    geometries: Sequence[BaseGeometry],
    contiguity: Contiguity | str = Contiguity.ROOK,
    method: AdjacencyMethod | str = AdjacencyMethod.STRTREE,
    validate: bool = True,
) -> NeighborList:
    """
    Determine which units are neighbours from their polygon boundaries.

    Args:
        ids: Unique unit identifiers, in analysis order
        geometries: Polygon boundaries aligned with *ids*
        contiguity: "rook" (shared edge) or "queen" (shared point)
        method: "strtree" (spatial index) or "brute_force" (all pairs)
        validate: Validate polygons before building

    Returns:
        NeighborList with islands and overlapping pairs surfaced

    Raises:
        GeometryError: If a boundary is malformed
        MisalignedInputError: If ids are duplicated or misaligned
        InvalidConfigurationError: For an unknown contiguity or method
    """
    contiguity = parse_option(Contiguity, contiguity, "contiguity")
    method = parse_option(AdjacencyMethod, method, "adjacency method")

    if len(ids) != len(geometries):
        raise MisalignedInputError(f"Got {len(geometries)} geometries for {len(ids)} units")
    if len(set(ids)) != len(ids):
        raise MisalignedInputError("Unit identifiers must be unique")
    if validate:
        validate_polygons(ids, geometries)

    geoms = np.empty(len(geometries), dtype=object)
    for i, geom in enumerate(geometries):
        geoms[i] = geom

    left, right = _candidate_pairs(geoms, method)
    logger.debug(
        "Testing %d candidate pairs among %d units (%s)", len(left), len(ids), method.value
    )

    neighbor_sets: dict[str, set[str]] = {unit_id: set() for unit_id in ids}
    overlaps: list[tuple[str, str]] = []
    shared_dims = _SHARED_BOUNDARY_DIMS[contiguity]

    if len(left):
        matrices = shapely.relate(geoms[left], geoms[right])
        for i, j, matrix in zip(left, right, matrices):
            a, b = ids[i], ids[j]
            if matrix[_INTERIOR_INTERIOR] == "2":
                overlaps.append((a, b))
            if matrix[_BOUNDARY_BOUNDARY] in shared_dims:
                neighbor_sets[a].add(b)
                neighbor_sets[b].add(a)

    result = NeighborList(
        ids=tuple(ids),
        neighbors={k: frozenset(v) for k, v in neighbor_sets.items()},
        contiguity=contiguity,
        overlapping_pairs=tuple(overlaps),
    )

    if overlaps:
        logger.warning(
            "%d unit pair(s) have overlapping interiors (inconsistent tessellation): %s",
            len(overlaps),
            format_ids([f"{a}/{b}" for a, b in overlaps]),
        )
    if result.islands:
        logger.warning(
            "%d island unit(s) without %s neighbours: %s",
            len(result.islands),
            contiguity.value,
            format_ids(result.islands),
        )
    logger.info(f"Built {contiguity.value} neighbours: {result!r}")
    return result
