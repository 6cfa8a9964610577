"""Sparse spatial weights derived from a neighbour list."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from scipy import sparse

from lisaflow.core.adjacency import NeighborList
from lisaflow.core.errors import IslandUnitError, MisalignedInputError
from lisaflow.core.schema import WeightStyle, parse_option
from lisaflow.core.utils import get_logger

logger = get_logger(__name__)


class SpatialWeights:
    """
    Spatial weights matrix with a standardization style.

    Row ``i`` holds the weights unit ``i`` gives to its neighbours. With
    row-standardization every unit with ``k`` neighbours gives each of them
    ``1/k``; with binary weights every neighbour gets ``1``. Units without
    neighbours (islands) have an empty row and make the lag undefined.

    Attributes:
        neighbors: NeighborList the weights were derived from
        style: Standardization style
        sparse: CSR matrix of shape (n, n)
    """

    def __init__(
        self,
        neighbors: NeighborList,
        style: WeightStyle | str = WeightStyle.ROW_STANDARDIZED,
    ) -> None:
        self.neighbors = neighbors
        self.style = parse_option(WeightStyle, style, "weight style")
        self._index = {unit_id: i for i, unit_id in enumerate(neighbors.ids)}

        rows: list[int] = []
        cols: list[int] = []
        values: list[float] = []
        for i, unit_id in enumerate(neighbors.ids):
            nbrs = sorted(neighbors[unit_id], key=self._index.__getitem__)
            if not nbrs:
                continue
            weight = 1.0 / len(nbrs) if self.style is WeightStyle.ROW_STANDARDIZED else 1.0
            for other in nbrs:
                rows.append(i)
                cols.append(self._index[other])
                values.append(weight)

        n = len(neighbors.ids)
        self.sparse = sparse.csr_matrix(
            (
                np.asarray(values, dtype=float),
                (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64)),
            ),
            shape=(n, n),
        )
        logger.debug(
            "Built %s weights for %d units with %d non-zero entries",
            self.style.value,
            n,
            self.sparse.nnz,
        )

    @classmethod
    def from_neighbors(
        cls,
        neighbors: NeighborList,
        style: WeightStyle | str = WeightStyle.ROW_STANDARDIZED,
    ) -> SpatialWeights:
        """Derive weights from *neighbors* using the given style."""
        return cls(neighbors, style)

    @property
    def ids(self) -> tuple[str, ...]:
        """Unit identifiers in matrix order."""
        return self.neighbors.ids

    @property
    def n(self) -> int:
        """Number of units."""
        return len(self.neighbors.ids)

    @property
    def islands(self) -> list[str]:
        """Units without neighbours."""
        return self.neighbors.islands

    @property
    def s0(self) -> float:
        """Total weight W = sum_ij w_ij."""
        return float(self.sparse.sum())

    @property
    def s1(self) -> float:
        """s1 = 1/2 * sum_ij (w_ij + w_ji)^2."""
        sym = self.sparse + self.sparse.T
        return float(sym.multiply(sym).sum() / 2.0)

    @property
    def s2(self) -> float:
        """s2 = sum_i (w_i. + w_.i)^2."""
        row = np.asarray(self.sparse.sum(axis=1)).ravel()
        col = np.asarray(self.sparse.sum(axis=0)).ravel()
        return float(((row + col) ** 2).sum())

    def row_sums(self) -> np.ndarray:
        """Sum of outgoing weights per unit."""
        return np.asarray(self.sparse.sum(axis=1)).ravel()

    def row_square_sums(self) -> np.ndarray:
        """Sum of squared outgoing weights per unit."""
        return np.asarray(self.sparse.multiply(self.sparse).sum(axis=1)).ravel()

    def cardinalities(self) -> np.ndarray:
        """Neighbour counts in matrix order."""
        return np.diff(self.sparse.indptr)

    def index_of(self, unit_id: str) -> int:
        """Position of *unit_id* in matrix order."""
        return self._index[unit_id]

    def neighbors_of(self, unit_id: str) -> list[str]:
        """Neighbour ids of *unit_id* in matrix order."""
        return list(self.weights_of(unit_id))

    def weights_of(self, unit_id: str) -> dict[str, float]:
        """Outgoing weights of *unit_id* keyed by neighbour id."""
        i = self._index[unit_id]
        start, end = self.sparse.indptr[i], self.sparse.indptr[i + 1]
        return {
            self.ids[j]: float(w)
            for j, w in zip(self.sparse.indices[start:end], self.sparse.data[start:end])
        }

    def ensure_no_islands(self) -> None:
        """Raise IslandUnitError if any unit lacks neighbours."""
        islands = self.islands
        if islands:
            raise IslandUnitError(islands)

    def check_alignment(
        self,
        values: Sequence[float] | np.ndarray,
        ids: Sequence[str] | None = None,
    ) -> np.ndarray:
        """
        Validate that *values* align with the weights' unit order.

        Args:
            values: Per-unit vector
            ids: Optional identifiers the vector is ordered by

        Returns:
            The vector as a float array

        Raises:
            MisalignedInputError: On a length or ordering mismatch
        """
        array = np.asarray(values, dtype=float)
        if array.ndim != 1 or array.shape[0] != self.n:
            raise MisalignedInputError(
                f"Expected a vector of {self.n} values aligned to the weights, got shape {array.shape}"
            )
        if ids is not None and tuple(ids) != self.ids:
            raise MisalignedInputError("Attribute vector is not ordered like the weights matrix")
        return array

    def lag(self, values: Sequence[float] | np.ndarray) -> np.ndarray:
        """
        Spatial lag: weighted combination of each unit's neighbour values.

        Raises:
            IslandUnitError: If any unit has no neighbours
            MisalignedInputError: If *values* does not match the unit count
        """
        array = self.check_alignment(values)
        self.ensure_no_islands()
        return np.asarray(self.sparse @ array).ravel()

    def to_dict(self) -> dict[str, dict[str, float]]:
        """Return ``{id: {neighbour id: weight}}`` in unit order."""
        return {unit_id: self.weights_of(unit_id) for unit_id in self.ids}

    def __repr__(self) -> str:
        return f"SpatialWeights(n={self.n}, style={self.style.value}, s0={self.s0:.3f})"
