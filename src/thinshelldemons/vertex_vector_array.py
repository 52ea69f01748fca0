"""Per-vertex 3D vector storage with the flat optimizer layout.

Parameter and derivative vectors handed to and from the optimizer are flat
arrays of 3 * N doubles, vertex-major with x/y/z minor:

    [d0x, d0y, d0z, d1x, d1y, d1z, ...]

VertexVectorArray keeps that exact memory layout while giving bounds-checked
per-vertex access and an (N, 3) view for vectorized numpy code.
"""

import numpy as np

from thinshelldemons.errors import DimensionMismatchError


class VertexVectorArray:
    """Fixed-stride (3 values per vertex) view over a flat float64 array.

    Attributes:
        flat (np.ndarray): 1-D array of length 3 * number_of_vertices
        vectors (np.ndarray): (number_of_vertices, 3) view sharing memory
            with ``flat``
    """

    DIMENSION = 3

    def __init__(self, flat: np.ndarray):
        if flat.ndim != 1 or flat.size % self.DIMENSION != 0:
            raise DimensionMismatchError(
                f"Flat vertex array must be 1-D with a multiple of "
                f"{self.DIMENSION} entries, got shape {flat.shape}"
            )
        self.flat = flat
        self.vectors = flat.reshape(-1, self.DIMENSION)

    @classmethod
    def zeros(cls, number_of_vertices: int) -> "VertexVectorArray":
        """Create an all-zero array for the given number of vertices."""
        return cls(np.zeros(number_of_vertices * cls.DIMENSION, dtype=np.float64))

    @classmethod
    def from_flat(
        cls,
        values,
        number_of_vertices: int,
        copy: bool = False,
    ) -> "VertexVectorArray":
        """Wrap a flat parameter sequence, validating its length.

        Args:
            values: Sequence or array of 3 * number_of_vertices scalars.
                Arrays shaped (number_of_vertices, 3) are accepted and
                flattened in row-major order.
            number_of_vertices: Expected number of vertices.
            copy: If True the data is always copied. Otherwise float64 input
                arrays are wrapped without a copy.

        Returns:
            VertexVectorArray over the values

        Raises:
            DimensionMismatchError: If the number of values is not
                3 * number_of_vertices.
        """
        if copy:
            flat = np.array(values, dtype=np.float64).reshape(-1)
        else:
            flat = np.asarray(values, dtype=np.float64).reshape(-1)
        expected = number_of_vertices * cls.DIMENSION
        if flat.size != expected:
            raise DimensionMismatchError(
                f"Expected {expected} parameters ({cls.DIMENSION} per vertex for "
                f"{number_of_vertices} vertices), got {flat.size}"
            )
        return cls(flat)

    @property
    def number_of_vertices(self) -> int:
        return self.vectors.shape[0]

    def __len__(self) -> int:
        return self.number_of_vertices

    def _check_identifier(self, identifier: int) -> None:
        if not 0 <= identifier < self.number_of_vertices:
            raise IndexError(
                f"Vertex identifier {identifier} out of range "
                f"[0, {self.number_of_vertices})"
            )

    def vertex(self, identifier: int) -> np.ndarray:
        """Return a copy of the 3-vector stored for a vertex."""
        self._check_identifier(identifier)
        return self.vectors[identifier].copy()

    def set_vertex(self, identifier: int, vector) -> None:
        """Store a 3-vector for a vertex."""
        self._check_identifier(identifier)
        self.vectors[identifier] = np.asarray(vector, dtype=np.float64)

    def fill(self, value: float) -> None:
        self.flat.fill(value)

    def __repr__(self) -> str:
        return f"VertexVectorArray(number_of_vertices={self.number_of_vertices})"
