"""Storage for the per-vertex target positions on the fixed mesh."""

import numpy as np


class TargetMap:
    """Maps each moving-mesh vertex identifier to a point on the fixed mesh.

    The map is sized to the moving mesh at construction and holds
    exactly one target per identifier in [0, N). Once sealed, every write
    raises, so the evaluator can only read it.
    """

    def __init__(self, number_of_vertices: int = 0):
        self._targets = np.zeros((number_of_vertices, 3), dtype=np.float64)
        self._sealed = False

    def set_all(self, targets: np.ndarray) -> None:
        """Assign the target of every identifier in one pass.

        Args:
            targets (np.ndarray): (N, 3) target points in identifier order

        Raises:
            ValueError: If the shape does not match the size of the map.
        """
        self._check_writable()
        targets = np.asarray(targets, dtype=np.float64)
        if targets.shape != self._targets.shape:
            raise ValueError(
                f"Expected targets of shape {self._targets.shape}, got {targets.shape}"
            )
        self._targets[:] = targets

    def seal(self) -> None:
        self._sealed = True
        self._targets.flags.writeable = False

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def _check_writable(self) -> None:
        if self._sealed:
            raise RuntimeError("TargetMap is read-only once targets are computed")

    def __len__(self) -> int:
        return self._targets.shape[0]

    def __contains__(self, identifier) -> bool:
        return isinstance(identifier, (int, np.integer)) and 0 <= identifier < len(self)

    def __getitem__(self, identifier: int) -> np.ndarray:
        if identifier not in self:
            raise KeyError(f"No target for vertex identifier {identifier}")
        return self._targets[identifier].copy()

    def as_array(self) -> np.ndarray:
        """Return an (N, 3) read-only view of all targets."""
        view = self._targets.view()
        view.flags.writeable = False
        return view

    def __repr__(self) -> str:
        return f"TargetMap(number_of_vertices={len(self)}, sealed={self._sealed})"
