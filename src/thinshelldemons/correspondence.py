"""Correspondence search between moving-mesh vertices and a fixed mesh.

Each moving vertex is matched to the closest fixed-mesh vertex under the
squared Euclidean distance. Ties are resolved deterministically: the fixed
vertex with the lowest identifier among those at the minimum distance wins,
which is what a linear scan keeping only strictly smaller distances does.

Two strategies share that contract:
    - BruteForceCorrespondenceBuilder: exact O(N x M) scan, vectorized in
      blocks of moving vertices to bound memory.
    - KDTreeCorrespondenceBuilder: scipy.spatial.cKDTree accelerated search
      that re-ranks the candidates at the nearest distance so that it
      returns exactly the same identifiers as the scan.

Example:
    >>> builder = create_correspondence_builder("kdtree")
    >>> target_map = builder.build(fixed_points, transformed_moving_points)
"""

import logging
from typing import Optional

import numpy as np
from scipy.spatial import cKDTree

from thinshelldemons.target_map import TargetMap
from thinshelldemons.thinshelldemons_base import ThinShellDemonsBase


def _squared_distances(fixed_points: np.ndarray, point: np.ndarray) -> np.ndarray:
    return ((fixed_points - point) ** 2).sum(axis=-1)


class CorrespondenceBuilderBase(ThinShellDemonsBase):
    """Base class for closest-point correspondence strategies.

    Concrete strategies implement find_closest(); build() turns its result
    into a sealed TargetMap.
    """

    def __init__(self, log_level: int | str = logging.INFO):
        super().__init__(class_name=self.__class__.__name__, log_level=log_level)

    def find_closest(
        self, fixed_points: np.ndarray, query_points: np.ndarray
    ) -> np.ndarray:
        """Find the closest fixed vertex for every query point.

        Args:
            fixed_points (np.ndarray): (M, 3) fixed-mesh vertices
            query_points (np.ndarray): (N, 3) transformed moving vertices

        Returns:
            np.ndarray: (N,) fixed vertex identifiers
        """
        raise NotImplementedError(
            "Subclasses must implement find_closest() method"
        )

    def build(self, fixed_points: np.ndarray, query_points: np.ndarray) -> TargetMap:
        """Compute a sealed target map for the query points.

        Args:
            fixed_points (np.ndarray): (M, 3) fixed-mesh vertices
            query_points (np.ndarray): (N, 3) transformed moving vertices,
                row i belonging to moving vertex identifier i

        Returns:
            TargetMap: One fixed-mesh point per moving vertex
        """
        fixed_points = np.asarray(fixed_points, dtype=np.float64)
        query_points = np.asarray(query_points, dtype=np.float64)

        self.log_info(
            "Matching %d moving vertices to %d fixed vertices",
            query_points.shape[0],
            fixed_points.shape[0],
        )

        closest = self.find_closest(fixed_points, query_points)

        target_map = TargetMap(query_points.shape[0])
        target_map.set_all(fixed_points[closest])
        target_map.seal()

        if query_points.shape[0] > 0:
            residual = _squared_distances(fixed_points[closest], query_points)
            self.log_debug(
                "  Mean squared distance to targets: %f", float(residual.mean())
            )

        return target_map


class BruteForceCorrespondenceBuilder(CorrespondenceBuilderBase):
    """Exact linear scan over every fixed vertex.

    Attributes:
        chunk_size (int): Number of moving vertices compared at once. If
            None, it is chosen so a block holds about ``max_block_elements``
            distances.
    """

    max_block_elements = 1 << 22

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        log_level: int | str = logging.INFO,
    ):
        super().__init__(log_level=log_level)
        if chunk_size is not None and chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size

    def find_closest(
        self, fixed_points: np.ndarray, query_points: np.ndarray
    ) -> np.ndarray:
        n_fixed = fixed_points.shape[0]
        n_query = query_points.shape[0]
        if n_fixed == 0:
            raise ValueError("Fixed mesh has no points")

        chunk_size = self.chunk_size
        if chunk_size is None:
            chunk_size = max(1, self.max_block_elements // n_fixed)

        closest = np.empty(n_query, dtype=np.int64)
        for start in range(0, n_query, chunk_size):
            stop = min(start + chunk_size, n_query)
            block = query_points[start:stop]
            distances = _squared_distances(
                fixed_points[np.newaxis, :, :], block[:, np.newaxis, :]
            )
            # argmin returns the first index holding the minimum
            closest[start:stop] = np.argmin(distances, axis=1)
            if stop < n_query:
                self.log_progress(stop, n_query, prefix="  Scanned moving vertices")

        return closest


class KDTreeCorrespondenceBuilder(CorrespondenceBuilderBase):
    """cKDTree accelerated closest-point search with scan-identical ties.

    Attributes:
        workers (int): Number of workers for cKDTree queries (-1 uses all
            CPUs). Each moving vertex is an independent query.
        leafsize (int): cKDTree leaf size
    """

    # Relative slack on the nearest distance when collecting tie candidates
    tie_tolerance = 1e-9

    def __init__(
        self,
        workers: int = 1,
        leafsize: int = 16,
        log_level: int | str = logging.INFO,
    ):
        super().__init__(log_level=log_level)
        self.workers = workers
        self.leafsize = leafsize

    def find_closest(
        self, fixed_points: np.ndarray, query_points: np.ndarray
    ) -> np.ndarray:
        if fixed_points.shape[0] == 0:
            raise ValueError("Fixed mesh has no points")
        if query_points.shape[0] == 0:
            return np.empty(0, dtype=np.int64)

        tree = cKDTree(fixed_points, leafsize=self.leafsize)
        nearest_distances, _ = tree.query(query_points, k=1, workers=self.workers)

        radii = nearest_distances * (1.0 + self.tie_tolerance) + 1e-12
        candidate_lists = tree.query_ball_point(
            query_points, r=radii, workers=self.workers
        )

        closest = np.empty(query_points.shape[0], dtype=np.int64)
        for identifier, candidates in enumerate(candidate_lists):
            candidates = np.sort(np.asarray(candidates, dtype=np.int64))
            distances = _squared_distances(
                fixed_points[candidates], query_points[identifier]
            )
            closest[identifier] = candidates[np.argmin(distances)]

        return closest


def create_correspondence_builder(
    method: str = "brute_force",
    **kwargs,
) -> CorrespondenceBuilderBase:
    """Create a correspondence strategy by name.

    Args:
        method: "brute_force" or "kdtree"
        **kwargs: Passed to the strategy constructor

    Raises:
        ValueError: If the method name is unknown.
    """
    builders = {
        "brute_force": BruteForceCorrespondenceBuilder,
        "kdtree": KDTreeCorrespondenceBuilder,
    }
    if method not in builders:
        raise ValueError(
            f"Unknown correspondence method: {method}. "
            f"Choose from {sorted(builders)}"
        )
    return builders[method](**kwargs)
