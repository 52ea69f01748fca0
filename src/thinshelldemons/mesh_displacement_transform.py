"""Per-vertex displacement transform for deformable mesh registration.

MeshDisplacementTransform assigns an independent 3D displacement vector to
every vertex of a template mesh. Its parameter vector therefore holds
3 * N values for a template with N vertices, in vertex identifier order:

    [d0x, d0y, d0z, d1x, d1y, d1z, ...]

An optional ITK transform (for example the result of a rigid or affine
pre-alignment) can be applied before the displacement.

Example:
    >>> transform = MeshDisplacementTransform()
    >>> transform.set_mesh_template(moving_model)
    >>> transform.initialize()
    >>> transform.set_identity()
    >>> transform.get_number_of_parameters() == 3 * moving_model.n_points
    True
"""

import logging
from typing import Optional

import itk
import numpy as np

from thinshelldemons.errors import MetricConfigurationError
from thinshelldemons.mesh_tools import MeshTools
from thinshelldemons.thinshelldemons_base import ThinShellDemonsBase
from thinshelldemons.vertex_vector_array import VertexVectorArray


class MeshDisplacementTransform(ThinShellDemonsBase):
    """Transform that displaces each template vertex by its own vector.

    Attributes:
        mesh_template: Mesh whose vertex count defines the parameter count
        initial_transform (itk.Transform): Optional transform applied to a
            point before its displacement is added
        number_of_vertices (int): Number of template vertices (0 until
            initialize() is called)
    """

    def __init__(
        self,
        mesh_template=None,
        initial_transform: Optional[itk.Transform] = None,
        log_level: int | str = logging.INFO,
    ):
        super().__init__(class_name=self.__class__.__name__, log_level=log_level)

        self.mesh_template = mesh_template
        self.initial_transform = initial_transform

        self.number_of_vertices = 0
        self._displacements: Optional[VertexVectorArray] = None

        self._mesh_tools = MeshTools()

    def set_mesh_template(self, mesh_template) -> None:
        """Set the mesh whose vertices the displacements are attached to.

        Call initialize() afterwards to allocate the parameters.
        """
        self.mesh_template = mesh_template
        self._displacements = None
        self.number_of_vertices = 0

    def set_initial_transform(self, initial_transform: Optional[itk.Transform]) -> None:
        """Set an ITK transform applied before the per-vertex displacement."""
        self.initial_transform = initial_transform

    def initialize(self) -> None:
        """Allocate one zero displacement per template vertex.

        Raises:
            MetricConfigurationError: If no mesh template has been set.
        """
        if self.mesh_template is None:
            raise MetricConfigurationError("Mesh template is not present")

        self.mesh_template = self._mesh_tools.materialize(self.mesh_template)
        self.number_of_vertices = self._mesh_tools.get_number_of_points(
            self.mesh_template
        )
        self._displacements = VertexVectorArray.zeros(self.number_of_vertices)

        self.log_debug(
            "Allocated %d parameters for %d vertices",
            self.get_number_of_parameters(),
            self.number_of_vertices,
        )

    def _check_initialized(self) -> None:
        if self._displacements is None:
            raise RuntimeError(
                "MeshDisplacementTransform must be initialized before use"
            )

    def set_identity(self) -> None:
        """Reset all displacements to zero."""
        self._check_initialized()
        self._displacements.fill(0.0)

    def get_number_of_parameters(self) -> int:
        return VertexVectorArray.DIMENSION * self.number_of_vertices

    def set_parameters(self, parameters) -> None:
        """Copy a flat parameter vector of length 3 * N into the transform.

        Raises:
            DimensionMismatchError: If the length is not 3 * N.
        """
        self._check_initialized()
        self._displacements = VertexVectorArray.from_flat(
            parameters, self.number_of_vertices, copy=True
        )

    def get_parameters(self) -> np.ndarray:
        self._check_initialized()
        return self._displacements.flat.copy()

    def get_displacements(self) -> np.ndarray:
        """Return the (N, 3) displacement vectors."""
        self._check_initialized()
        return self._displacements.vectors.copy()

    def _apply_initial_transform(self, point) -> np.ndarray:
        if self.initial_transform is None:
            return np.array(point, dtype=np.float64)
        return np.array(
            self.initial_transform.TransformPoint(
                (float(point[0]), float(point[1]), float(point[2]))
            ),
            dtype=np.float64,
        )

    def transform_point(self, point, identifier: int) -> np.ndarray:
        """Transform the point belonging to template vertex ``identifier``.

        Args:
            point: 3D position of the vertex
            identifier: Vertex identifier selecting the displacement

        Returns:
            np.ndarray: Transformed 3D point
        """
        self._check_initialized()
        return self._apply_initial_transform(point) + self._displacements.vertex(
            identifier
        )

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Transform all N template vertex positions at once.

        Args:
            points (np.ndarray): (N, 3) positions in identifier order

        Returns:
            np.ndarray: (N, 3) transformed positions
        """
        self._check_initialized()
        points = np.asarray(points, dtype=np.float64)
        if points.shape != self._displacements.vectors.shape:
            raise ValueError(
                f"Expected points of shape {self._displacements.vectors.shape}, "
                f"got {points.shape}"
            )

        if self.initial_transform is not None:
            points = np.array([self._apply_initial_transform(p) for p in points])

        return points + self._displacements.vectors

    def transform_mesh(self, mesh=None, with_displacement_magnitude: bool = False):
        """Return a copy of a mesh with its vertices transformed.

        Args:
            mesh: Mesh with the template's vertex count. Default: the template
            with_displacement_magnitude (bool): Store the distance each
                vertex moved as "DisplacementMagnitude" point data

        Returns:
            pv.DataSet: Transformed copy of the mesh
        """
        if mesh is None:
            mesh = self.mesh_template
        points = self._mesh_tools.get_points(mesh)
        new_points = self.transform_points(points)
        return self._mesh_tools.displace_mesh(
            mesh,
            new_points - points,
            with_displacement_magnitude=with_displacement_magnitude,
        )
