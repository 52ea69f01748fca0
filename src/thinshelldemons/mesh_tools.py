"""
Tools for reading, materializing and displacing meshes.

The metric only needs an ordered list of vertex positions from each mesh.
MeshTools converts the mesh types used across the package (PyVista
datasets, ITK meshes and point sets, plain arrays) into that form and
triggers lazy ITK producers (readers, filters) before their output is read.
"""

import itk
import numpy as np
import pyvista as pv

from thinshelldemons.errors import MetricConfigurationError


class MeshTools:
    """
    Tools for converting and displacing meshes.
    """

    def __init__(self):
        pass

    def materialize(self, mesh):
        """
        Make sure a mesh produced by an upstream source is up to date.

        Args:
            mesh: A mesh, or a lazy producer exposing ``Update()`` and
                ``GetOutput()`` such as ``itk.MeshFileReader``.

        Returns:
            The materialized mesh object.
        """
        if hasattr(mesh, "Update") and hasattr(mesh, "GetOutput"):
            mesh.Update()
            return mesh.GetOutput()

        # ITK data objects remember the process object that produced them
        if hasattr(mesh, "GetSource"):
            source = mesh.GetSource()
            if source is not None:
                source.Update()

        return mesh

    def get_points(self, mesh) -> np.ndarray:
        """
        Get the vertex positions of a mesh in identifier order.

        Args:
            mesh: pv.DataSet, itk.Mesh, itk.PointSet or an (N, 3) array-like

        Returns:
            np.ndarray: (N, 3) float64 array of vertex positions

        Raises:
            MetricConfigurationError: If the mesh has no vertices, is not 3D
                or contains non-finite coordinates.
        """
        if mesh is None:
            raise MetricConfigurationError("Mesh is not present")

        if isinstance(mesh, pv.DataSet):
            points = np.array(mesh.points, dtype=np.float64)
        elif hasattr(mesh, "GetNumberOfPoints") and hasattr(mesh, "GetPoint"):
            n_points = mesh.GetNumberOfPoints()
            points = np.empty((n_points, 3), dtype=np.float64)
            for identifier in range(n_points):
                itk_point = mesh.GetPoint(identifier)
                points[identifier] = [
                    float(itk_point[0]),
                    float(itk_point[1]),
                    float(itk_point[2]),
                ]
        else:
            points = np.array(mesh, dtype=np.float64)

        if points.ndim != 2 or points.shape[1] != 3:
            raise MetricConfigurationError(
                f"Mesh points must have shape (N, 3), got {points.shape}"
            )
        if points.shape[0] == 0:
            raise MetricConfigurationError("Mesh has no points")
        if not np.all(np.isfinite(points)):
            raise MetricConfigurationError("Mesh contains non-finite coordinates")

        return points

    def get_number_of_points(self, mesh) -> int:
        if isinstance(mesh, pv.DataSet):
            return mesh.n_points
        if hasattr(mesh, "GetNumberOfPoints"):
            return int(mesh.GetNumberOfPoints())
        return len(mesh)

    def create_itk_mesh(self, points: np.ndarray):
        """
        Create an ITK mesh holding the given vertices.

        Args:
            points (np.ndarray): (N, 3) vertex positions

        Returns:
            itk.Mesh[itk.F, 3]: Mesh with point identifiers 0..N-1
        """
        mesh = itk.Mesh[itk.F, 3].New()
        for identifier, point in enumerate(np.asarray(points, dtype=float)):
            mesh.SetPoint(
                identifier, [float(point[0]), float(point[1]), float(point[2])]
            )
        return mesh

    def displace_mesh(
        self,
        mesh,
        displacements: np.ndarray,
        with_displacement_magnitude: bool = False,
    ) -> pv.PolyData:
        """
        Move every vertex of a mesh by its own displacement vector.

        Args:
            mesh: pv.DataSet to displace. Other mesh types are converted to a
                vertex-only pv.PolyData first.
            displacements (np.ndarray): (N, 3) displacement per vertex
            with_displacement_magnitude (bool): If True, adds a
                "DisplacementMagnitude" point data array with the length of
                each displacement

        Returns:
            pv.DataSet: Displaced deep copy of the input mesh
        """
        if isinstance(mesh, pv.DataSet):
            new_mesh = mesh.copy(deep=True)
        else:
            new_mesh = pv.PolyData(self.get_points(mesh))

        displacements = np.asarray(displacements, dtype=float).reshape(-1, 3)
        if displacements.shape[0] != new_mesh.n_points:
            raise ValueError(
                f"Expected {new_mesh.n_points} displacements, "
                f"got {displacements.shape[0]}"
            )

        pnts = np.array(new_mesh.points, dtype=float)
        new_mesh.points = pnts + displacements

        if with_displacement_magnitude:
            new_mesh.point_data["DisplacementMagnitude"] = np.linalg.norm(
                displacements, axis=1
            )

        return new_mesh

    def read_mesh(self, filename) -> pv.PolyData:
        """
        Read a surface mesh from any format PyVista understands.

        Volumetric inputs are reduced to their outer surface.
        """
        mesh = pv.read(str(filename))
        if not isinstance(mesh, pv.PolyData):
            mesh = mesh.extract_surface()
        return mesh
