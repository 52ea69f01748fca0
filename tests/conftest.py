#!/usr/bin/env python
"""
Shared pytest fixtures for ThinShellDemons tests.

All meshes are synthetic, so no test data has to be downloaded.
"""

import logging

import numpy as np
import pytest
import pyvista as pv

from thinshelldemons.mesh_displacement_transform import MeshDisplacementTransform
from thinshelldemons.mesh_tools import MeshTools
from thinshelldemons.thin_shell_demons_metric import ThinShellDemonsMetric


@pytest.fixture(scope="session")
def mesh_tools():
    """Create a MeshTools instance."""
    return MeshTools()


@pytest.fixture
def two_point_fixed_mesh():
    """Fixed mesh with A=(0,0,0) and B=(10,0,0)."""
    return pv.PolyData(np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]]))


@pytest.fixture
def single_vertex_moving_mesh():
    """Moving mesh with a single vertex at (1,0,0)."""
    return pv.PolyData(np.array([[1.0, 0.0, 0.0]]))


@pytest.fixture
def fixed_sphere():
    """Fixed sphere of radius 10."""
    return pv.Sphere(radius=10.0, theta_resolution=16, phi_resolution=16)


@pytest.fixture
def moving_sphere():
    """Moving sphere of radius 11 sharing the fixed sphere's vertex directions."""
    return pv.Sphere(radius=11.0, theta_resolution=16, phi_resolution=16)


def make_identity_transform(moving_mesh):
    """Create an initialized identity MeshDisplacementTransform for a mesh."""
    transform = MeshDisplacementTransform(log_level=logging.WARNING)
    transform.set_mesh_template(moving_mesh)
    transform.initialize()
    transform.set_identity()
    return transform


def make_metric(fixed_mesh, moving_mesh, correspondence_builder=None):
    """Create an initialized ThinShellDemonsMetric with an identity transform."""
    metric = ThinShellDemonsMetric(
        correspondence_builder=correspondence_builder,
        log_level=logging.WARNING,
    )
    metric.set_fixed_mesh(fixed_mesh)
    metric.set_moving_mesh(moving_mesh)
    metric.set_transform(make_identity_transform(moving_mesh))
    metric.initialize()
    return metric


@pytest.fixture
def identity_transform_factory():
    return make_identity_transform


@pytest.fixture
def metric_factory():
    return make_metric


@pytest.fixture
def two_point_metric(two_point_fixed_mesh, single_vertex_moving_mesh):
    """Initialized metric for the two point fixed / one vertex moving scenario."""
    return make_metric(two_point_fixed_mesh, single_vertex_moving_mesh)
