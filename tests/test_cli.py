#!/usr/bin/env python
"""
Tests for the thin shell demons registration command-line interface.
"""

import numpy as np
import pytest
import pyvista as pv

from thinshelldemons.cli.register_thin_shell_demons import main


@pytest.mark.slow
class TestRegisterThinShellDemonsCLI:
    """Test suite for the registration CLI."""

    def test_register_meshes(self, tmp_path, fixed_sphere, moving_sphere):
        """Test a full run from mesh files to the registered mesh file."""
        fixed_file = tmp_path / "fixedMesh.vtk"
        moving_file = tmp_path / "movingMesh.vtk"
        output_file = tmp_path / "out" / "registeredMesh.vtk"
        fixed_sphere.save(str(fixed_file))
        moving_sphere.save(str(moving_file))

        exit_code = main(
            [
                "--fixed-mesh",
                str(fixed_file),
                "--moving-mesh",
                str(moving_file),
                "--output",
                str(output_file),
                "--correspondence",
                "kdtree",
                "--max-iterations",
                "20",
                "--log-level",
                "WARNING",
            ]
        )

        assert exit_code == 0
        assert output_file.exists()

        registered = pv.read(str(output_file))
        assert registered.n_points == moving_sphere.n_points
        np.testing.assert_allclose(registered.points, fixed_sphere.points, atol=1e-3)

    def test_missing_input(self, tmp_path):
        """Test that a missing input mesh returns exit code 1."""
        exit_code = main(
            [
                "--fixed-mesh",
                str(tmp_path / "missing_fixed.vtk"),
                "--moving-mesh",
                str(tmp_path / "missing_moving.vtk"),
                "--output",
                str(tmp_path / "registered.vtk"),
            ]
        )
        assert exit_code == 1
        assert not (tmp_path / "registered.vtk").exists()
