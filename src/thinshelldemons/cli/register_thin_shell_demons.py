#!/usr/bin/env python
"""
Command-line interface for thin shell demons mesh registration.

Reads a fixed and a moving surface mesh, deforms the moving mesh toward the
fixed mesh by minimizing the thin shell demons metric over per-vertex
displacements, and writes the registered mesh.
"""

import argparse
import sys
import traceback
from pathlib import Path

from thinshelldemons.correspondence import create_correspondence_builder
from thinshelldemons.errors import ThinShellDemonsError
from thinshelldemons.mesh_tools import MeshTools
from thinshelldemons.register_models_thin_shell_demons import (
    RegisterModelsThinShellDemons,
)


def main(argv=None) -> int:
    """Command-line interface for thin shell demons registration."""
    parser = argparse.ArgumentParser(
        description="Deform a moving surface mesh toward a fixed surface mesh "
        "using the thin shell demons metric",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Register with default settings
  %(prog)s \\
    --fixed-mesh fixedMesh.vtk \\
    --moving-mesh movingMesh.vtk \\
    --output registeredMesh.vtk

  # Use the k-d tree correspondence search on large meshes
  %(prog)s \\
    --fixed-mesh fixedMesh.vtk \\
    --moving-mesh movingMesh.vtk \\
    --output registeredMesh.vtk \\
    --correspondence kdtree \\
    --max-iterations 200
        """,
    )

    parser.add_argument(
        "--fixed-mesh",
        type=Path,
        required=True,
        metavar="PATH",
        help="Path to the fixed (reference) surface mesh",
    )
    parser.add_argument(
        "--moving-mesh",
        type=Path,
        required=True,
        metavar="PATH",
        help="Path to the moving surface mesh to deform",
    )
    parser.add_argument(
        "--output",
        type=Path,
        required=True,
        metavar="PATH",
        help="Path for the registered mesh",
    )
    parser.add_argument(
        "--stretch-weight",
        type=float,
        default=4.0,
        help="Thin shell stretching weight (default: 4)",
    )
    parser.add_argument(
        "--bend-weight",
        type=float,
        default=1.0,
        help="Thin shell bending weight (default: 1)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=100,
        help="Maximum number of optimizer iterations (default: 100)",
    )
    parser.add_argument(
        "--correspondence",
        choices=["brute_force", "kdtree"],
        default="brute_force",
        help="Closest point search used to find targets (default: brute_force)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args(argv)

    print("Validating input files...")
    for label, path in [("Fixed", args.fixed_mesh), ("Moving", args.moving_mesh)]:
        if not path.exists():
            print(f"Error: {label} mesh not found: {path}")
            return 1

    mesh_tools = MeshTools()

    print("\nLoading meshes...")
    try:
        print(f"  Fixed mesh: {args.fixed_mesh}")
        fixed_mesh = mesh_tools.read_mesh(args.fixed_mesh)
        print(f"  Moving mesh: {args.moving_mesh}")
        moving_mesh = mesh_tools.read_mesh(args.moving_mesh)
    except (FileNotFoundError, OSError, RuntimeError, ValueError) as e:
        print(f"Error loading meshes: {e}")
        traceback.print_exc()
        return 1

    try:
        registrar = RegisterModelsThinShellDemons(
            fixed_model=fixed_mesh,
            stretch_weight=args.stretch_weight,
            bend_weight=args.bend_weight,
            correspondence_builder=create_correspondence_builder(
                args.correspondence, log_level=args.log_level
            ),
            log_level=args.log_level,
        )

        print("\nRunning registration...")
        print("=" * 70)
        result = registrar.register(
            moving_mesh,
            max_iterations=args.max_iterations,
        )
        print("=" * 70)
    except (ThinShellDemonsError, RuntimeError, ValueError) as e:
        print(f"\nError during registration: {e}")
        traceback.print_exc()
        return 1

    try:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        result["registered_model"].save(str(args.output))
    except (OSError, ValueError) as e:
        print(f"Error saving registered mesh: {e}")
        traceback.print_exc()
        return 1

    print(f"\nInitial value: {result['initial_value']:.6f}")
    print(f"Final value: {result['final_value']:.6f}")
    print(f"Registered mesh written to: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
