"""
ThinShellDemons - Deformable surface mesh registration with the thin shell
    demons metric.

Every vertex of a moving surface is pulled toward its closest point on a
fixed surface. The metric measures the remaining squared distance and
provides its gradient with respect to per-vertex displacements for use by a
gradient-based optimizer.

Main Components:
    - ThinShellDemonsMetric: Target computation and value/derivative evaluation
    - MeshDisplacementTransform: Per-vertex displacement transform
    - Correspondence builders: Brute force and k-d tree closest point search
    - RegisterModelsThinShellDemons: Registration driver
    - ThinShellDemonsBase: Base class with standardized logging
"""

__version__ = "2026.10.0"

# Base classes
from .thinshelldemons_base import ThinShellDemonsBase

# Errors
from .errors import (
    DimensionMismatchError,
    MetricConfigurationError,
    TargetsNotComputedError,
    ThinShellDemonsError,
)

# Data model
from .mesh_tools import MeshTools
from .target_map import TargetMap
from .vertex_vector_array import VertexVectorArray

# Transform and correspondence
from .correspondence import (
    BruteForceCorrespondenceBuilder,
    CorrespondenceBuilderBase,
    KDTreeCorrespondenceBuilder,
    create_correspondence_builder,
)
from .mesh_displacement_transform import MeshDisplacementTransform

# Metric and registration
from .register_models_thin_shell_demons import RegisterModelsThinShellDemons
from .thin_shell_demons_metric import MetricState, ThinShellDemonsMetric

__all__ = [
    # Metric and registration
    "ThinShellDemonsMetric",
    "MetricState",
    "RegisterModelsThinShellDemons",
    # Transform and correspondence
    "MeshDisplacementTransform",
    "CorrespondenceBuilderBase",
    "BruteForceCorrespondenceBuilder",
    "KDTreeCorrespondenceBuilder",
    "create_correspondence_builder",
    # Data model
    "MeshTools",
    "TargetMap",
    "VertexVectorArray",
    # Errors
    "ThinShellDemonsError",
    "MetricConfigurationError",
    "DimensionMismatchError",
    "TargetsNotComputedError",
    # Base classes
    "ThinShellDemonsBase",
]
