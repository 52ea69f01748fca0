"""Thin shell demons similarity metric for deformable mesh registration.

Every vertex of the moving mesh is pulled toward a target position on the
fixed mesh. The targets are found once, at initialization, as the closest
fixed-mesh vertex to each transformed moving vertex. Afterwards the metric
is a pure function of the displacement parameters:

    value(d)    = sum_i || t_i - (p_i + d_i) ||^2
    gradient_i  = -2 (t_i - p_i)

where p_i is the nominal moving vertex, d_i its displacement (parameters
3i..3i+2) and t_i its target. The gradient is evaluated at the nominal
positions, i.e. it is the demons-style linearization around zero
displacement and only equals the exact gradient of value() at d = 0.

States:
    UNCONFIGURED     -> CONFIGURED        transform, fixed and moving mesh set
    CONFIGURED       -> TARGETS_COMPUTED  initialize()

The stretch and bend weights of the thin shell energy are stored for the
registration configuration but do not enter value() or gradient.

Example:
    >>> metric = ThinShellDemonsMetric()
    >>> metric.set_fixed_mesh(fixed_model)
    >>> metric.set_moving_mesh(moving_model)
    >>> metric.set_transform(transform)
    >>> metric.initialize()
    >>> value, derivative = metric.get_value_and_derivative(parameters)
"""

import enum
import logging
from typing import Optional

import numpy as np

from thinshelldemons.correspondence import (
    BruteForceCorrespondenceBuilder,
    CorrespondenceBuilderBase,
)
from thinshelldemons.errors import (
    DimensionMismatchError,
    MetricConfigurationError,
    TargetsNotComputedError,
)
from thinshelldemons.mesh_tools import MeshTools
from thinshelldemons.target_map import TargetMap
from thinshelldemons.thinshelldemons_base import ThinShellDemonsBase
from thinshelldemons.vertex_vector_array import VertexVectorArray


class MetricState(enum.Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    TARGETS_COMPUTED = "targets_computed"


class ThinShellDemonsMetric(ThinShellDemonsBase):
    """Squared distance of displaced moving vertices to fixed-mesh targets.

    Attributes:
        fixed_mesh: Static reference surface
        moving_mesh: Surface being deformed. Its vertex positions are never
            modified; displacements are applied virtually.
        transform: Transform providing ``transform_point(point, identifier)``,
            ``set_parameters(parameters)`` and ``get_number_of_parameters()``,
            typically a MeshDisplacementTransform

        Assigning fixed_mesh, moving_mesh or transform discards computed
        targets, the same as the corresponding set_* method.
        stretch_weight (float): Weight of the thin shell stretching energy
        bend_weight (float): Weight of the thin shell bending energy
        correspondence_builder (CorrespondenceBuilderBase): Closest point
            search used by compute_target_position()
    """

    def __init__(
        self,
        stretch_weight: float = 1.0,
        bend_weight: float = 1.0,
        correspondence_builder: Optional[CorrespondenceBuilderBase] = None,
        log_level: int | str = logging.INFO,
    ):
        super().__init__(class_name=self.__class__.__name__, log_level=log_level)

        self.stretch_weight = 0.0
        self.bend_weight = 0.0
        self.set_stretch_weight(stretch_weight)
        self.set_bend_weight(bend_weight)

        if correspondence_builder is None:
            correspondence_builder = BruteForceCorrespondenceBuilder(
                log_level=log_level
            )
        self.correspondence_builder = correspondence_builder

        self._fixed_mesh = None
        self._moving_mesh = None
        self._transform = None

        self._mesh_tools = MeshTools()

        self._target_map: Optional[TargetMap] = None
        self._target_position_computed = False

        # Nominal positions cached at initialization
        self._moving_points: Optional[np.ndarray] = None
        self._fixed_points: Optional[np.ndarray] = None

        self._metric_call_count = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _invalidate_targets(self) -> None:
        self._target_map = None
        self._target_position_computed = False
        self._moving_points = None
        self._fixed_points = None

    @property
    def fixed_mesh(self):
        return self._fixed_mesh

    @fixed_mesh.setter
    def fixed_mesh(self, fixed_mesh) -> None:
        self._fixed_mesh = fixed_mesh
        self._invalidate_targets()

    @property
    def moving_mesh(self):
        return self._moving_mesh

    @moving_mesh.setter
    def moving_mesh(self, moving_mesh) -> None:
        self._moving_mesh = moving_mesh
        self._invalidate_targets()

    @property
    def transform(self):
        return self._transform

    @transform.setter
    def transform(self, transform) -> None:
        self._transform = transform
        self._invalidate_targets()

    def set_fixed_mesh(self, fixed_mesh) -> None:
        self.fixed_mesh = fixed_mesh

    def get_fixed_mesh(self):
        return self.fixed_mesh

    def set_moving_mesh(self, moving_mesh) -> None:
        self.moving_mesh = moving_mesh

    def get_moving_mesh(self):
        return self.moving_mesh

    def set_transform(self, transform) -> None:
        self.transform = transform

    def get_transform(self):
        return self.transform

    def set_stretch_weight(self, stretch_weight: float) -> None:
        """Set the thin shell stretching weight (configuration only)."""
        if stretch_weight < 0:
            raise ValueError(f"Stretch weight must be non-negative, got {stretch_weight}")
        self.stretch_weight = float(stretch_weight)

    def get_stretch_weight(self) -> float:
        return self.stretch_weight

    def set_bend_weight(self, bend_weight: float) -> None:
        """Set the thin shell bending weight (configuration only)."""
        if bend_weight < 0:
            raise ValueError(f"Bend weight must be non-negative, got {bend_weight}")
        self.bend_weight = float(bend_weight)

    def get_bend_weight(self) -> float:
        return self.bend_weight

    def set_correspondence_builder(
        self, correspondence_builder: CorrespondenceBuilderBase
    ) -> None:
        """Replace the closest point search. Targets must be recomputed."""
        self.correspondence_builder = correspondence_builder
        self._invalidate_targets()

    @property
    def state(self) -> MetricState:
        if self._target_position_computed:
            return MetricState.TARGETS_COMPUTED
        if (
            self.transform is not None
            and self.fixed_mesh is not None
            and self.moving_mesh is not None
        ):
            return MetricState.CONFIGURED
        return MetricState.UNCONFIGURED

    @property
    def target_position_computed(self) -> bool:
        return self._target_position_computed

    def get_target_map(self) -> TargetMap:
        if self._target_map is None:
            raise TargetsNotComputedError(
                "Target positions have not been computed; call initialize()"
            )
        return self._target_map

    def get_number_of_parameters(self) -> int:
        if self._moving_points is not None:
            return VertexVectorArray.DIMENSION * self._moving_points.shape[0]
        if self.moving_mesh is None:
            raise MetricConfigurationError("MovingMesh is not present")
        return VertexVectorArray.DIMENSION * self._mesh_tools.get_number_of_points(
            self.moving_mesh
        )

    # ------------------------------------------------------------------
    # Initialization and correspondence
    # ------------------------------------------------------------------

    def _check_meshes(self) -> None:
        if self.fixed_mesh is None:
            raise MetricConfigurationError("Fixed point set has not been assigned")
        if self.moving_mesh is None:
            raise MetricConfigurationError("Moving point set has not been assigned")

    def initialize(self) -> None:
        """Validate the configuration and compute the target positions.

        Raises:
            MetricConfigurationError: If the transform, moving mesh or fixed
                mesh is missing or unusable.
            DimensionMismatchError: If the transform does not have 3
                parameters per moving vertex.
        """
        if self.transform is None:
            raise MetricConfigurationError("Transform is not present")
        if self.moving_mesh is None:
            raise MetricConfigurationError("MovingMesh is not present")
        if self.fixed_mesh is None:
            raise MetricConfigurationError("FixedMesh is not present")

        # Bring meshes produced by upstream sources up to date
        self.moving_mesh = self._mesh_tools.materialize(self.moving_mesh)
        self.fixed_mesh = self._mesh_tools.materialize(self.fixed_mesh)

        n_moving = self._mesh_tools.get_number_of_points(self.moving_mesh)
        n_parameters = self.transform.get_number_of_parameters()
        if n_parameters != VertexVectorArray.DIMENSION * n_moving:
            raise DimensionMismatchError(
                f"Transform has {n_parameters} parameters, expected "
                f"{VertexVectorArray.DIMENSION * n_moving} for {n_moving} "
                f"moving vertices"
            )

        self.compute_target_position()

    def compute_target_position(self) -> None:
        """Find the target on the fixed mesh for every moving vertex.

        Each nominal moving vertex is transformed with the transform's
        current parameters and matched to the closest fixed-mesh vertex.
        Calling this again recomputes the whole map.
        """
        self._check_meshes()
        if self.transform is None:
            raise MetricConfigurationError("Transform is not present")

        self._target_position_computed = False

        fixed_points = self._mesh_tools.get_points(self.fixed_mesh)
        moving_points = self._mesh_tools.get_points(self.moving_mesh)

        if hasattr(self.transform, "transform_points"):
            transformed_points = self.transform.transform_points(moving_points)
        else:
            transformed_points = np.array(
                [
                    self.transform.transform_point(point, identifier)
                    for identifier, point in enumerate(moving_points)
                ],
                dtype=np.float64,
            )

        self._target_map = self.correspondence_builder.build(
            fixed_points, transformed_points
        )
        self._fixed_points = fixed_points
        self._moving_points = moving_points
        self._metric_call_count = 0
        self._target_position_computed = True

        self.log_info(
            "Target positions computed for %d moving vertices", len(self._target_map)
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _check_ready(self, parameters) -> VertexVectorArray:
        self._check_meshes()
        if self.transform is None:
            raise MetricConfigurationError("Transform is not present")
        if not self._target_position_computed:
            raise TargetsNotComputedError(
                "Target positions have not been computed; call initialize()"
            )
        return VertexVectorArray.from_flat(parameters, self._moving_points.shape[0])

    def _log_evaluation(self, value: float) -> None:
        if self.log_level <= logging.DEBUG or self._metric_call_count % 100 == 0:
            self.log_info("   Metric %d: %f", self._metric_call_count + 1, value)
        self._metric_call_count += 1

    def _compute_value(self, displacements: VertexVectorArray) -> float:
        transformed_points = self._moving_points + displacements.vectors
        residual = self._target_map.as_array() - transformed_points
        return float((residual**2).sum())

    def _compute_derivative(self, derivative) -> np.ndarray:
        n_parameters = VertexVectorArray.DIMENSION * self._moving_points.shape[0]
        if (
            not isinstance(derivative, np.ndarray)
            or derivative.shape != (n_parameters,)
            or derivative.dtype != np.float64
            or not derivative.flags.writeable
        ):
            derivative = np.zeros(n_parameters, dtype=np.float64)
        else:
            derivative.fill(0.0)

        gradient = VertexVectorArray(derivative)
        # Linearized at the nominal positions, not at p + d
        gradient.vectors[:] = -2.0 * (self._target_map.as_array() - self._moving_points)
        return derivative

    def get_value(self, parameters) -> float:
        """Sum of squared distances from displaced vertices to their targets.

        Args:
            parameters: Flat sequence of 3 * N displacements

        Returns:
            float: Metric value, always >= 0

        Raises:
            MetricConfigurationError: If the transform or a mesh is missing.
            TargetsNotComputedError: If initialize() has not run.
            DimensionMismatchError: If len(parameters) != 3 * N.
        """
        displacements = self._check_ready(parameters)
        self.transform.set_parameters(displacements.flat)

        value = self._compute_value(displacements)
        self._log_evaluation(value)
        return value

    def get_derivative(self, parameters, derivative=None) -> np.ndarray:
        """Gradient of the metric with respect to the displacements.

        Args:
            parameters: Flat sequence of 3 * N displacements
            derivative (np.ndarray): Optional output buffer. A writable
                float64 buffer of length 3 * N is zeroed and filled in place;
                anything else is replaced by a newly allocated array.

        Returns:
            np.ndarray: The filled derivative buffer of length 3 * N

        Raises:
            MetricConfigurationError: If the transform or a mesh is missing.
            TargetsNotComputedError: If initialize() has not run.
            DimensionMismatchError: If len(parameters) != 3 * N.
        """
        self._check_ready(parameters)
        return self._compute_derivative(derivative)

    def get_value_and_derivative(self, parameters, derivative=None):
        """Compute the value and the derivative together.

        Returns:
            tuple: (value, derivative), identical to calling get_value() and
                get_derivative() with the same parameters
        """
        displacements = self._check_ready(parameters)
        self.transform.set_parameters(displacements.flat)

        value = self._compute_value(displacements)
        derivative = self._compute_derivative(derivative)
        self._log_evaluation(value)
        return value, derivative

    def __repr__(self) -> str:
        return (
            f"{self.class_name}(state={self.state.value}, "
            f"stretch_weight={self.stretch_weight}, "
            f"bend_weight={self.bend_weight})"
        )
