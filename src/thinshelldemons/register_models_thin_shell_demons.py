"""Thin shell demons model-to-model registration.

This module provides the RegisterModelsThinShellDemons class that deforms a
moving surface model toward a fixed surface model by giving every moving
vertex its own displacement. The workflow is:
1. Template a MeshDisplacementTransform on the moving model (identity)
2. Initialize the ThinShellDemonsMetric, which matches each moving vertex
   to its closest fixed-model vertex
3. Minimize the metric over the displacements with a conjugate gradient
   optimizer
4. Displace the moving model by the optimized displacements

Example:
    >>> import pyvista as pv
    >>> from thinshelldemons import RegisterModelsThinShellDemons
    >>>
    >>> fixed_model = pv.read('fixedMesh.vtk')
    >>> moving_model = pv.read('movingMesh.vtk')
    >>>
    >>> registrar = RegisterModelsThinShellDemons(
    ...     fixed_model=fixed_model, stretch_weight=4, bend_weight=1
    ... )
    >>> result = registrar.register(moving_model, max_iterations=100)
    >>> result['registered_model'].save('registeredMesh.vtk')
"""

import logging
from typing import Callable, Optional

import numpy as np
import pyvista as pv
from scipy.optimize import minimize, minimize_scalar

from thinshelldemons.correspondence import (
    CorrespondenceBuilderBase,
    create_correspondence_builder,
)
from thinshelldemons.mesh_displacement_transform import MeshDisplacementTransform
from thinshelldemons.thin_shell_demons_metric import ThinShellDemonsMetric
from thinshelldemons.thinshelldemons_base import ThinShellDemonsBase


class RegisterModelsThinShellDemons(ThinShellDemonsBase):
    """Register surface models with the thin shell demons metric.

    **Optimization Objective:**
        Minimize the sum of squared distances between displaced moving
        vertices and their closest-point targets on the fixed model.

    **Optimizers:**
        - "ConjugateGradient": Polak-Ribiere conjugate gradient whose line
          minimization is Brent's method on metric values only.
        - Any other name is passed to scipy.optimize.minimize with the
          metric gradient as jacobian.

    Attributes:
        fixed_model (pv.PolyData): Target surface model
        moving_model (pv.PolyData): Surface model to be deformed
        stretch_weight (float): Thin shell stretching weight
        bend_weight (float): Thin shell bending weight
        correspondence_builder (CorrespondenceBuilderBase): Closest point search
        metric (ThinShellDemonsMetric): Metric of the last registration
        transform (MeshDisplacementTransform): Transform of the last registration
        registered_model (pv.PolyData): Deformed moving model
    """

    def __init__(
        self,
        fixed_model: pv.PolyData,
        stretch_weight: float = 1.0,
        bend_weight: float = 1.0,
        correspondence_builder: Optional[CorrespondenceBuilderBase] = None,
        log_level: int | str = logging.INFO,
    ):
        """Initialize thin shell demons registration.

        Args:
            fixed_model: PyVista target surface model
            stretch_weight: Thin shell stretching weight. Default: 1.0
            bend_weight: Thin shell bending weight. Default: 1.0
            correspondence_builder: Closest point search. Default: exact
                brute force scan
            log_level: Logging level (default: logging.INFO)
        """
        super().__init__(class_name=self.__class__.__name__, log_level=log_level)

        self.fixed_model = fixed_model
        self.moving_model: Optional[pv.PolyData] = None

        self.stretch_weight = stretch_weight
        self.bend_weight = bend_weight

        if correspondence_builder is None:
            correspondence_builder = create_correspondence_builder(
                "brute_force", log_level=log_level
            )
        self.correspondence_builder = correspondence_builder

        self.metric: Optional[ThinShellDemonsMetric] = None
        self.transform: Optional[MeshDisplacementTransform] = None

        self._iteration_observers: list[Callable] = []

        # outputs
        self.registered_model: Optional[pv.PolyData] = None
        self.final_value = 0.0

    def set_fixed_model(self, fixed_model: pv.PolyData) -> None:
        self.fixed_model = fixed_model

    def add_iteration_observer(self, observer: Callable) -> None:
        """Call ``observer(iteration, value, parameters)`` after every iteration."""
        self._iteration_observers.append(observer)

    def _notify_iteration(self, iteration: int, value: float, parameters) -> None:
        self.log_info("   Iteration %d: value = %f", iteration, value)
        for observer in self._iteration_observers:
            observer(iteration, value, parameters)

    def _line_minimize(self, parameters: np.ndarray, direction: np.ndarray):
        """Brent line minimization of the metric along a direction."""
        result = minimize_scalar(
            lambda step: self.metric.get_value(parameters + step * direction),
            bracket=(0.0, 1.0),
            method="brent",
        )
        return float(result.x), float(result.fun)

    def _optimize_conjugate_gradient(
        self,
        initial_parameters: np.ndarray,
        max_iterations: int,
        value_tolerance: float,
        gradient_tolerance: float,
    ):
        parameters = np.array(initial_parameters, dtype=np.float64)
        value, gradient = self.metric.get_value_and_derivative(parameters)
        direction = -gradient

        iteration = 0
        while iteration < max_iterations:
            if np.linalg.norm(gradient) <= gradient_tolerance:
                self.log_info("Gradient tolerance reached")
                break

            # Restart along steepest descent if not a descent direction
            if np.dot(direction, gradient) >= 0:
                direction = -gradient

            try:
                step, new_value = self._line_minimize(parameters, direction)
            except (RuntimeError, ValueError) as e:
                self.log_warning("Line search failed: %s", e)
                break

            if new_value >= value:
                self.log_info("No further decrease along search direction")
                break

            parameters = parameters + step * direction
            new_gradient = self.metric.get_derivative(parameters)
            iteration += 1
            self._notify_iteration(iteration, new_value, parameters)

            converged = 2.0 * abs(value - new_value) <= value_tolerance * (
                abs(value) + abs(new_value) + 1e-20
            )

            gradient_norm_sq = float(np.dot(gradient, gradient))
            beta = 0.0
            if gradient_norm_sq > 0:
                beta = max(
                    0.0,
                    float(np.dot(new_gradient, new_gradient - gradient))
                    / gradient_norm_sq,
                )
            direction = -new_gradient + beta * direction

            value, gradient = new_value, new_gradient
            if converged:
                self.log_info("Value tolerance reached")
                break

        return parameters, value, iteration

    def _optimize_scipy(self, initial_parameters: np.ndarray, method: str, max_iterations: int):
        iteration_count = [0]

        def callback(xk):
            iteration_count[0] += 1
            self._notify_iteration(
                iteration_count[0], self.metric.get_value(xk), np.array(xk)
            )

        result = minimize(
            self.metric.get_value_and_derivative,
            initial_parameters,
            jac=True,
            method=method,
            callback=callback,
            options={"maxiter": max_iterations, "disp": self.log_level <= logging.INFO},
        )
        self.log_info("Optimizer message: %s", result.message)
        return np.array(result.x, dtype=np.float64), float(result.fun), iteration_count[0]

    def register(
        self,
        moving_model: pv.PolyData,
        max_iterations: int = 100,
        method: str = "ConjugateGradient",
        value_tolerance: float = 1e-8,
        gradient_tolerance: float = 1e-8,
    ) -> dict:
        """Deform the moving model toward the fixed model.

        Args:
            moving_model: PyVista surface model to deform
            max_iterations: Maximum number of optimizer iterations. Default: 100
            method: "ConjugateGradient" or a scipy.optimize.minimize method.
                Default: "ConjugateGradient"
            value_tolerance: Relative value change that stops the conjugate
                gradient iterations. Default: 1e-8
            gradient_tolerance: Gradient norm that stops the conjugate
                gradient iterations. Default: 1e-8

        Returns:
            dict: Registration results with keys:
                - 'registered_model': moving model displaced by the result
                - 'transform': optimized MeshDisplacementTransform
                - 'parameters': optimized flat displacement vector
                - 'initial_value': metric value at zero displacement
                - 'final_value': metric value at the result
                - 'number_of_iterations': iterations performed

        Raises:
            MetricConfigurationError: If a model is missing or unusable.
        """
        self.log_section("Thin Shell Demons Registration", width=60)

        self.moving_model = moving_model

        self.transform = MeshDisplacementTransform(log_level=self.log_level)
        self.transform.set_mesh_template(moving_model)
        self.transform.initialize()
        self.transform.set_identity()
        self.log_info(
            "Transform has %d parameters for %d vertices",
            self.transform.get_number_of_parameters(),
            self.transform.number_of_vertices,
        )

        self.metric = ThinShellDemonsMetric(
            stretch_weight=self.stretch_weight,
            bend_weight=self.bend_weight,
            correspondence_builder=self.correspondence_builder,
            log_level=self.log_level,
        )
        self.metric.set_transform(self.transform)
        self.metric.set_fixed_mesh(self.fixed_model)
        self.metric.set_moving_mesh(moving_model)
        self.metric.initialize()

        initial_parameters = self.transform.get_parameters()
        initial_value = self.metric.get_value(initial_parameters)
        self.log_info("Initial value: %f", initial_value)

        self.log_info("Running optimization (%s)...", method)
        if method == "ConjugateGradient":
            parameters, value, n_iterations = self._optimize_conjugate_gradient(
                initial_parameters,
                max_iterations,
                value_tolerance,
                gradient_tolerance,
            )
        else:
            parameters, value, n_iterations = self._optimize_scipy(
                initial_parameters, method, max_iterations
            )

        self.transform.set_parameters(parameters)
        self.final_value = value

        self.registered_model = self.transform.transform_mesh(
            moving_model, with_displacement_magnitude=True
        )

        self.log_info("Optimization completed!")
        self.log_info("Iterations: %d", n_iterations)
        self.log_info("Final value: %f", self.final_value)

        return {
            "registered_model": self.registered_model,
            "transform": self.transform,
            "parameters": parameters,
            "initial_value": initial_value,
            "final_value": self.final_value,
            "number_of_iterations": n_iterations,
        }
