"""Exceptions raised by the thin shell demons metric and its collaborators."""


class ThinShellDemonsError(Exception):
    """Root of all ThinShellDemons errors."""


class MetricConfigurationError(ThinShellDemonsError, ValueError):
    """A required input (transform, fixed mesh, moving mesh) is missing or unusable."""


class DimensionMismatchError(ThinShellDemonsError, ValueError):
    """A parameter vector does not hold 3 values per moving-mesh vertex."""


class TargetsNotComputedError(ThinShellDemonsError, RuntimeError):
    """The metric was evaluated before the target positions were computed."""
