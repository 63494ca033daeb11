"""Exceptions raised by the preintegration core."""


class PreintegrationError(Exception):
    """Base class for all preintegration failures."""


class InvalidSampleError(PreintegrationError, ValueError):
    """An inertial sample violates the integration preconditions.

    Raised for non-positive or non-finite time steps and for specific-force
    or angular-rate vectors that are not finite 3-vectors.
    """


class DivergedIntegrationError(PreintegrationError, ArithmeticError):
    """An integration step produced NaN or Inf values.

    The step is discarded and the interval keeps its previous state.
    """


class SingularCovarianceError(PreintegrationError, ArithmeticError):
    """The accumulated covariance cannot be inverted for residual weighting."""
