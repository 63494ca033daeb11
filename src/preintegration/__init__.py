"""IMU preintegration for visual-inertial estimation."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import NoiseParameters, PreintegrationConfig
from .errors import (
    DivergedIntegrationError,
    InvalidSampleError,
    PreintegrationError,
    SingularCovarianceError,
)
from .factor import FactorEvaluation, ImuFactor
from .integration import MidpointStep, midpoint_integration
from .preintegrator import PreintegratedDelta, PreintegrationSnapshot
from .rotation import Quaternion, skew
from .sample import ImuSample
from .state import EndpointState

__all__ = [
    "__version__",
    # Configuration
    "NoiseParameters",
    "PreintegrationConfig",
    # Errors
    "PreintegrationError",
    "InvalidSampleError",
    "DivergedIntegrationError",
    "SingularCovarianceError",
    # Preintegration
    "PreintegratedDelta",
    "PreintegrationSnapshot",
    "ImuSample",
    "MidpointStep",
    "midpoint_integration",
    # Estimator interface
    "EndpointState",
    "ImuFactor",
    "FactorEvaluation",
    # Rotation
    "Quaternion",
    "skew",
]
