"""Raw inertial sample as consumed by the preintegrator."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import InvalidSampleError


def as_vector3(value: np.ndarray, name: str) -> np.ndarray:
    """Convert input to a finite float64 (3,) vector.

    Args:
        value: Anything that flattens to 3 numbers
        name: Field name used in the error message

    Raises:
        InvalidSampleError: If the shape is wrong or a value is NaN/Inf
    """
    v = np.asarray(value, dtype=np.float64).flatten()
    if v.shape != (3,):
        raise InvalidSampleError(f"{name} must be a 3-vector, got shape {v.shape}")
    if not np.all(np.isfinite(v)):
        raise InvalidSampleError(f"{name} contains non-finite values: {v}")
    return v


@dataclass(frozen=True)
class ImuSample:
    """One inertial sample closing an integration step.

    Attributes:
        dt: Time elapsed since the previous sample in seconds (> 0)
        acc: Specific force (ax, ay, az) in m/s²
        gyr: Angular rate (wx, wy, wz) in rad/s
    """

    dt: float
    acc: np.ndarray  # (3,) m/s²
    gyr: np.ndarray  # (3,) rad/s

    def __post_init__(self) -> None:
        """Validate time step and coerce vectors to (3,) float arrays."""
        dt = float(self.dt)
        if not np.isfinite(dt) or dt <= 0.0:
            raise InvalidSampleError(f"dt must be positive and finite, got {self.dt}")

        acc = as_vector3(self.acc, "acc")
        gyr = as_vector3(self.gyr, "gyr")
        # buffered samples are replayed by repropagate; keep them read-only
        acc.setflags(write=False)
        gyr.setflags(write=False)

        # frozen dataclass: bypass __setattr__ for normalization
        object.__setattr__(self, "dt", dt)
        object.__setattr__(self, "acc", acc)
        object.__setattr__(self, "gyr", gyr)
