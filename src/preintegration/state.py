"""Full navigation state at the endpoints of a preintegrated interval."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .rotation import Quaternion

# Offsets of each block in the 15-d error state
O_P = 0
O_R = 3
O_V = 6
O_BA = 9
O_BG = 12


@dataclass
class EndpointState:
    """Estimator state at one end of an interval.

    Attributes:
        position: Position in world frame (3,)
        orientation: Rotation body -> world
        velocity: Linear velocity in world frame (3,)
        bias_accel: Accelerometer bias (3,) in m/s²
        bias_gyro: Gyroscope bias (3,) in rad/s
    """

    position: np.ndarray
    orientation: Quaternion
    velocity: np.ndarray
    bias_accel: np.ndarray = field(default_factory=lambda: np.zeros(3))
    bias_gyro: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        """Ensure arrays have correct shape and type."""
        for name in ("position", "velocity", "bias_accel", "bias_gyro"):
            v = np.asarray(getattr(self, name), dtype=np.float64).flatten()
            if v.shape != (3,):
                raise ValueError(f"{name} must be (3,), got {v.shape}")
            setattr(self, name, v)
        if not isinstance(self.orientation, Quaternion):
            self.orientation = Quaternion.from_array(self.orientation)

    @classmethod
    def from_vector(cls, x: np.ndarray) -> EndpointState:
        """Unpack a 16-scalar bundle [p(3), q(4, w first), v(3), ba(3), bg(3)].

        Raises:
            ValueError: If x does not hold 16 values
        """
        x = np.asarray(x, dtype=np.float64).flatten()
        if x.shape != (16,):
            raise ValueError(f"State vector must have 16 values, got {x.shape}")
        return cls(
            position=x[0:3],
            orientation=Quaternion.from_array(x[3:7]),
            velocity=x[7:10],
            bias_accel=x[10:13],
            bias_gyro=x[13:16],
        )

    def to_vector(self) -> np.ndarray:
        """Pack into the 16-scalar bundle used by `from_vector`."""
        return np.concatenate(
            [
                self.position,
                self.orientation.to_array(),
                self.velocity,
                self.bias_accel,
                self.bias_gyro,
            ]
        )

    def boxplus(self, delta: np.ndarray) -> EndpointState:
        """Apply a 15-d error-state perturbation [dp, dθ, dv, dba, dbg].

        Rotation is perturbed on the body side: q' = q ⊗ Exp(dθ).

        Args:
            delta: Error state (15,)

        Returns:
            New perturbed state
        """
        delta = np.asarray(delta, dtype=np.float64).flatten()
        if delta.shape != (15,):
            raise ValueError(f"Error state must have 15 values, got {delta.shape}")
        return EndpointState(
            position=self.position + delta[O_P:O_P + 3],
            orientation=(
                self.orientation * Quaternion.from_rotation_vector(delta[O_R:O_R + 3])
            ).normalized(),
            velocity=self.velocity + delta[O_V:O_V + 3],
            bias_accel=self.bias_accel + delta[O_BA:O_BA + 3],
            bias_gyro=self.bias_gyro + delta[O_BG:O_BG + 3],
        )
