"""Noise and gravity configuration for IMU preintegration.

Configuration is an explicit value handed to every `PreintegratedDelta`,
so independent integration intervals never share mutable settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import yaml

# Sizes of the error state and of the raw noise vector
STATE_DIM = 15
NOISE_DIM = 18


@dataclass(frozen=True)
class NoiseParameters:
    """IMU noise densities.

    The continuous white-noise terms are applied to both samples bounding
    a mid-point step; the random-walk terms drive the bias states.

    Attributes:
        acc_n: Accelerometer white noise (m/s²/√Hz)
        acc_w: Accelerometer bias random walk (m/s³/√Hz)
        gyr_n: Gyroscope white noise (rad/s/√Hz)
        gyr_w: Gyroscope bias random walk (rad/s²/√Hz)
    """

    acc_n: float = 0.08
    acc_w: float = 4.0e-5
    gyr_n: float = 0.004
    gyr_w: float = 2.0e-6

    def __post_init__(self) -> None:
        """Reject negative or non-finite densities."""
        for name in ("acc_n", "acc_w", "gyr_n", "gyr_w"):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value < 0.0:
                raise ValueError(f"{name} must be finite and non-negative, got {value}")
            object.__setattr__(self, name, value)

    def noise_matrix(self) -> np.ndarray:
        """Build the 18x18 diagonal noise covariance.

        Block order: accel noise at k, gyro noise at k, accel noise at k+1,
        gyro noise at k+1, accel bias walk, gyro bias walk.

        Returns:
            18x18 diagonal matrix of variances
        """
        variances = np.repeat(
            [
                self.acc_n**2,
                self.gyr_n**2,
                self.acc_n**2,
                self.gyr_n**2,
                self.acc_w**2,
                self.gyr_w**2,
            ],
            3,
        )
        return np.diag(variances)


@dataclass(frozen=True)
class PreintegrationConfig:
    """Settings fixed for the lifetime of a preintegrated interval.

    Attributes:
        noise: Sensor noise densities
        gravity_magnitude: Gravity constant in m/s² (world z-axis up)
        max_accel_bias_drift: Largest accelerometer bias change (m/s²) for
            which the first-order bias correction is considered reliable
        max_gyro_bias_drift: Same limit for the gyroscope bias (rad/s)
    """

    noise: NoiseParameters = field(default_factory=NoiseParameters)
    gravity_magnitude: float = 9.81
    max_accel_bias_drift: float = 0.1
    max_gyro_bias_drift: float = 0.01

    def __post_init__(self) -> None:
        """Validate scalar settings."""
        g = float(self.gravity_magnitude)
        if not np.isfinite(g) or g <= 0.0:
            raise ValueError(f"gravity_magnitude must be positive, got {g}")
        object.__setattr__(self, "gravity_magnitude", g)

        for name in ("max_accel_bias_drift", "max_gyro_bias_drift"):
            value = float(getattr(self, name))
            if not value > 0.0:
                raise ValueError(f"{name} must be positive, got {value}")
            object.__setattr__(self, name, value)

    @property
    def gravity(self) -> np.ndarray:
        """Gravity vector g = (0, 0, |g|) used by the residual."""
        return np.array([0.0, 0.0, self.gravity_magnitude], dtype=np.float64)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> PreintegrationConfig:
        """Load configuration from an IMU calibration YAML file.

        Understands the EuRoC imu0/sensor.yaml keys
        (accelerometer_noise_density, accelerometer_random_walk,
        gyroscope_noise_density, gyroscope_random_walk) and the optional
        keys gravity_magnitude, max_accel_bias_drift and max_gyro_bias_drift.
        Missing keys keep their default values.

        Args:
            yaml_path: Path to the calibration file

        Returns:
            PreintegrationConfig

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file content is invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid calibration file {yaml_path}: expected a mapping")

        defaults = NoiseParameters()
        default_config = cls()

        def read(key: str, default: float) -> float:
            value = data.get(key, default)
            try:
                return float(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid {key} in {yaml_path}: {value!r}") from e

        noise = NoiseParameters(
            acc_n=read("accelerometer_noise_density", defaults.acc_n),
            acc_w=read("accelerometer_random_walk", defaults.acc_w),
            gyr_n=read("gyroscope_noise_density", defaults.gyr_n),
            gyr_w=read("gyroscope_random_walk", defaults.gyr_w),
        )
        return cls(
            noise=noise,
            gravity_magnitude=read("gravity_magnitude", default_config.gravity_magnitude),
            max_accel_bias_drift=read(
                "max_accel_bias_drift", default_config.max_accel_bias_drift
            ),
            max_gyro_bias_drift=read(
                "max_gyro_bias_drift", default_config.max_gyro_bias_drift
            ),
        )
