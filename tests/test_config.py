"""Tests for configuration loading and validation."""

from pathlib import Path

import numpy as np
import pytest

from preintegration import NoiseParameters, PreintegrationConfig

EUROC_IMU_YAML = """\
#Default imu sensor yaml file
sensor_type: imu
comment: VI-Sensor IMU (ADIS16448)

# Sensor extrinsics wrt. the body-frame.
T_BS:
  cols: 4
  rows: 4
  data: [1.0, 0.0, 0.0, 0.0,
         0.0, 1.0, 0.0, 0.0,
         0.0, 0.0, 1.0, 0.0,
         0.0, 0.0, 0.0, 1.0]
rate_hz: 200

# inertial sensor noise model parameters (static)
gyroscope_noise_density: 1.6968e-04     # [ rad / s / sqrt(Hz) ]   ( gyro "white noise" )
gyroscope_random_walk: 1.9393e-05       # [ rad / s^2 / sqrt(Hz) ] ( gyro bias diffusion )
accelerometer_noise_density: 2.0000e-3  # [ m / s^2 / sqrt(Hz) ]  ( accel "white noise" )
accelerometer_random_walk: 3.0000e-3    # [ m / s^3 / sqrt(Hz) ].  ( accel bias diffusion )
"""


@pytest.fixture
def euroc_yaml(tmp_path: Path) -> Path:
    """Write an EuRoC imu0/sensor.yaml to a temporary directory."""
    path = tmp_path / "sensor.yaml"
    path.write_text(EUROC_IMU_YAML)
    return path


class TestNoiseParameters:
    """Test suite for NoiseParameters."""

    def test_defaults(self):
        """Test default noise densities."""
        noise = NoiseParameters()

        assert noise.acc_n == 0.08
        assert noise.acc_w == 4.0e-5
        assert noise.gyr_n == 0.004
        assert noise.gyr_w == 2.0e-6

    def test_noise_matrix_layout(self):
        """Test block order of the 18x18 noise matrix."""
        Q = NoiseParameters(acc_n=1.0, acc_w=3.0, gyr_n=2.0, gyr_w=4.0).noise_matrix()

        np.testing.assert_array_equal(
            np.diag(Q), np.repeat([1.0, 4.0, 1.0, 4.0, 9.0, 16.0], 3)
        )

    def test_negative_density_rejected(self):
        """Test that negative densities are rejected."""
        with pytest.raises(ValueError, match="gyr_n must be finite and non-negative"):
            NoiseParameters(gyr_n=-1.0)


class TestPreintegrationConfig:
    """Test suite for PreintegrationConfig."""

    def test_gravity_vector(self):
        """Test that gravity points along +z with the configured magnitude."""
        config = PreintegrationConfig(gravity_magnitude=9.80665)

        np.testing.assert_array_equal(config.gravity, [0.0, 0.0, 9.80665])

    def test_invalid_gravity(self):
        """Test that a non-positive gravity magnitude is rejected."""
        with pytest.raises(ValueError, match="gravity_magnitude must be positive"):
            PreintegrationConfig(gravity_magnitude=0.0)

    def test_from_euroc_yaml(self, euroc_yaml: Path):
        """Test loading noise densities from an EuRoC sensor.yaml."""
        config = PreintegrationConfig.from_yaml(euroc_yaml)

        assert config.noise.gyr_n == pytest.approx(1.6968e-04)
        assert config.noise.gyr_w == pytest.approx(1.9393e-05)
        assert config.noise.acc_n == pytest.approx(2.0e-3)
        assert config.noise.acc_w == pytest.approx(3.0e-3)
        assert config.gravity_magnitude == 9.81

    def test_from_yaml_optional_keys(self, tmp_path: Path):
        """Test optional keys and defaults for missing noise entries."""
        path = tmp_path / "preintegration.yaml"
        path.write_text(
            "gravity_magnitude: 9.8\n"
            "max_gyro_bias_drift: 0.05\n"
            "accelerometer_noise_density: 4e-2\n"
        )

        config = PreintegrationConfig.from_yaml(path)

        assert config.gravity_magnitude == 9.8
        assert config.max_gyro_bias_drift == 0.05
        assert config.max_accel_bias_drift == 0.1
        assert config.noise.acc_n == pytest.approx(0.04)
        assert config.noise.gyr_n == 0.004

    def test_from_yaml_missing_file(self, tmp_path: Path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Calibration file not found"):
            PreintegrationConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_invalid_value(self, tmp_path: Path):
        """Test that a non-numeric value is rejected."""
        path = tmp_path / "bad.yaml"
        path.write_text("gyroscope_noise_density: loud\n")

        with pytest.raises(ValueError, match="Invalid gyroscope_noise_density"):
            PreintegrationConfig.from_yaml(path)

    def test_from_yaml_not_a_mapping(self, tmp_path: Path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError, match="expected a mapping"):
            PreintegrationConfig.from_yaml(path)
