"""Tests for EndpointState and ImuSample."""

import numpy as np
import pytest

from preintegration import EndpointState, ImuSample, InvalidSampleError, Quaternion


class TestEndpointState:
    """Test suite for EndpointState."""

    def test_vector_round_trip(self):
        """Test packing into and out of the 16-scalar bundle."""
        x = np.arange(16, dtype=np.float64)
        x[3:7] = Quaternion.from_rotation_vector([0.1, 0.2, 0.3]).to_array()

        state = EndpointState.from_vector(x)

        np.testing.assert_array_equal(state.to_vector(), x)
        np.testing.assert_array_equal(state.velocity, [7.0, 8.0, 9.0])
        np.testing.assert_array_equal(state.bias_gyro, [13.0, 14.0, 15.0])

    def test_orientation_from_array(self):
        """Test that a (4,) orientation is converted to a Quaternion."""
        state = EndpointState(np.zeros(3), np.array([1.0, 0.0, 0.0, 0.0]), np.zeros(3))

        assert isinstance(state.orientation, Quaternion)
        np.testing.assert_array_equal(state.bias_accel, np.zeros(3))

    def test_boxplus(self):
        """Test that boxplus perturbs rotation on the body side."""
        state = EndpointState(
            position=np.ones(3),
            orientation=Quaternion.from_rotation_vector([0.0, 0.0, 0.5]),
            velocity=np.zeros(3),
        )
        delta = np.zeros(15)
        delta[0:3] = [0.1, 0.2, 0.3]
        delta[3:6] = [0.2, 0.0, 0.0]
        delta[12:15] = [0.01, 0.0, 0.0]

        moved = state.boxplus(delta)

        np.testing.assert_allclose(moved.position, [1.1, 1.2, 1.3])
        np.testing.assert_allclose(moved.bias_gyro, [0.01, 0.0, 0.0])
        expected = state.orientation.to_rotation_matrix() @ (
            Quaternion.from_rotation_vector([0.2, 0.0, 0.0]).to_rotation_matrix()
        )
        np.testing.assert_allclose(moved.orientation.to_rotation_matrix(), expected, atol=1e-12)

    def test_shape_errors(self):
        """Test that wrongly sized inputs are rejected."""
        with pytest.raises(ValueError, match="position must be"):
            EndpointState(np.zeros(2), Quaternion.identity(), np.zeros(3))
        with pytest.raises(ValueError, match="16 values"):
            EndpointState.from_vector(np.zeros(15))
        with pytest.raises(ValueError, match="15 values"):
            EndpointState(np.zeros(3), Quaternion.identity(), np.zeros(3)).boxplus(np.zeros(16))


class TestImuSample:
    """Test suite for ImuSample."""

    def test_coerces_inputs(self):
        """Test that lists become float arrays."""
        sample = ImuSample(1, [0, 0, 9.81], [[0.1], [0.0], [0.0]])

        assert sample.dt == 1.0
        assert sample.acc.dtype == np.float64
        assert sample.gyr.shape == (3,)

    def test_is_frozen(self):
        """Test that buffered samples cannot be modified."""
        sample = ImuSample(0.01, np.zeros(3), np.zeros(3))

        with pytest.raises(AttributeError):
            sample.dt = 0.02

    def test_invalid_dt(self):
        """Test that non-positive dt is an invalid-argument error."""
        with pytest.raises(InvalidSampleError):
            ImuSample(0.0, np.zeros(3), np.zeros(3))
        with pytest.raises(ValueError):
            ImuSample(-1.0, np.zeros(3), np.zeros(3))

    def test_vectors_are_read_only(self):
        """Test that acc and gyr cannot be written in place."""
        acc = np.array([0.0, 0.0, 9.81])
        sample = ImuSample(0.01, acc, np.zeros(3))

        with pytest.raises(ValueError, match="read-only"):
            sample.acc[2] = 0.0
        with pytest.raises(ValueError, match="read-only"):
            sample.gyr += 1.0

        acc[2] = 0.0
        assert sample.acc[2] == 9.81
