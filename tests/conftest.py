"""Shared fixtures for preintegration tests."""

from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from preintegration import EndpointState, PreintegratedDelta, PreintegrationConfig, Quaternion

GRAVITY = np.array([0.0, 0.0, 9.81])

Sample = tuple[float, np.ndarray, np.ndarray]


def generate_samples(seed: int, num_samples: int = 200, dt: float = 0.005) -> list[Sample]:
    """Random but smooth-ish inertial samples around a gravity-only reading."""
    rng = np.random.default_rng(seed)
    samples = []
    for _ in range(num_samples):
        acc = GRAVITY + rng.normal(0.0, 0.5, 3)
        gyr = rng.normal(0.0, 0.3, 3)
        samples.append((dt, acc, gyr))
    return samples


@pytest.fixture
def config() -> PreintegrationConfig:
    """Default configuration (gravity 9.81 m/s²)."""
    return PreintegrationConfig()


@pytest.fixture
def sample_generator() -> Callable[..., list[Sample]]:
    """Access to `generate_samples` for tests that need several seeds."""
    return generate_samples


@pytest.fixture
def random_samples() -> list[Sample]:
    """200 samples at 200 Hz (one second of data)."""
    return generate_samples(seed=42)


@pytest.fixture
def biases() -> tuple[np.ndarray, np.ndarray]:
    """Accelerometer and gyroscope bias the interval is linearized around."""
    return np.array([0.02, -0.01, 0.03]), np.array([0.002, -0.001, 0.0015])


@pytest.fixture
def filled_delta(
    random_samples: list[Sample],
    biases: tuple[np.ndarray, np.ndarray],
    config: PreintegrationConfig,
) -> PreintegratedDelta:
    """Interval with every random sample pushed."""
    ba, bg = biases
    _, acc_0, gyr_0 = random_samples[0]
    delta = PreintegratedDelta(acc_0, gyr_0, ba, bg, config)
    for dt, acc, gyr in random_samples[1:]:
        delta.push_back(dt, acc, gyr)
    return delta


@pytest.fixture
def start_state(biases: tuple[np.ndarray, np.ndarray]) -> EndpointState:
    """Arbitrary non-trivial state at the start of the interval."""
    ba, bg = biases
    return EndpointState(
        position=np.array([1.0, -2.0, 0.5]),
        orientation=Quaternion.from_rotation_vector(np.array([0.3, -0.2, 0.8])),
        velocity=np.array([0.4, 0.1, -0.3]),
        bias_accel=ba,
        bias_gyro=bg,
    )


@pytest.fixture
def consistent_end_state() -> Callable[[PreintegratedDelta, EndpointState], EndpointState]:
    """Build the end state that exactly matches the integrated motion."""

    def build(delta: PreintegratedDelta, state_i: EndpointState) -> EndpointState:
        T = delta.sum_dt
        g = delta.gravity
        R_i = state_i.orientation.to_rotation_matrix()
        return EndpointState(
            position=state_i.position
            + state_i.velocity * T
            - 0.5 * g * T * T
            + R_i @ delta.delta_p,
            orientation=(state_i.orientation * delta.delta_q).normalized(),
            velocity=state_i.velocity - g * T + R_i @ delta.delta_v,
            bias_accel=delta.linearized_ba,
            bias_gyro=delta.linearized_bg,
        )

    return build
