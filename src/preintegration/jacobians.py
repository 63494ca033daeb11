"""Closed-form linearization of one mid-point integration step.

Error state (15): [δp, δθ, δv, δba, δbg]
Noise vector (18): [n_a(k), n_g(k), n_a(k+1), n_g(k+1), n_ba, n_bg]

Both matrices come from first-order perturbation of the mid-point
equations in `integration.midpoint_integration`:

    x(k+1) ≈ F @ x(k) + V @ n
"""

from __future__ import annotations

import numpy as np

from .config import NOISE_DIM, STATE_DIM
from .rotation import skew
from .state import O_BA, O_BG, O_P, O_R, O_V


def step_transition(
    dt: float,
    R_0: np.ndarray,
    R_1: np.ndarray,
    w: np.ndarray,
    a_0: np.ndarray,
    a_1: np.ndarray,
) -> np.ndarray:
    """Error-state transition matrix F for one step.

    Args:
        dt: Step length in seconds
        R_0: Rotation of the delta at sample k
        R_1: Rotation of the delta at sample k+1
        w: Bias-corrected mean angular rate over the step
        a_0: Bias-corrected specific force at k (body frame)
        a_1: Bias-corrected specific force at k+1 (body frame)

    Returns:
        15x15 transition matrix
    """
    I3 = np.eye(3)
    R_w_x = skew(w)
    R_a_0_x = skew(a_0)
    R_a_1_x = skew(a_1)
    # rotation of the step, first order
    dR = I3 - R_w_x * dt

    F = np.zeros((STATE_DIM, STATE_DIM))
    F[O_P:O_P + 3, O_P:O_P + 3] = I3
    F[O_P:O_P + 3, O_R:O_R + 3] = (
        -0.25 * R_0 @ R_a_0_x * dt * dt
        - 0.25 * R_1 @ R_a_1_x @ dR * dt * dt
    )
    F[O_P:O_P + 3, O_V:O_V + 3] = I3 * dt
    F[O_P:O_P + 3, O_BA:O_BA + 3] = -0.25 * (R_0 + R_1) * dt * dt
    F[O_P:O_P + 3, O_BG:O_BG + 3] = -0.25 * R_1 @ R_a_1_x * dt * dt * -dt

    F[O_R:O_R + 3, O_R:O_R + 3] = dR
    F[O_R:O_R + 3, O_BG:O_BG + 3] = -I3 * dt

    F[O_V:O_V + 3, O_R:O_R + 3] = (
        -0.5 * R_0 @ R_a_0_x * dt
        - 0.5 * R_1 @ R_a_1_x @ dR * dt
    )
    F[O_V:O_V + 3, O_V:O_V + 3] = I3
    F[O_V:O_V + 3, O_BA:O_BA + 3] = -0.5 * (R_0 + R_1) * dt
    F[O_V:O_V + 3, O_BG:O_BG + 3] = -0.5 * R_1 @ R_a_1_x * dt * -dt

    F[O_BA:O_BA + 3, O_BA:O_BA + 3] = I3
    F[O_BG:O_BG + 3, O_BG:O_BG + 3] = I3
    return F


def step_noise_map(
    dt: float,
    R_0: np.ndarray,
    R_1: np.ndarray,
    a_1: np.ndarray,
) -> np.ndarray:
    """Noise input matrix V mapping the 18-d raw noise onto the error state.

    Args:
        dt: Step length in seconds
        R_0: Rotation of the delta at sample k
        R_1: Rotation of the delta at sample k+1
        a_1: Bias-corrected specific force at k+1 (body frame)

    Returns:
        15x18 noise map
    """
    I3 = np.eye(3)
    R_a_1_x = skew(a_1)

    V = np.zeros((STATE_DIM, NOISE_DIM))
    V[O_P:O_P + 3, 0:3] = 0.25 * R_0 * dt * dt
    V[O_P:O_P + 3, 3:6] = 0.25 * -R_1 @ R_a_1_x * dt * dt * 0.5 * dt
    V[O_P:O_P + 3, 6:9] = 0.25 * R_1 * dt * dt
    V[O_P:O_P + 3, 9:12] = V[O_P:O_P + 3, 3:6]

    V[O_R:O_R + 3, 3:6] = 0.5 * I3 * dt
    V[O_R:O_R + 3, 9:12] = 0.5 * I3 * dt

    V[O_V:O_V + 3, 0:3] = 0.5 * R_0 * dt
    V[O_V:O_V + 3, 3:6] = 0.5 * -R_1 @ R_a_1_x * dt * 0.5 * dt
    V[O_V:O_V + 3, 6:9] = 0.5 * R_1 * dt
    V[O_V:O_V + 3, 9:12] = V[O_V:O_V + 3, 3:6]

    V[O_BA:O_BA + 3, 12:15] = I3 * dt
    V[O_BG:O_BG + 3, 15:18] = I3 * dt
    return V
