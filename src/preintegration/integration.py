"""Mid-point integration of one inertial step.

Advances the preintegrated increments (alpha = Δp, beta = Δv, gamma = Δq)
from sample k to k+1:

    a_0   = R(γ_k)   (acc_0 - ba)
    w     = ½ (gyr_0 + gyr_1) - bg
    γ_k+1 = γ_k ⊗ [1, ½ w dt]           (renormalized)
    a_1   = R(γ_k+1) (acc_1 - ba)
    a     = ½ (a_0 + a_1)
    α_k+1 = α_k + β_k dt + ½ a dt²
    β_k+1 = β_k + a dt

Gravity is not removed here; it only enters when the increments are
compared against two endpoint states.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .jacobians import step_noise_map, step_transition
from .rotation import Quaternion


@dataclass
class MidpointStep:
    """Result of integrating one step.

    Attributes:
        delta_p: Position increment at k+1
        delta_q: Orientation increment at k+1 (unit quaternion)
        delta_v: Velocity increment at k+1
        F: 15x15 error-state transition (None unless requested)
        V: 15x18 noise map (None unless requested)
    """

    delta_p: np.ndarray
    delta_q: Quaternion
    delta_v: np.ndarray
    F: np.ndarray | None = None
    V: np.ndarray | None = None


def midpoint_integration(
    dt: float,
    acc_0: np.ndarray,
    gyr_0: np.ndarray,
    acc_1: np.ndarray,
    gyr_1: np.ndarray,
    delta_p: np.ndarray,
    delta_q: Quaternion,
    delta_v: np.ndarray,
    linearized_ba: np.ndarray,
    linearized_bg: np.ndarray,
    update_jacobian: bool = True,
) -> MidpointStep:
    """Integrate one step between samples k and k+1.

    Pure function: none of the inputs are modified.

    Args:
        dt: Step length in seconds
        acc_0: Specific force at k
        gyr_0: Angular rate at k
        acc_1: Specific force at k+1
        gyr_1: Angular rate at k+1
        delta_p: Position increment at k
        delta_q: Orientation increment at k
        delta_v: Velocity increment at k
        linearized_ba: Accelerometer bias the step is linearized around
        linearized_bg: Gyroscope bias the step is linearized around
        update_jacobian: Also build the step matrices F and V

    Returns:
        MidpointStep with the increments at k+1
    """
    R_0 = delta_q.to_rotation_matrix()
    un_acc_0 = R_0 @ (acc_0 - linearized_ba)

    un_gyr = 0.5 * (gyr_0 + gyr_1) - linearized_bg
    result_delta_q = (delta_q * Quaternion.from_small_angle(un_gyr * dt)).normalized()

    R_1 = result_delta_q.to_rotation_matrix()
    un_acc_1 = R_1 @ (acc_1 - linearized_ba)

    un_acc = 0.5 * (un_acc_0 + un_acc_1)
    result_delta_p = delta_p + delta_v * dt + 0.5 * un_acc * dt * dt
    result_delta_v = delta_v + un_acc * dt

    step = MidpointStep(
        delta_p=result_delta_p,
        delta_q=result_delta_q,
        delta_v=result_delta_v,
    )
    if update_jacobian:
        a_0 = acc_0 - linearized_ba
        a_1 = acc_1 - linearized_ba
        step.F = step_transition(dt, R_0, R_1, un_gyr, a_0, a_1)
        step.V = step_noise_map(dt, R_0, R_1, a_1)
    return step
