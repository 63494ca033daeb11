"""IMU factor for nonlinear least-squares back-ends.

Wraps a `PreintegratedDelta` and provides everything an optimizer needs to
linearize the preintegration residual between two endpoint states:

    r(x_i, x_j)            15-d residual [p, θ, v, ba, bg]
    ∂r/∂δx_i, ∂r/∂δx_j     15x15 Jacobians w.r.t. the minimal error state
                           of each endpoint (see `EndpointState.boxplus`)
    S                      square-root information, SᵀS = covariance⁻¹

Whitened quantities S @ r and S @ J are what a Gauss-Newton or
Levenberg-Marquardt solver consumes directly.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.linalg

from .config import STATE_DIM
from .errors import SingularCovarianceError
from .preintegrator import PreintegratedDelta, rotation_error
from .rotation import left_product_matrix, right_product_matrix, skew
from .state import O_BA, O_BG, O_P, O_R, O_V, EndpointState


@dataclass
class FactorEvaluation:
    """Whitened residual and Jacobians for one interval.

    Attributes:
        residual: Raw (15,) residual
        weighted_residual: S @ residual
        jacobian_i: S @ ∂r/∂δx_i (15x15)
        jacobian_j: S @ ∂r/∂δx_j (15x15)
        cost: ½‖weighted_residual‖²
    """

    residual: np.ndarray
    weighted_residual: np.ndarray
    jacobian_i: np.ndarray
    jacobian_j: np.ndarray
    cost: float


class ImuFactor:
    """Preintegration residual between two states with its Jacobians."""

    def __init__(self, preintegration: PreintegratedDelta) -> None:
        """Initialize factor.

        Args:
            preintegration: Accumulated interval between the two states
        """
        self._preintegration = preintegration

    @property
    def preintegration(self) -> PreintegratedDelta:
        """The wrapped interval."""
        return self._preintegration

    def sqrt_information(self) -> np.ndarray:
        """Upper-triangular S with SᵀS equal to the inverse covariance.

        Raises:
            SingularCovarianceError: If the covariance is not positive definite
                (for example an interval without samples)
        """
        covariance = self._preintegration.covariance
        try:
            information = scipy.linalg.inv(covariance)
            information = 0.5 * (information + information.T)
            return scipy.linalg.cholesky(information, lower=False)
        except (np.linalg.LinAlgError, ValueError) as e:
            raise SingularCovarianceError(
                f"Covariance of interval with {len(self._preintegration)} samples "
                f"cannot be used for weighting: {e}"
            ) from e

    def residual(self, state_i: EndpointState, state_j: EndpointState) -> np.ndarray:
        """Unweighted 15-d residual."""
        return self._preintegration.evaluate_states(state_i, state_j)

    def jacobians(
        self, state_i: EndpointState, state_j: EndpointState
    ) -> tuple[np.ndarray, np.ndarray]:
        """Unweighted residual Jacobians w.r.t. both endpoint error states.

        Rotation blocks are exact at zero rotation residual and first-order
        accurate close to it, which is where an optimizer operates.

        Args:
            state_i: State at the start of the interval
            state_j: State at the end of the interval

        Returns:
            Tuple (J_i, J_j) of 15x15 matrices
        """
        pre = self._preintegration
        G = pre.gravity
        T = pre.sum_dt

        Qi = state_i.orientation
        Qj = state_j.orientation
        Ri_inv = Qi.to_rotation_matrix().T

        J = pre.jacobian
        dp_dba = J[O_P:O_P + 3, O_BA:O_BA + 3]
        dp_dbg = J[O_P:O_P + 3, O_BG:O_BG + 3]
        dq_dbg = J[O_R:O_R + 3, O_BG:O_BG + 3]
        dv_dba = J[O_V:O_V + 3, O_BA:O_BA + 3]
        dv_dbg = J[O_V:O_V + 3, O_BG:O_BG + 3]

        _, corrected_delta_q, _ = pre.corrected_delta(
            state_i.bias_accel, state_i.bias_gyro
        )

        _, sign = rotation_error(corrected_delta_q, Qi, Qj)

        Pi, Vi = state_i.position, state_i.velocity
        Pj, Vj = state_j.position, state_j.velocity

        J_i = np.zeros((STATE_DIM, STATE_DIM))
        J_i[O_P:O_P + 3, O_P:O_P + 3] = -Ri_inv
        J_i[O_P:O_P + 3, O_R:O_R + 3] = skew(
            Ri_inv @ (0.5 * G * T * T + Pj - Pi - Vi * T)
        )
        J_i[O_P:O_P + 3, O_V:O_V + 3] = -Ri_inv * T
        J_i[O_P:O_P + 3, O_BA:O_BA + 3] = -dp_dba
        J_i[O_P:O_P + 3, O_BG:O_BG + 3] = -dp_dbg

        J_i[O_R:O_R + 3, O_R:O_R + 3] = -sign * (
            left_product_matrix(Qj.inverse() * Qi)
            @ right_product_matrix(corrected_delta_q)
        )[1:, 1:]
        J_i[O_R:O_R + 3, O_BG:O_BG + 3] = (
            -sign * left_product_matrix(Qj.inverse() * Qi * pre.delta_q)[1:, 1:] @ dq_dbg
        )

        J_i[O_V:O_V + 3, O_R:O_R + 3] = skew(Ri_inv @ (G * T + Vj - Vi))
        J_i[O_V:O_V + 3, O_V:O_V + 3] = -Ri_inv
        J_i[O_V:O_V + 3, O_BA:O_BA + 3] = -dv_dba
        J_i[O_V:O_V + 3, O_BG:O_BG + 3] = -dv_dbg

        J_i[O_BA:O_BA + 3, O_BA:O_BA + 3] = -np.eye(3)
        J_i[O_BG:O_BG + 3, O_BG:O_BG + 3] = -np.eye(3)

        J_j = np.zeros((STATE_DIM, STATE_DIM))
        J_j[O_P:O_P + 3, O_P:O_P + 3] = Ri_inv
        J_j[O_R:O_R + 3, O_R:O_R + 3] = sign * left_product_matrix(
            corrected_delta_q.inverse() * Qi.inverse() * Qj
        )[1:, 1:]
        J_j[O_V:O_V + 3, O_V:O_V + 3] = Ri_inv
        J_j[O_BA:O_BA + 3, O_BA:O_BA + 3] = np.eye(3)
        J_j[O_BG:O_BG + 3, O_BG:O_BG + 3] = np.eye(3)
        return J_i, J_j

    def evaluate(
        self, state_i: EndpointState, state_j: EndpointState
    ) -> FactorEvaluation:
        """Whitened residual and Jacobians.

        Raises:
            SingularCovarianceError: If the covariance cannot be inverted
        """
        sqrt_info = self.sqrt_information()
        residual = self.residual(state_i, state_j)
        J_i, J_j = self.jacobians(state_i, state_j)

        weighted_residual = sqrt_info @ residual
        return FactorEvaluation(
            residual=residual,
            weighted_residual=weighted_residual,
            jacobian_i=sqrt_info @ J_i,
            jacobian_j=sqrt_info @ J_j,
            cost=0.5 * float(weighted_residual @ weighted_residual),
        )
