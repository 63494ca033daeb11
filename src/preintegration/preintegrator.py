"""IMU preintegration between two keyframes.

A `PreintegratedDelta` summarizes every inertial sample of an interval as a
single relative motion (Δp, Δq, Δv) expressed in the body frame of the first
sample, together with:

- `jacobian`: sensitivity of the current error state to the initial one,
  whose bias columns allow first-order bias correction;
- `covariance`: accumulated uncertainty of the 15-d error state
  [δp, δθ, δv, δba, δbg].

Raw samples are buffered so the whole interval can be replayed
(`repropagate`) when the bias estimate moves too far from the value the
integration was linearized around.

Example usage:
    delta = PreintegratedDelta(acc_0, gyr_0, ba, bg, config)
    for dt, acc, gyr in samples:
        delta.push_back(dt, acc, gyr)
    residual = delta.evaluate(Pi, Qi, Vi, Bai, Bgi, Pj, Qj, Vj, Baj, Bgj)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .config import STATE_DIM, PreintegrationConfig
from .errors import DivergedIntegrationError
from .integration import midpoint_integration
from .rotation import Quaternion
from .sample import ImuSample, as_vector3
from .state import O_BA, O_BG, O_P, O_R, O_V, EndpointState

logger = logging.getLogger(__name__)


def _as_finite3(value: np.ndarray, name: str) -> np.ndarray:
    v = np.asarray(value, dtype=np.float64).flatten()
    if v.shape != (3,) or not np.all(np.isfinite(v)):
        raise ValueError(f"{name} must be a finite 3-vector, got {value}")
    return v


def _as_bias(value: np.ndarray | None, name: str) -> np.ndarray:
    if value is None:
        return np.zeros(3)
    return _as_finite3(value, name)


def _as_quaternion(q: Quaternion | np.ndarray) -> Quaternion:
    """Accept a Quaternion, a (4,) w-first array or a 3x3 rotation matrix."""
    if isinstance(q, Quaternion):
        return q
    arr = np.asarray(q, dtype=np.float64)
    if arr.shape == (3, 3):
        return Quaternion.from_rotation_matrix(arr)
    return Quaternion.from_array(arr)


def rotation_error(
    corrected_delta_q: Quaternion, Qi: Quaternion, Qj: Quaternion
) -> tuple[Quaternion, float]:
    """Error quaternion Δq⁻¹ ⊗ Qi⁻¹ ⊗ Qj and the sign taking it the short way.

    q and -q are the same rotation. The sign is -1 when the error has a
    negative scalar part, and the rotation residual and its Jacobian rows
    must both be multiplied by it.

    Returns:
        Tuple (q_err, sign)
    """
    q_err = corrected_delta_q.inverse() * (Qi.inverse() * Qj)
    sign = -1.0 if q_err.w < 0.0 else 1.0
    return q_err, sign


@dataclass(frozen=True)
class PreintegrationSnapshot:
    """Immutable copy of a preintegrated interval handed to an estimator."""

    sum_dt: float
    delta_p: np.ndarray
    delta_q: Quaternion
    delta_v: np.ndarray
    linearized_ba: np.ndarray
    linearized_bg: np.ndarray
    jacobian: np.ndarray
    covariance: np.ndarray
    num_samples: int


class PreintegratedDelta:
    """Preintegrated IMU increment with covariance and bias Jacobian.

    Not thread-safe: a single owner should push samples, repropagate and
    evaluate a given instance.
    """

    def __init__(
        self,
        acc_0: np.ndarray,
        gyr_0: np.ndarray,
        linearized_ba: np.ndarray | None = None,
        linearized_bg: np.ndarray | None = None,
        config: PreintegrationConfig | None = None,
    ) -> None:
        """Start an interval at the sample (acc_0, gyr_0).

        Args:
            acc_0: Specific force of the first sample (3,)
            gyr_0: Angular rate of the first sample (3,)
            linearized_ba: Accelerometer bias estimate (default: zeros)
            linearized_bg: Gyroscope bias estimate (default: zeros)
            config: Noise and gravity settings (default: PreintegrationConfig())
        """
        self._config = config if config is not None else PreintegrationConfig()
        self._noise = self._config.noise.noise_matrix()

        self.linearized_acc = as_vector3(acc_0, "acc_0")
        self.linearized_gyr = as_vector3(gyr_0, "gyr_0")
        self.linearized_ba = _as_bias(linearized_ba, "linearized_ba")
        self.linearized_bg = _as_bias(linearized_bg, "linearized_bg")

        self._samples: list[ImuSample] = []
        self._reset_state()

    def _reset_state(self) -> None:
        """Return increments, Jacobian and covariance to their initial values."""
        self.dt = 0.0
        self.sum_dt = 0.0
        self.acc_0 = self.linearized_acc.copy()
        self.gyr_0 = self.linearized_gyr.copy()
        self.acc_1 = self.linearized_acc.copy()
        self.gyr_1 = self.linearized_gyr.copy()
        self.delta_p = np.zeros(3)
        self.delta_q = Quaternion.identity()
        self.delta_v = np.zeros(3)
        self.jacobian = np.eye(STATE_DIM)
        self.covariance = np.zeros((STATE_DIM, STATE_DIM))

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------

    def push_back(self, dt: float, acc: np.ndarray, gyr: np.ndarray) -> None:
        """Buffer a sample and integrate it.

        Args:
            dt: Time since the previous sample in seconds (> 0)
            acc: Specific force (3,) in m/s²
            gyr: Angular rate (3,) in rad/s

        Raises:
            InvalidSampleError: If the sample violates the preconditions
            DivergedIntegrationError: If the step produces non-finite values
        """
        sample = ImuSample(dt, acc, gyr)
        self._integrate(sample)
        self._samples.append(sample)

    def propagate(self, dt: float, acc_1: np.ndarray, gyr_1: np.ndarray) -> None:
        """Advance the increments to a new sample without buffering it.

        Raises:
            InvalidSampleError: If the sample violates the preconditions
            DivergedIntegrationError: If the step produces non-finite values
        """
        self._integrate(ImuSample(dt, acc_1, gyr_1))

    def _integrate(self, sample: ImuSample) -> None:
        step = midpoint_integration(
            sample.dt,
            self.acc_0,
            self.gyr_0,
            sample.acc,
            sample.gyr,
            self.delta_p,
            self.delta_q,
            self.delta_v,
            self.linearized_ba,
            self.linearized_bg,
        )
        jacobian = step.F @ self.jacobian
        covariance = step.F @ self.covariance @ step.F.T + step.V @ self._noise @ step.V.T
        covariance = 0.5 * (covariance + covariance.T)

        if not (
            np.all(np.isfinite(step.delta_p))
            and np.all(np.isfinite(step.delta_v))
            and np.all(np.isfinite(step.delta_q.to_array()))
            and np.all(np.isfinite(jacobian))
            and np.all(np.isfinite(covariance))
        ):
            raise DivergedIntegrationError(
                f"Integration step dt={sample.dt} produced non-finite values "
                f"after {len(self._samples)} samples"
            )

        # Commit only once the whole step is known to be finite
        self.dt = sample.dt
        self.acc_1 = sample.acc
        self.gyr_1 = sample.gyr
        self.delta_p = step.delta_p
        self.delta_q = step.delta_q
        self.delta_v = step.delta_v
        self.jacobian = jacobian
        self.covariance = covariance
        self.sum_dt += sample.dt
        self.acc_0 = self.acc_1
        self.gyr_0 = self.gyr_1

    def repropagate(
        self, linearized_ba: np.ndarray, linearized_bg: np.ndarray
    ) -> None:
        """Replay every buffered sample around new bias estimates.

        Cost is linear in the number of buffered samples. With an empty
        buffer this only resets the increments.

        Args:
            linearized_ba: New accelerometer bias estimate (3,)
            linearized_bg: New gyroscope bias estimate (3,)

        Raises:
            DivergedIntegrationError: If replay produces non-finite values;
                the previous state is restored
        """
        ba = _as_bias(linearized_ba, "linearized_ba")
        bg = _as_bias(linearized_bg, "linearized_bg")
        previous = self.__dict__.copy()

        self.linearized_ba = ba
        self.linearized_bg = bg
        self._reset_state()

        logger.debug(
            "Repropagating %d samples with ba=%s bg=%s",
            len(self._samples),
            ba,
            bg,
        )
        try:
            for sample in self._samples:
                self._integrate(sample)
        except DivergedIntegrationError:
            self.__dict__.update(previous)
            raise

    def reset(
        self,
        acc_0: np.ndarray | None = None,
        gyr_0: np.ndarray | None = None,
        linearized_ba: np.ndarray | None = None,
        linearized_bg: np.ndarray | None = None,
    ) -> None:
        """Drop every buffered sample and start a new interval.

        Arguments left as None keep their current values.
        """
        if acc_0 is not None:
            self.linearized_acc = as_vector3(acc_0, "acc_0")
        if gyr_0 is not None:
            self.linearized_gyr = as_vector3(gyr_0, "gyr_0")
        if linearized_ba is not None:
            self.linearized_ba = _as_bias(linearized_ba, "linearized_ba")
        if linearized_bg is not None:
            self.linearized_bg = _as_bias(linearized_bg, "linearized_bg")

        logger.debug("Reset interval, dropped %d samples", len(self._samples))
        self._samples = []
        self._reset_state()

    # ------------------------------------------------------------------
    # Residual
    # ------------------------------------------------------------------

    def bias_drift_exceeded(self, ba: np.ndarray, bg: np.ndarray) -> bool:
        """Whether a bias estimate is too far from the linearization point.

        Beyond the configured limits the first-order correction used by
        `evaluate` is no longer reliable and the owner should call
        `repropagate`.
        """
        dba = np.linalg.norm(_as_bias(ba, "ba") - self.linearized_ba)
        dbg = np.linalg.norm(_as_bias(bg, "bg") - self.linearized_bg)
        return bool(
            dba > self._config.max_accel_bias_drift
            or dbg > self._config.max_gyro_bias_drift
        )

    def corrected_delta(
        self, ba: np.ndarray, bg: np.ndarray
    ) -> tuple[np.ndarray, Quaternion, np.ndarray]:
        """Increments corrected to first order for new bias estimates.

        Uses the bias columns of `jacobian` instead of replaying samples.
        This is a linear approximation: it is only accurate while the bias
        change stays small (see `bias_drift_exceeded`).

        Args:
            ba: Accelerometer bias estimate (3,)
            bg: Gyroscope bias estimate (3,)

        Returns:
            Tuple of (delta_p, delta_q, delta_v)
        """
        dba = _as_bias(ba, "ba") - self.linearized_ba
        dbg = _as_bias(bg, "bg") - self.linearized_bg

        dp_dba = self.jacobian[O_P:O_P + 3, O_BA:O_BA + 3]
        dp_dbg = self.jacobian[O_P:O_P + 3, O_BG:O_BG + 3]
        dq_dbg = self.jacobian[O_R:O_R + 3, O_BG:O_BG + 3]
        dv_dba = self.jacobian[O_V:O_V + 3, O_BA:O_BA + 3]
        dv_dbg = self.jacobian[O_V:O_V + 3, O_BG:O_BG + 3]

        corrected_delta_q = (
            self.delta_q * Quaternion.from_small_angle(dq_dbg @ dbg)
        ).normalized()
        corrected_delta_v = self.delta_v + dv_dba @ dba + dv_dbg @ dbg
        corrected_delta_p = self.delta_p + dp_dba @ dba + dp_dbg @ dbg
        return corrected_delta_p, corrected_delta_q, corrected_delta_v

    def evaluate(
        self,
        Pi: np.ndarray,
        Qi: Quaternion | np.ndarray,
        Vi: np.ndarray,
        Bai: np.ndarray,
        Bgi: np.ndarray,
        Pj: np.ndarray,
        Qj: Quaternion | np.ndarray,
        Vj: np.ndarray,
        Baj: np.ndarray,
        Bgj: np.ndarray,
    ) -> np.ndarray:
        """Residual between the increments and two endpoint states.

        Does not modify the instance, so it can be called repeatedly with
        different endpoint guesses.

        Args:
            Pi, Qi, Vi, Bai, Bgi: State at the start of the interval
            Pj, Qj, Vj, Baj, Bgj: State at the end of the interval
                (orientations as Quaternion, (4,) w-first arrays or 3x3
                rotation matrices)

        Returns:
            (15,) residual ordered [p, θ, v, ba, bg]
        """
        Pi = _as_finite3(Pi, "Pi")
        Vi = _as_finite3(Vi, "Vi")
        Pj = _as_finite3(Pj, "Pj")
        Vj = _as_finite3(Vj, "Vj")
        Bai = _as_bias(Bai, "Bai")
        Bgi = _as_bias(Bgi, "Bgi")
        Baj = _as_bias(Baj, "Baj")
        Bgj = _as_bias(Bgj, "Bgj")
        Qi = _as_quaternion(Qi)
        Qj = _as_quaternion(Qj)

        if self.bias_drift_exceeded(Bai, Bgi):
            logger.warning(
                "Bias drift beyond first-order correction range "
                "(dba=%.4f, dbg=%.4f); repropagation recommended",
                np.linalg.norm(Bai - self.linearized_ba),
                np.linalg.norm(Bgi - self.linearized_bg),
            )

        corrected_delta_p, corrected_delta_q, corrected_delta_v = self.corrected_delta(
            Bai, Bgi
        )

        G = self._config.gravity
        T = self.sum_dt
        Ri_inv = Qi.to_rotation_matrix().T

        residuals = np.zeros(STATE_DIM)
        residuals[O_P:O_P + 3] = (
            Ri_inv @ (0.5 * G * T * T + Pj - Pi - Vi * T) - corrected_delta_p
        )
        q_err, sign = rotation_error(corrected_delta_q, Qi, Qj)
        residuals[O_R:O_R + 3] = 2.0 * sign * q_err.vec
        residuals[O_V:O_V + 3] = Ri_inv @ (G * T + Vj - Vi) - corrected_delta_v
        residuals[O_BA:O_BA + 3] = Baj - Bai
        residuals[O_BG:O_BG + 3] = Bgj - Bgi
        return residuals

    def evaluate_states(
        self, state_i: EndpointState, state_j: EndpointState
    ) -> np.ndarray:
        """`evaluate` taking two EndpointState objects."""
        return self.evaluate(
            state_i.position,
            state_i.orientation,
            state_i.velocity,
            state_i.bias_accel,
            state_i.bias_gyro,
            state_j.position,
            state_j.orientation,
            state_j.velocity,
            state_j.bias_accel,
            state_j.bias_gyro,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def snapshot(self) -> PreintegrationSnapshot:
        """Return an immutable copy of the accumulated interval."""
        return PreintegrationSnapshot(
            sum_dt=self.sum_dt,
            delta_p=self.delta_p.copy(),
            delta_q=Quaternion(self.delta_q.w, self.delta_q.x, self.delta_q.y, self.delta_q.z),
            delta_v=self.delta_v.copy(),
            linearized_ba=self.linearized_ba.copy(),
            linearized_bg=self.linearized_bg.copy(),
            jacobian=self.jacobian.copy(),
            covariance=self.covariance.copy(),
            num_samples=len(self._samples),
        )

    @property
    def config(self) -> PreintegrationConfig:
        """Noise and gravity settings of this interval."""
        return self._config

    @property
    def noise(self) -> np.ndarray:
        """18x18 diagonal sensor noise covariance."""
        return self._noise.copy()

    @property
    def gravity(self) -> np.ndarray:
        """Gravity vector used by `evaluate`."""
        return self._config.gravity

    @property
    def samples(self) -> tuple[ImuSample, ...]:
        """Buffered samples in arrival order."""
        return tuple(self._samples)

    @property
    def num_samples(self) -> int:
        """Number of buffered samples."""
        return len(self._samples)

    def __len__(self) -> int:
        """Number of buffered samples."""
        return len(self._samples)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"PreintegratedDelta(samples={len(self._samples)}, "
            f"sum_dt={self.sum_dt:.4f})"
        )
