"""Unit quaternions and small rotation helpers.

Quaternions follow the Hamilton convention with the scalar part first,
(w, x, y, z), and represent the rotation R(q) that maps vectors from the
body frame into the reference frame:

    v_ref = R(q) @ v_body
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


def skew(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from vector.

    Args:
        v: 3D vector

    Returns:
        3x3 skew-symmetric matrix [v]× such that [v]× @ u = v × u
    """
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0]
    ])


@dataclass
class Quaternion:
    """Hamilton quaternion q = w + xi + yj + zk.

    Attributes:
        w: Scalar part
        x: Vector part, i component
        y: Vector part, j component
        z: Vector part, k component
    """

    w: float
    x: float
    y: float
    z: float

    def __post_init__(self) -> None:
        """Coerce components to plain floats."""
        self.w = float(self.w)
        self.x = float(self.x)
        self.y = float(self.y)
        self.z = float(self.z)

    @classmethod
    def identity(cls) -> Quaternion:
        """Return the identity rotation."""
        return cls(1.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_array(cls, q: np.ndarray) -> Quaternion:
        """Create quaternion from a (4,) array ordered (w, x, y, z).

        Raises:
            ValueError: If the array does not hold exactly 4 values
        """
        q = np.asarray(q, dtype=np.float64).flatten()
        if q.shape != (4,):
            raise ValueError(f"Quaternion must have 4 components, got {q.shape}")
        return cls(q[0], q[1], q[2], q[3])

    @classmethod
    def from_small_angle(cls, theta: np.ndarray) -> Quaternion:
        """First-order quaternion for a small rotation vector.

        Returns (1, θ/2) without normalization. Callers normalize once the
        increment has been composed.

        Args:
            theta: Rotation vector (3,) in radians, assumed small
        """
        half = 0.5 * np.asarray(theta, dtype=np.float64).flatten()
        return cls(1.0, half[0], half[1], half[2])

    @classmethod
    def from_rotation_vector(cls, rvec: np.ndarray) -> Quaternion:
        """Exponential map from an axis-angle vector to a unit quaternion.

        Args:
            rvec: Rotation vector (3,), axis * angle in radians

        Returns:
            Unit quaternion
        """
        rvec = np.asarray(rvec, dtype=np.float64).flatten()
        theta = np.linalg.norm(rvec)
        if theta < 1e-10:
            return cls.from_small_angle(rvec).normalized()

        axis = rvec / theta
        s = np.sin(0.5 * theta)
        return cls(np.cos(0.5 * theta), axis[0] * s, axis[1] * s, axis[2] * s)

    @classmethod
    def from_rotation_matrix(cls, R: np.ndarray) -> Quaternion:
        """Create a unit quaternion from a 3x3 rotation matrix.

        Picks the numerically largest component first (Shepperd's method).

        Raises:
            ValueError: If R is not 3x3
        """
        R = np.asarray(R, dtype=np.float64)
        if R.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {R.shape}")

        trace = np.trace(R)
        if trace > 0.0:
            s = 2.0 * np.sqrt(trace + 1.0)
            q = cls(
                0.25 * s,
                (R[2, 1] - R[1, 2]) / s,
                (R[0, 2] - R[2, 0]) / s,
                (R[1, 0] - R[0, 1]) / s,
            )
        elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
            q = cls(
                (R[2, 1] - R[1, 2]) / s,
                0.25 * s,
                (R[0, 1] + R[1, 0]) / s,
                (R[0, 2] + R[2, 0]) / s,
            )
        elif R[1, 1] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
            q = cls(
                (R[0, 2] - R[2, 0]) / s,
                (R[0, 1] + R[1, 0]) / s,
                0.25 * s,
                (R[1, 2] + R[2, 1]) / s,
            )
        else:
            s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
            q = cls(
                (R[1, 0] - R[0, 1]) / s,
                (R[0, 2] + R[2, 0]) / s,
                (R[1, 2] + R[2, 1]) / s,
                0.25 * s,
            )
        return q.normalized()

    @property
    def vec(self) -> np.ndarray:
        """Vector (imaginary) part (x, y, z)."""
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def to_array(self) -> np.ndarray:
        """Return (4,) array ordered (w, x, y, z)."""
        return np.array([self.w, self.x, self.y, self.z], dtype=np.float64)

    def norm(self) -> float:
        """Euclidean norm of the four components."""
        return float(np.sqrt(self.w**2 + self.x**2 + self.y**2 + self.z**2))

    def normalized(self) -> Quaternion:
        """Return the quaternion scaled to unit norm."""
        n = self.norm()
        return Quaternion(self.w / n, self.x / n, self.y / n, self.z / n)

    def conjugate(self) -> Quaternion:
        """Return the conjugate (w, -x, -y, -z)."""
        return Quaternion(self.w, -self.x, -self.y, -self.z)

    def inverse(self) -> Quaternion:
        """Return the multiplicative inverse q* / |q|²."""
        n2 = self.w**2 + self.x**2 + self.y**2 + self.z**2
        return Quaternion(self.w / n2, -self.x / n2, -self.y / n2, -self.z / n2)

    def to_rotation_matrix(self) -> np.ndarray:
        """Convert to a 3x3 rotation matrix.

        The quaternion is normalized first, so slightly denormalized inputs
        still yield an orthonormal matrix.
        """
        q = self.normalized()
        qw, qx, qy, qz = q.w, q.x, q.y, q.z
        return np.array(
            [
                [
                    1 - 2 * qy * qy - 2 * qz * qz,
                    2 * qx * qy - 2 * qz * qw,
                    2 * qx * qz + 2 * qy * qw,
                ],
                [
                    2 * qx * qy + 2 * qz * qw,
                    1 - 2 * qx * qx - 2 * qz * qz,
                    2 * qy * qz - 2 * qx * qw,
                ],
                [
                    2 * qx * qz - 2 * qy * qw,
                    2 * qy * qz + 2 * qx * qw,
                    1 - 2 * qx * qx - 2 * qy * qy,
                ],
            ],
            dtype=np.float64,
        )

    def to_rotation_vector(self) -> np.ndarray:
        """Logarithm map to an axis-angle vector (OpenCV Rodrigues)."""
        rvec, _ = cv2.Rodrigues(self.to_rotation_matrix())
        return rvec.flatten()

    def rotate(self, v: np.ndarray) -> np.ndarray:
        """Rotate a 3D vector: R(q) @ v."""
        return self.to_rotation_matrix() @ np.asarray(v, dtype=np.float64).flatten()

    def multiply(self, other: Quaternion) -> Quaternion:
        """Hamilton product self ⊗ other."""
        w1, x1, y1, z1 = self.w, self.x, self.y, self.z
        w2, x2, y2, z2 = other.w, other.x, other.y, other.z
        return Quaternion(
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        )

    def angle_to(self, other: Quaternion) -> float:
        """Rotation angle in radians between self and other."""
        d = self.normalized().conjugate() * other.normalized()
        return float(2.0 * np.arctan2(np.linalg.norm(d.vec), abs(d.w)))

    def __mul__(self, other: Quaternion) -> Quaternion:
        """Operator form of `multiply`: q1 * q2 = q1 ⊗ q2."""
        return self.multiply(other)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"Quaternion(w={self.w:.6f}, x={self.x:.6f}, "
            f"y={self.y:.6f}, z={self.z:.6f})"
        )


def left_product_matrix(q: Quaternion) -> np.ndarray:
    """4x4 matrix L(q) with q ⊗ p = L(q) @ p for p as (w, x, y, z)."""
    v = q.vec
    M = np.zeros((4, 4), dtype=np.float64)
    M[0, 0] = q.w
    M[0, 1:] = -v
    M[1:, 0] = v
    M[1:, 1:] = q.w * np.eye(3) + skew(v)
    return M


def right_product_matrix(p: Quaternion) -> np.ndarray:
    """4x4 matrix R(p) with q ⊗ p = R(p) @ q for q as (w, x, y, z)."""
    v = p.vec
    M = np.zeros((4, 4), dtype=np.float64)
    M[0, 0] = p.w
    M[0, 1:] = -v
    M[1:, 0] = v
    M[1:, 1:] = p.w * np.eye(3) - skew(v)
    return M
