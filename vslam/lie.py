"""Rigid-body rotations and transforms: SO(3) and SE(3) exponential maps."""

from __future__ import annotations

import math

import numpy as np

from .rotation import quaternion_to_angle_axis

_SMALL_ANGLE = 1e-10


def _vector(values, size: int, name: str) -> np.ndarray:
    array = np.asarray(values, dtype=float)
    if array.shape != (size,):
        raise ValueError(f"{name} must have exactly {size} elements, got shape {array.shape}")
    return array


def _matrix3(values, name: str) -> np.ndarray:
    array = np.asarray(values, dtype=float)
    if array.shape != (3, 3):
        raise ValueError(f"{name} must be a 3x3 matrix, got shape {array.shape}")
    return array


def hat(v) -> np.ndarray:
    """Skew-symmetric matrix of a 3-vector, so that ``hat(v) @ w == v x w``."""
    x, y, z = _vector(v, 3, "v")
    return np.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ]
    )


def _rotation_coefficients(theta: float) -> tuple[float, float]:
    """Return sin(t)/t and (1 - cos(t))/t^2, with Taylor series near zero."""
    if theta < 1e-4:
        theta2 = theta * theta
        return 1.0 - theta2 / 6.0, 0.5 - theta2 / 24.0
    return math.sin(theta) / theta, (1.0 - math.cos(theta)) / (theta * theta)


def so3_exp(omega) -> np.ndarray:
    """Rotation matrix of a rotation vector (Rodrigues' formula)."""
    w = _vector(omega, 3, "omega")
    theta = float(np.linalg.norm(w))
    a, b = _rotation_coefficients(theta)
    w_hat = hat(w)
    return np.eye(3) + a * w_hat + b * (w_hat @ w_hat)


def _matrix_to_quaternion(r: np.ndarray) -> np.ndarray:
    trace = r[0, 0] + r[1, 1] + r[2, 2]
    if trace > 0.0:
        s = math.sqrt(trace + 1.0) * 2.0
        q = [0.25 * s, (r[2, 1] - r[1, 2]) / s, (r[0, 2] - r[2, 0]) / s, (r[1, 0] - r[0, 1]) / s]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = math.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2]) * 2.0
        q = [(r[2, 1] - r[1, 2]) / s, 0.25 * s, (r[0, 1] + r[1, 0]) / s, (r[0, 2] + r[2, 0]) / s]
    elif r[1, 1] > r[2, 2]:
        s = math.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2]) * 2.0
        q = [(r[0, 2] - r[2, 0]) / s, (r[0, 1] + r[1, 0]) / s, 0.25 * s, (r[1, 2] + r[2, 1]) / s]
    else:
        s = math.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1]) * 2.0
        q = [(r[1, 0] - r[0, 1]) / s, (r[0, 2] + r[2, 0]) / s, (r[1, 2] + r[2, 1]) / s, 0.25 * s]
    quaternion = np.array(q)
    return quaternion / np.linalg.norm(quaternion)


def so3_log(rotation) -> np.ndarray:
    """Rotation vector of a rotation matrix, the inverse of :func:`so3_exp`."""
    r = _matrix3(rotation, "rotation")
    return quaternion_to_angle_axis(_matrix_to_quaternion(r))


def _left_jacobian(phi: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(phi))
    phi_hat = hat(phi)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + 0.5 * phi_hat
    theta2 = theta * theta
    return (
        np.eye(3)
        + (1.0 - math.cos(theta)) / theta2 * phi_hat
        + (theta - math.sin(theta)) / (theta2 * theta) * (phi_hat @ phi_hat)
    )


class SE3:
    """A rigid transform made of a rotation matrix and a translation vector."""

    __slots__ = ("rotation", "translation")

    def __init__(self, rotation=None, translation=None):
        self.rotation = np.eye(3) if rotation is None else _matrix3(rotation, "rotation").copy()
        self.translation = (
            np.zeros(3) if translation is None else _vector(translation, 3, "translation").copy()
        )

    def act(self, point) -> np.ndarray:
        """Transform a 3D point: ``R p + t``."""
        return self.rotation @ _vector(point, 3, "point") + self.translation

    def compose(self, other: "SE3") -> "SE3":
        """Return ``self * other``: apply ``other`` first, then ``self``."""
        return SE3(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def matrix(self) -> np.ndarray:
        """The 4x4 homogeneous matrix of the transform."""
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def inverse(self) -> "SE3":
        rotation_t = self.rotation.T
        return SE3(rotation_t, -rotation_t @ self.translation)

    def __repr__(self) -> str:
        return f"SE3(rotation={self.rotation.tolist()}, translation={self.translation.tolist()})"


def se3_exp(xi) -> SE3:
    """Exponential map of a twist ``(rho, phi)``: translation part first, rotation last."""
    twist = _vector(xi, 6, "xi")
    rho, phi = twist[:3], twist[3:]
    return SE3(so3_exp(phi), _left_jacobian(phi) @ rho)