"""Bundle adjustment of BAL problems with a robust sparse least-squares solver."""

from __future__ import annotations

import sys
import sys as _sys

import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from .bal import BALProblem
from .lie import so3_exp, so3_log

_EPSILON = _sys.float_info.epsilon
_CAMERA_SIZE = 9


class PoseAndIntrinsics:
    """Camera rotation, translation, focal length and radial distortion."""

    def __init__(self, rotation=None, translation=None, focal=0.0, k1=0.0, k2=0.0):
        self.rotation = np.eye(3) if rotation is None else np.asarray(rotation, dtype=float).copy()
        if self.rotation.shape != (3, 3):
            raise ValueError(f"rotation must be a 3x3 matrix, got shape {self.rotation.shape}")
        self.translation = (
            np.zeros(3) if translation is None else np.asarray(translation, dtype=float).reshape(3).copy()
        )
        self.focal = float(focal)
        self.k1 = float(k1)
        self.k2 = float(k2)

    @classmethod
    def from_camera(cls, camera) -> "PoseAndIntrinsics":
        """Build from a 9-parameter camera block (angle-axis, t, f, k1, k2)."""
        c = np.asarray(camera, dtype=float)
        if c.shape != (_CAMERA_SIZE,):
            raise ValueError(f"camera must have 9 parameters, got shape {c.shape}")
        return cls(so3_exp(c[:3]), c[3:6], c[6], c[7], c[8])

    def to_array(self) -> np.ndarray:
        """The 9-parameter camera block of this estimate."""
        return np.concatenate(
            [so3_log(self.rotation), self.translation, [self.focal, self.k1, self.k2]]
        )

    def project(self, point) -> np.ndarray:
        """Project a 3D point with this camera's pose and distortion."""
        pc = self.rotation @ np.asarray(point, dtype=float).reshape(3) + self.translation
        pc = -pc / pc[2]
        r2 = float(pc @ pc)
        distortion = 1.0 + r2 * (self.k1 + self.k2 * r2)
        return np.array([self.focal * distortion * pc[0], self.focal * distortion * pc[1]])


def _rotate(angle_axis: np.ndarray, points: np.ndarray) -> np.ndarray:
    theta2 = np.einsum("ij,ij->i", angle_axis, angle_axis)
    large = theta2 > _EPSILON
    theta = np.sqrt(np.where(large, theta2, 1.0))
    w = angle_axis / theta[:, None]
    cos_t = np.cos(theta)[:, None]
    sin_t = np.sin(theta)[:, None]
    tmp = np.einsum("ij,ij->i", w, points)[:, None] * (1.0 - cos_t)
    rotated_large = points * cos_t + np.cross(w, points) * sin_t + w * tmp
    rotated_small = points + np.cross(angle_axis, points)
    return np.where(large[:, None], rotated_large, rotated_small)


def _predict(cameras: np.ndarray, points: np.ndarray) -> np.ndarray:
    p = _rotate(cameras[:, :3], points) + cameras[:, 3:6]
    xp = -p[:, 0] / p[:, 2]
    yp = -p[:, 1] / p[:, 2]
    r2 = xp * xp + yp * yp
    distortion = 1.0 + r2 * (cameras[:, 7] + cameras[:, 8] * r2)
    focal = cameras[:, 6]
    return np.column_stack([focal * distortion * xp, focal * distortion * yp])


def _sparsity(num_cameras, num_points, camera_index, point_index):
    n_obs = len(camera_index)
    structure = lil_matrix(
        (2 * n_obs, _CAMERA_SIZE * num_cameras + 3 * num_points), dtype=int
    )
    for i, (ci, pi) in enumerate(zip(camera_index, point_index)):
        rows = slice(2 * i, 2 * i + 2)
        structure[rows, _CAMERA_SIZE * ci:_CAMERA_SIZE * (ci + 1)] = 1
        start = _CAMERA_SIZE * num_cameras + 3 * pi
        structure[rows, start:start + 3] = 1
    return structure


def solve_ba(problem: BALProblem, max_iterations=50):
    """Minimise the Huber-robust reprojection error of ``problem`` in place.

    Returns the solver's result object.
    """
    if problem.use_quaternions:
        raise ValueError("bundle adjustment needs angle-axis cameras")
    if problem.num_observations == 0:
        raise ValueError("the problem has no observations")

    num_cameras = problem.num_cameras
    num_points = problem.num_points
    camera_index = problem.camera_index
    point_index = problem.point_index
    observations = problem.observations
    split = _CAMERA_SIZE * num_cameras

    def residuals(x):
        cameras = x[:split].reshape(num_cameras, _CAMERA_SIZE)
        points = x[split:].reshape(num_points, 3)
        predicted = _predict(cameras[camera_index], points[point_index])
        return (predicted - observations).ravel()

    print("bal problem have %d cameras and %d points." % (num_cameras, num_points))
    print("Forming %d observations." % problem.num_observations)

    result = least_squares(
        residuals,
        problem.parameters.copy(),
        jac_sparsity=_sparsity(num_cameras, num_points, camera_index, point_index),
        loss="huber",
        f_scale=1.0,
        method="trf",
        x_scale="jac",
        max_nfev=max_iterations,
    )
    problem.parameters[:] = result.x
    return result


def main(argv=None) -> int:
    """Load a BAL file, perturb it, solve it, and write initial and final PLY clouds."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("usage: bundle_adjustment bal_data.txt")
        return 1

    problem = BALProblem(args[0])
    problem.normalize()
    problem.perturb(0.1, 0.5, 0.5)
    problem.write_to_ply_file("initial.ply")
    result = solve_ba(problem)
    print("final cost: %g, status: %s" % (result.cost, result.message))
    problem.write_to_ply_file("final.ply")
    return 0