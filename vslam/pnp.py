"""Camera pose from 3D-2D correspondences by Gauss-Newton bundle adjustment."""

from __future__ import annotations

import logging

import numpy as np

from .lie import SE3, se3_exp

log = logging.getLogger(__name__)


def _intrinsics(K):
    k = np.asarray(K, dtype=float)
    if k.shape != (3, 3):
        raise ValueError(f"K must be a 3x3 matrix, got shape {k.shape}")
    return k[0, 0], k[1, 1], k[0, 2], k[1, 2]


def pixel2cam(p, K) -> np.ndarray:
    """Convert a pixel coordinate to normalised camera coordinates."""
    fx, fy, cx, cy = _intrinsics(K)
    return np.array([(p[0] - cx) / fx, (p[1] - cy) / fy])


def _projection_jacobian(pc: np.ndarray, fx: float, fy: float) -> np.ndarray:
    """Derivative of (observation - projection) with respect to a left pose update."""
    x, y, z = pc
    inv_z = 1.0 / z
    inv_z2 = inv_z * inv_z
    return np.array(
        [
            [
                -fx * inv_z,
                0.0,
                fx * x * inv_z2,
                fx * x * y * inv_z2,
                -fx - fx * x * x * inv_z2,
                fx * y * inv_z,
            ],
            [
                0.0,
                -fy * inv_z,
                fy * y * inv_z2,
                fy + fy * y * y * inv_z2,
                -fy * x * y * inv_z2,
                -fy * x * inv_z,
            ],
        ]
    )


def _solve(h: np.ndarray, b: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.solve(h, b)
    except np.linalg.LinAlgError:
        return np.full(b.shape, np.nan)


def _check_pairs(points_3d, points_2d):
    pts3 = np.asarray(points_3d, dtype=float).reshape(-1, 3)
    pts2 = np.asarray(points_2d, dtype=float).reshape(-1, 2)
    if len(pts3) != len(pts2):
        raise ValueError("points_3d and points_2d must have the same length")
    if len(pts3) == 0:
        raise ValueError("at least one correspondence is required")
    return pts3, pts2


def bundle_adjustment_gauss_newton(points_3d, points_2d, K, pose=None, iterations=10) -> SE3:
    """Refine a camera pose so the 3D points project onto the 2D observations."""
    pts3, pts2 = _check_pairs(points_3d, points_2d)
    fx, fy, cx, cy = _intrinsics(K)
    pose = SE3() if pose is None else pose
    last_cost = 0.0

    for iteration in range(iterations):
        h = np.zeros((6, 6))
        b = np.zeros(6)
        cost = 0.0
        for p3, p2 in zip(pts3, pts2):
            pc = pose.act(p3)
            proj = np.array([fx * pc[0] / pc[2] + cx, fy * pc[1] / pc[2] + cy])
            e = p2 - proj
            cost += float(e @ e)
            j = _projection_jacobian(pc, fx, fy)
            h += j.T @ j
            b += -j.T @ e

        dx = _solve(h, b)
        if np.isnan(dx[0]):
            log.debug("result is nan")
            break
        if iteration > 0 and cost >= last_cost:
            log.debug("cost: %s, last cost: %s", cost, last_cost)
            break

        pose = se3_exp(dx).compose(pose)
        last_cost = cost
        log.debug("iteration %d cost=%.12g", iteration, cost)
        if np.linalg.norm(dx) < 1e-6:
            break

    return pose


class ProjectionEdge:
    """Reprojection residual of one 3D point observed at one pixel."""

    def __init__(self, point, measurement, K):
        self.point = np.asarray(point, dtype=float).reshape(3)
        self.measurement = np.asarray(measurement, dtype=float).reshape(2)
        self.K = np.asarray(K, dtype=float)
        _intrinsics(self.K)

    def error(self, pose: SE3) -> np.ndarray:
        pixel = self.K @ pose.act(self.point)
        pixel = pixel / pixel[2]
        return self.measurement - pixel[:2]

    def jacobian(self, pose: SE3) -> np.ndarray:
        fx, fy, _, _ = _intrinsics(self.K)
        return _projection_jacobian(pose.act(self.point), fx, fy)


def optimize_pose(edges, pose=None, iterations=10) -> SE3:
    """Gauss-Newton optimisation of a single pose over residual edges."""
    edges = list(edges)
    if not edges:
        raise ValueError("at least one edge is required")
    pose = SE3() if pose is None else pose
    for iteration in range(iterations):
        h = np.zeros((6, 6))
        b = np.zeros(6)
        chi2 = 0.0
        for edge in edges:
            e = edge.error(pose)
            j = edge.jacobian(pose)
            chi2 += float(e @ e)
            h += j.T @ j
            b += -j.T @ e
        dx = _solve(h, b)
        if not np.all(np.isfinite(dx)):
            log.debug("linear solve failed at iteration %d", iteration)
            break
        pose = se3_exp(dx).compose(pose)
        log.debug("iteration %d chi2=%.12g", iteration, chi2)
    return pose