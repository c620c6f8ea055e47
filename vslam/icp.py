"""Rigid alignment of matched 3D point sets: SVD closed form and iterative refinement."""

from __future__ import annotations

import logging

import numpy as np

from .lie import SE3, hat, se3_exp

log = logging.getLogger(__name__)


def _point_sets(pts1, pts2):
    a = np.asarray(pts1, dtype=float).reshape(-1, 3)
    b = np.asarray(pts2, dtype=float).reshape(-1, 3)
    if len(a) != len(b):
        raise ValueError("pts1 and pts2 must have the same length")
    if len(a) == 0:
        raise ValueError("at least one point pair is required")
    return a, b


def pose_estimation_3d3d(pts1, pts2):
    """Return ``(R, t)`` such that ``pts1 ~ R @ pts2 + t``, by SVD of the cross covariance."""
    a, b = _point_sets(pts1, pts2)
    c1 = a.mean(axis=0)
    c2 = b.mean(axis=0)
    q1 = a - c1
    q2 = b - c2

    w = q1.T @ q2
    log.debug("W=%s", w)
    u, _, vt = np.linalg.svd(w)
    rotation = u @ vt
    if np.linalg.det(rotation) < 0:
        rotation = -rotation
    translation = c1 - rotation @ c2
    return rotation, translation


class PointEdge:
    """Residual between a measured point and a transformed model point."""

    def __init__(self, point, measurement):
        self.point = np.asarray(point, dtype=float).reshape(3)
        self.measurement = np.asarray(measurement, dtype=float).reshape(3)

    def error(self, pose: SE3) -> np.ndarray:
        return self.measurement - pose.act(self.point)

    def jacobian(self, pose: SE3) -> np.ndarray:
        transformed = pose.act(self.point)
        j = np.zeros((3, 6))
        j[:, :3] = -np.eye(3)
        j[:, 3:] = hat(transformed)
        return j


def _linearize(edges, pose):
    h = np.zeros((6, 6))
    b = np.zeros(6)
    chi2 = 0.0
    for edge in edges:
        e = edge.error(pose)
        j = edge.jacobian(pose)
        chi2 += float(e @ e)
        h += j.T @ j
        b += -j.T @ e
    return h, b, chi2


def _chi2(edges, pose) -> float:
    return sum(float(e @ e) for e in (edge.error(pose) for edge in edges))


def _levenberg_marquardt(edges, pose: SE3, iterations: int) -> SE3:
    lam = None
    nu = 2.0
    for iteration in range(iterations):
        h, b, chi2 = _linearize(edges, pose)
        if lam is None:
            lam = 1e-5 * max(float(np.max(np.diag(h))), 1e-12)
        accepted = False
        for _ in range(10):
            try:
                dx = np.linalg.solve(h + lam * np.eye(6), b)
            except np.linalg.LinAlgError:
                dx = None
            if dx is not None and np.all(np.isfinite(dx)):
                candidate = se3_exp(dx).compose(pose)
                new_chi2 = _chi2(edges, candidate)
                denominator = float(dx @ (lam * dx + b))
                rho = (chi2 - new_chi2) / denominator if denominator > 0 else -1.0
                if rho > 0 and np.isfinite(new_chi2):
                    pose = candidate
                    lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                    nu = 2.0
                    accepted = True
                    break
            lam *= nu
            nu *= 2.0
        log.debug("iteration %d chi2=%.12g lambda=%g", iteration, chi2, lam)
        if not accepted:
            break
    return pose


def bundle_adjustment(pts1, pts2, iterations=10):
    """Refine ``(R, t)`` with ``pts1 ~ R @ pts2 + t`` by Levenberg-Marquardt from identity."""
    a, b = _point_sets(pts1, pts2)
    edges = [PointEdge(p2, p1) for p1, p2 in zip(a, b)]
    pose = _levenberg_marquardt(edges, SE3(), iterations)
    log.debug("T=%s", pose.matrix())
    return pose.rotation, pose.translation