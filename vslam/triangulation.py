"""Two-view geometry: epipolar constraint checks and linear triangulation."""

from __future__ import annotations

import numpy as np

from .lie import hat

__all__ = ["pixel2cam", "skew", "epipolar_constraint", "triangulate", "depth_color"]

_UPPER_DEPTH = 50.0
_LOWER_DEPTH = 10.0


def _rotation_translation(R, t):
    rotation = np.asarray(R, dtype=float)
    translation = np.asarray(t, dtype=float).reshape(-1)
    if rotation.shape != (3, 3):
        raise ValueError(f"R must be a 3x3 matrix, got shape {rotation.shape}")
    if translation.shape != (3,):
        raise ValueError(f"t must have 3 elements, got shape {translation.shape}")
    return rotation, translation


def pixel2cam(p, K) -> np.ndarray:
    """Convert a pixel position to normalised camera coordinates."""
    intrinsics = np.asarray(K, dtype=float)
    if intrinsics.shape != (3, 3):
        raise ValueError(f"K must be a 3x3 matrix, got shape {intrinsics.shape}")
    point = np.asarray(p, dtype=float).reshape(-1)
    if point.shape[0] < 2:
        raise ValueError("p must have at least two coordinates")
    return np.array(
        [
            (point[0] - intrinsics[0, 2]) / intrinsics[0, 0],
            (point[1] - intrinsics[1, 2]) / intrinsics[1, 1],
        ]
    )


def skew(t) -> np.ndarray:
    """Cross-product matrix of a translation vector, ``t^``."""
    return hat(np.asarray(t, dtype=float).reshape(-1))


def epipolar_constraint(p1, p2, R, t, K) -> float:
    """Value of ``y2^T t^ R y1`` for a pixel match; zero for a perfect match."""
    rotation, translation = _rotation_translation(R, t)
    n1 = pixel2cam(p1, K)
    n2 = pixel2cam(p2, K)
    y1 = np.array([n1[0], n1[1], 1.0])
    y2 = np.array([n2[0], n2[1], 1.0])
    return float(y2 @ skew(translation) @ rotation @ y1)


def triangulate(points1, points2, R, t, K) -> np.ndarray:
    """Triangulate pixel matches seen from ``[I|0]`` and ``[R|t]``.

    Returns the points in the first camera's frame, one row per match.
    """
    rotation, translation = _rotation_translation(R, t)
    pts1 = np.asarray(points1, dtype=float).reshape(-1, 2)
    pts2 = np.asarray(points2, dtype=float).reshape(-1, 2)
    if len(pts1) != len(pts2):
        raise ValueError("points1 and points2 must have the same length")

    proj1 = np.hstack([np.eye(3), np.zeros((3, 1))])
    proj2 = np.hstack([rotation, translation.reshape(3, 1)])

    result = []
    for p1, p2 in zip(pts1, pts2):
        x1, y1 = pixel2cam(p1, K)
        x2, y2 = pixel2cam(p2, K)
        a = np.array(
            [
                x1 * proj1[2] - proj1[0],
                y1 * proj1[2] - proj1[1],
                x2 * proj2[2] - proj2[0],
                y2 * proj2[2] - proj2[1],
            ]
        )
        _, _, vt = np.linalg.svd(a)
        homogeneous = vt[-1]
        result.append(homogeneous[:3] / homogeneous[3])
    return np.array(result, dtype=float).reshape(-1, 3)


def depth_color(depth) -> tuple[float, float, float]:
    """BGR colour for plotting a depth, clamped to the range [10, 50]."""
    th_range = _UPPER_DEPTH - _LOWER_DEPTH
    d = min(max(float(depth), _LOWER_DEPTH), _UPPER_DEPTH)
    return (255.0 * d / th_range, 0.0, 255.0 * (1.0 - d / th_range))