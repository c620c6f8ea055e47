"""Lucas-Kanade optical flow by Gauss-Newton, single level and coarse-to-fine."""

from __future__ import annotations

import logging
import time

import numpy as np

from .imaging import _as_image, _interpolate, build_pyramid
from .orb import KeyPoint

log = logging.getLogger(__name__)

HALF_PATCH_SIZE = 4
ITERATIONS = 10
PYRAMID_LEVELS = 4
PYRAMID_SCALE = 0.5

_OFFSETS_X, _OFFSETS_Y = (
    grid.ravel().astype(float)
    for grid in np.meshgrid(
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE),
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE),
        indexing="ij",
    )
)


def _gradient(image: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """Negated central-difference gradient, one row per sample."""
    gx = 0.5 * (_interpolate(image, xs + 1, ys) - _interpolate(image, xs - 1, ys))
    gy = 0.5 * (_interpolate(image, xs, ys + 1) - _interpolate(image, xs, ys - 1))
    return -np.column_stack([gx, gy])


def _solve(h: np.ndarray, b: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.solve(h, b)
    except np.linalg.LinAlgError:
        return np.full(b.shape, np.nan)


def _track(img1, img2, kx, ky, dx, dy, inverse):
    px = kx + _OFFSETS_X
    py = ky + _OFFSETS_Y
    reference = _interpolate(img1, px, py)

    if inverse:
        # The template gradient does not depend on (dx, dy), so compute it once.
        jac = _gradient(img1, px, py)
        hessian = jac.T @ jac

    last_cost = 0.0
    success = True
    for iteration in range(ITERATIONS):
        qx = px + dx
        qy = py + dy
        error = reference - _interpolate(img2, qx, qy)
        if not inverse:
            jac = _gradient(img2, qx, qy)
            hessian = jac.T @ jac
        b = -(jac.T @ error)
        cost = float(error @ error)

        update = _solve(hessian, b)
        if np.isnan(update[0]):
            log.debug("update is nan")
            success = False
            break
        if iteration > 0 and cost > last_cost:
            break

        dx += float(update[0])
        dy += float(update[1])
        last_cost = cost
        success = True
        if np.linalg.norm(update) < 1e-2:
            break
    return dx, dy, success


def optical_flow_single_level(img1, img2, kp1, kp2=None, inverse=False, has_initial=False):
    """Track ``kp1`` from ``img1`` into ``img2`` on one image level.

    With ``has_initial`` the positions in ``kp2`` are the starting guesses.
    Returns the tracked keypoints and, for each, whether tracking succeeded.
    """
    image1 = _as_image(img1).astype(float, copy=False)
    image2 = _as_image(img2).astype(float, copy=False)
    kp1 = list(kp1)
    if has_initial:
        if kp2 is None or len(kp2) != len(kp1):
            raise ValueError("an initial guess needs one kp2 entry per kp1 entry")
        guesses = list(kp2)

    tracked = []
    success = []
    for i, kp in enumerate(kp1):
        dx = dy = 0.0
        if has_initial:
            dx = guesses[i].x - kp.x
            dy = guesses[i].y - kp.y
        dx, dy, ok = _track(image1, image2, kp.x, kp.y, dx, dy, inverse)
        tracked.append(KeyPoint(kp.x + dx, kp.y + dy))
        success.append(ok)
    return tracked, success


def optical_flow_multi_level(img1, img2, kp1, inverse=False):
    """Coarse-to-fine tracking over a four-level pyramid with scale 0.5."""
    start = time.perf_counter()
    pyr1 = build_pyramid(img1, PYRAMID_LEVELS, PYRAMID_SCALE)
    pyr2 = build_pyramid(img2, PYRAMID_LEVELS, PYRAMID_SCALE)
    log.debug("build pyramid time: %f", time.perf_counter() - start)

    top_scale = PYRAMID_SCALE ** (PYRAMID_LEVELS - 1)
    kp1_pyr = [KeyPoint(kp.x * top_scale, kp.y * top_scale) for kp in kp1]
    kp2_pyr = [KeyPoint(kp.x, kp.y) for kp in kp1_pyr]

    success: list = []
    for level in range(PYRAMID_LEVELS - 1, -1, -1):
        start = time.perf_counter()
        kp2_pyr, success = optical_flow_single_level(
            pyr1[level], pyr2[level], kp1_pyr, kp2_pyr, inverse, True
        )
        log.debug("track pyr %d cost time: %f", level, time.perf_counter() - start)
        if level > 0:
            kp1_pyr = [KeyPoint(kp.x / PYRAMID_SCALE, kp.y / PYRAMID_SCALE) for kp in kp1_pyr]
            kp2_pyr = [KeyPoint(kp.x / PYRAMID_SCALE, kp.y / PYRAMID_SCALE) for kp in kp2_pyr]

    return kp2_pyr, success