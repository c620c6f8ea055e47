"""Direct (photometric) camera pose estimation, single level and coarse-to-fine."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np

from .imaging import build_pyramid
from .lie import SE3, se3_exp

log = logging.getLogger(__name__)

HALF_PATCH_SIZE = 1
ITERATIONS = 10
PYRAMID_LEVELS = 4
PYRAMID_SCALE = 0.5
PYRAMID_SCALES = (1.0, 0.5, 0.25, 0.125)

_PATCH_X, _PATCH_Y = (
    grid.ravel().astype(float)
    for grid in np.meshgrid(
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE + 1),
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE + 1),
        indexing="ij",
    )
)


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole camera intrinsics."""

    fx: float = 718.856
    fy: float = 718.856
    cx: float = 607.1928
    cy: float = 185.2157

    def scaled(self, scale: float) -> "Intrinsics":
        """Intrinsics of the same camera on an image resized by ``scale``."""
        return Intrinsics(self.fx * scale, self.fy * scale, self.cx * scale, self.cy * scale)


def _as_image(img) -> np.ndarray:
    image = np.asarray(img)
    if image.ndim != 2:
        raise ValueError(f"img must be a single-channel 2D array, got shape {image.shape}")
    if image.size == 0:
        raise ValueError("img is empty")
    return image.astype(float, copy=False)


def _sample(image: np.ndarray, xs, ys) -> np.ndarray:
    """Bilinear samples at arrays of positions, positions clamped into the image."""
    rows, cols = image.shape
    x = np.maximum(np.asarray(xs, dtype=float), 0.0)
    y = np.maximum(np.asarray(ys, dtype=float), 0.0)
    x = np.where(x >= cols, float(cols - 1), x)
    y = np.where(y >= rows, float(rows - 1), y)

    x0 = np.floor(x)
    y0 = np.floor(y)
    xx = x - x0
    yy = y - y0
    xi = x0.astype(np.int64)
    yi = y0.astype(np.int64)
    xa = np.minimum(xi + 1, cols - 1)
    ya = np.minimum(yi + 1, rows - 1)

    return (
        (1 - xx) * (1 - yy) * image[yi, xi]
        + xx * (1 - yy) * image[yi, xa]
        + (1 - xx) * yy * image[ya, xi]
        + xx * yy * image[ya, xa]
    )


def interpolate_pixel(img, x, y) -> float:
    """Bilinearly interpolated grey value of ``img`` at ``(x, y)``, clamped to the image."""
    return float(_sample(_as_image(img), x, y))


def _solve(h: np.ndarray, b: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.solve(h, b)
    except np.linalg.LinAlgError:
        return np.linalg.lstsq(h, b, rcond=None)[0]


class JacobianAccumulator:
    """Accumulates the photometric Gauss-Newton system for a pose estimate."""

    def __init__(self, img1, img2, px_ref, depth_ref, T21=None, intrinsics=None):
        self.img1 = _as_image(img1)
        self.img2 = _as_image(img2)
        self.px_ref = np.asarray(px_ref, dtype=float).reshape(-1, 2)
        self.depth_ref = np.asarray(depth_ref, dtype=float).reshape(-1)
        if len(self.px_ref) != len(self.depth_ref):
            raise ValueError("px_ref and depth_ref must have the same length")
        self.T21 = SE3() if T21 is None else T21
        self.intrinsics = Intrinsics() if intrinsics is None else intrinsics
        self.projection = np.zeros((len(self.px_ref), 2))
        self.reset()

    @property
    def projected_points(self) -> np.ndarray:
        return self.projection.copy()

    def reset(self) -> None:
        """Zero the Hessian, the bias and the cost."""
        self.hessian = np.zeros((6, 6))
        self.bias = np.zeros(6)
        self.cost = 0.0

    def accumulate(self, start=0, end=None) -> None:
        """Add the contributions of reference points ``start`` to ``end``."""
        end = len(self.px_ref) if end is None else end
        if not 0 <= start <= end <= len(self.px_ref):
            raise ValueError(f"invalid range [{start}, {end}) for {len(self.px_ref)} points")
        k = self.intrinsics
        px = self.px_ref[start:end]
        depth = self.depth_ref[start:end]
        if len(px) == 0:
            return

        point_ref = depth[:, None] * np.column_stack(
            [(px[:, 0] - k.cx) / k.fx, (px[:, 1] - k.cy) / k.fy, np.ones(len(px))]
        )
        point_cur = point_ref @ self.T21.rotation.T + self.T21.translation
        in_front = point_cur[:, 2] >= 0

        rows, cols = self.img2.shape
        with np.errstate(divide="ignore", invalid="ignore"):
            u = k.fx * point_cur[:, 0] / point_cur[:, 2] + k.cx
            v = k.fy * point_cur[:, 1] / point_cur[:, 2] + k.cy
        outside = (
            (u < HALF_PATCH_SIZE)
            | (u > cols - HALF_PATCH_SIZE)
            | (v < HALF_PATCH_SIZE)
            | (v > rows - HALF_PATCH_SIZE)
        )
        good = np.flatnonzero(in_front & ~outside)
        if len(good) == 0:
            return

        self.projection[start + good] = np.column_stack([u[good], v[good]])

        X, Y, Z = point_cur[good].T
        u, v = u[good], v[good]
        ref = px[good]
        z_inv = 1.0 / Z
        z2_inv = z_inv * z_inv
        zero = np.zeros_like(Z)
        j_pixel = np.stack(
            [
                np.column_stack(
                    [k.fx * z_inv, zero, -k.fx * X * z2_inv, -k.fx * X * Y * z2_inv,
                     k.fx + k.fx * X * X * z2_inv, -k.fx * Y * z_inv]
                ),
                np.column_stack(
                    [zero, k.fy * z_inv, -k.fy * Y * z2_inv, -k.fy - k.fy * Y * Y * z2_inv,
                     k.fy * X * Y * z2_inv, k.fy * X * z_inv]
                ),
            ],
            axis=1,
        )

        rx = ref[:, 0:1] + _PATCH_X
        ry = ref[:, 1:2] + _PATCH_Y
        cx = u[:, None] + _PATCH_X
        cy = v[:, None] + _PATCH_Y
        error = _sample(self.img1, rx, ry) - _sample(self.img2, cx, cy)
        gx = 0.5 * (_sample(self.img2, cx + 1, cy) - _sample(self.img2, cx - 1, cy))
        gy = 0.5 * (_sample(self.img2, cx, cy + 1) - _sample(self.img2, cx, cy - 1))

        jac = -(gx[:, :, None] * j_pixel[:, None, 0, :] + gy[:, :, None] * j_pixel[:, None, 1, :])

        self.hessian += np.einsum("gki,gkj->ij", jac, jac)
        self.bias += -np.einsum("gk,gki->i", error, jac)
        self.cost += float((error * error).sum()) / len(good)


def direct_pose_estimation_single_layer(
    img1, img2, px_ref, depth_ref, T21=None, intrinsics=None
) -> SE3:
    """Estimate the pose of ``img2`` relative to ``img1`` on one image level."""
    start = time.perf_counter()
    accumulator = JacobianAccumulator(img1, img2, px_ref, depth_ref, T21, intrinsics)
    last_cost = 0.0
    for iteration in range(ITERATIONS):
        accumulator.reset()
        accumulator.accumulate(0, len(accumulator.px_ref))
        update = _solve(accumulator.hessian, accumulator.bias)
        if np.isnan(update[0]):
            log.debug("update is nan")
            break
        accumulator.T21 = se3_exp(update).compose(accumulator.T21)
        cost = accumulator.cost
        if iteration > 0 and cost > last_cost:
            log.debug("cost increased: %s, %s", cost, last_cost)
            break
        if np.linalg.norm(update) < 1e-3:
            break
        last_cost = cost
        log.debug("iteration: %d, cost: %s", iteration, cost)

    log.debug("T21 = %s", accumulator.T21.matrix())
    log.debug("direct method for single layer: %f", time.perf_counter() - start)
    return accumulator.T21


def direct_pose_estimation_multi_layer(
    img1, img2, px_ref, depth_ref, T21=None, intrinsics=None
) -> SE3:
    """Coarse-to-fine direct pose estimation over a four-level pyramid."""
    intrinsics = Intrinsics() if intrinsics is None else intrinsics
    pose = SE3() if T21 is None else T21
    px = np.asarray(px_ref, dtype=float).reshape(-1, 2)
    pyr1 = build_pyramid(_as_image(img1), PYRAMID_LEVELS, PYRAMID_SCALE)
    pyr2 = build_pyramid(_as_image(img2), PYRAMID_LEVELS, PYRAMID_SCALE)

    for level in range(PYRAMID_LEVELS - 1, -1, -1):
        scale = PYRAMID_SCALES[level]
        pose = direct_pose_estimation_single_layer(
            pyr1[level], pyr2[level], scale * px, depth_ref, pose, intrinsics.scaled(scale)
        )
    return pose