"""Grey-scale image sampling, resizing and image pyramids."""

from __future__ import annotations

import numpy as np


def _as_image(img) -> np.ndarray:
    image = np.asarray(img)
    if image.ndim != 2:
        raise ValueError(f"img must be a single-channel 2D array, got shape {image.shape}")
    rows, cols = image.shape
    if rows < 2 or cols < 2:
        raise ValueError(f"img must be at least 2x2 pixels, got {cols}x{rows}")
    return image


def _interpolate(image: np.ndarray, xs, ys) -> np.ndarray:
    """Bilinear samples of ``image`` at arrays of positions, clamped to the border."""
    rows, cols = image.shape
    x = np.maximum(np.asarray(xs, dtype=float), 0.0)
    y = np.maximum(np.asarray(ys, dtype=float), 0.0)
    x = np.where(x >= cols - 1, float(cols - 2), x)
    y = np.where(y >= rows - 1, float(rows - 2), y)

    x0 = np.floor(x)
    y0 = np.floor(y)
    xx = x - x0
    yy = y - y0
    xi = x0.astype(np.int64)
    yi = y0.astype(np.int64)
    xa = np.minimum(cols - 1, xi + 1)
    ya = np.minimum(rows - 1, yi + 1)

    return (
        (1 - xx) * (1 - yy) * image[yi, xi]
        + xx * (1 - yy) * image[yi, xa]
        + (1 - xx) * yy * image[ya, xi]
        + xx * yy * image[ya, xa]
    )


def get_pixel_value(img, x, y) -> float:
    """Bilinearly interpolated grey value of ``img`` at ``(x, y)``.

    Positions outside the image are clamped to its border.
    """
    image = _as_image(img).astype(float, copy=False)
    return float(_interpolate(image, x, y))


def _axis_map(src_size: int, dst_size: int):
    scale = src_size / dst_size
    f = (np.arange(dst_size) + 0.5) * scale - 0.5
    s = np.floor(f)
    f = f - s
    s = s.astype(np.int64)
    low = s < 0
    f[low] = 0.0
    s[low] = 0
    high = s >= src_size - 1
    f[high] = 0.0
    s[high] = src_size - 1
    s1 = np.minimum(s + 1, src_size - 1)
    return s, s1, f


def resize(img, width, height) -> np.ndarray:
    """Resize ``img`` to ``width`` x ``height`` by bilinear interpolation.

    Pixel centres are aligned the usual way (half-pixel offset). Integer
    images are rounded back to their own type.
    """
    image = np.asarray(img)
    if image.ndim != 2:
        raise ValueError(f"img must be a single-channel 2D array, got shape {image.shape}")
    width = int(width)
    height = int(height)
    if width <= 0 or height <= 0:
        raise ValueError(f"target size must be positive, got {width}x{height}")
    if image.size == 0:
        raise ValueError("img is empty")

    src = image.astype(float)
    x0, x1, fx = _axis_map(src.shape[1], width)
    y0, y1, fy = _axis_map(src.shape[0], height)

    horizontal_top = src[y0][:, x0] * (1 - fx) + src[y0][:, x1] * fx
    horizontal_bottom = src[y1][:, x0] * (1 - fx) + src[y1][:, x1] * fx
    result = horizontal_top * (1 - fy)[:, None] + horizontal_bottom * fy[:, None]

    if np.issubdtype(image.dtype, np.integer):
        info = np.iinfo(image.dtype)
        return np.clip(np.rint(result), info.min, info.max).astype(image.dtype)
    return result.astype(image.dtype, copy=False)


def build_pyramid(img, levels=4, scale=0.5) -> list:
    """Image pyramid: the image itself, then each level resized by ``scale``."""
    if levels < 1:
        raise ValueError("a pyramid needs at least one level")
    if not 0.0 < scale <= 1.0:
        raise ValueError("scale must be in (0, 1]")
    image = np.asarray(img)
    pyramid = [image]
    for _ in range(1, levels):
        previous = pyramid[-1]
        rows, cols = previous.shape
        pyramid.append(resize(previous, int(cols * scale), int(rows * scale)))
    return pyramid