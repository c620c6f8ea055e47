"""Oriented BRIEF descriptors, brute-force Hamming matching and match filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

log = logging.getLogger(__name__)

HALF_PATCH_SIZE = 8
HALF_BOUNDARY = 16
DESCRIPTOR_WORDS = 8
BITS_PER_WORD = 32
MATCH_DISTANCE_LIMIT = 40
FILTER_FLOOR = 30.0

Descriptor = Optional[tuple]

# Point pairs (px, py, qx, qy) sampled around a keypoint, one pair per descriptor bit.
_ORB_PATTERN = (
    (8, -3, 9, 5), (4, 2, 7, -12), (-11, 9, -8, 2), (7, -12, 12, -13),
    (2, -13, 2, 12), (1, -7, 1, 6), (-2, -10, -2, -4), (-13, -13, -11, -8),
    (-13, -3, -12, -9), (10, 4, 11, 9), (-13, -8, -8, -9), (-11, 7, -9, 12),
    (7, 7, 12, 6), (-4, -5, -3, 0), (-13, 2, -12, -3), (-9, 0, -7, 5),
    (12, -6, 12, -1), (-3, 6, -2, 12), (-6, -13, -4, -8), (11, -13, 12, -8),
    (4, 7, 5, 1), (5, -3, 10, -3), (3, -7, 6, 12), (-8, -7, -6, -2),
    (-2, 11, -1, -10), (-13, 12, -8, 10), (-7, 3, -5, -3), (-4, 2, -3, 7),
    (-10, -12, -6, 11), (5, -12, 6, -7), (5, -6, 7, -1), (1, 0, 4, -5),
    (9, 11, 11, -13), (4, 7, 4, 12), (2, -1, 4, 4), (-4, -12, -2, 7),
    (-8, -5, -7, -10), (4, 11, 9, 12), (0, -8, 1, -13), (-13, -2, -8, 2),
    (-3, -2, -2, 3), (-6, 9, -4, -9), (8, 12, 10, 7), (0, 9, 1, 3),
    (7, -5, 11, -10), (-13, -6, -11, 0), (10, 7, 12, 1), (-6, -3, -6, 12),
    (10, -9, 12, -4), (-13, 8, -8, -12), (-13, 0, -8, -4), (3, 3, 7, 8),
    (5, 7, 10, -7), (-1, 7, 1, -12), (3, -10, 5, 6), (2, -4, 3, -10),
    (-13, 0, -13, 5), (-13, -7, -12, 12), (-13, 3, -11, 8), (-7, 12, -4, 7),
    (6, -10, 12, 8), (-9, -1, -7, -6), (-2, -5, 0, 12), (-12, 5, -7, 5),
    (3, -10, 8, -13), (-7, -7, -4, 5), (-3, -2, -1, -7), (2, 9, 5, -11),
    (-11, -13, -5, -13), (-1, 6, 0, -1), (5, -3, 5, 2), (-4, -13, -4, 12),
    (-9, -6, -9, 6), (-12, -10, -8, -4), (10, 2, 12, -3), (7, 12, 12, 12),
    (-7, -13, -6, 5), (-4, 9, -3, 4), (7, -1, 12, 2), (-7, 6, -5, 1),
    (-13, 11, -12, 5), (-3, 7, -2, -6), (7, -8, 12, -7), (-13, -7, -11, -12),
    (1, -3, 12, 12), (2, -6, 3, 0), (-4, 3, -2, -13), (-1, -13, 1, 9),
    (7, 1, 8, -6), (1, -1, 3, 12), (9, 1, 12, 6), (-1, -9, -1, 3),
    (-13, -13, -10, 5), (7, 7, 10, 12), (12, -5, 12, 9), (6, 3, 7, 11),
    (5, -13, 6, 10), (2, -12, 2, 3), (3, 8, 4, -6), (2, 6, 12, -13),
    (9, -12, 10, 3), (-8, 4, -7, 9), (-11, 12, -4, -6), (1, 12, 2, -8),
    (6, -9, 7, -4), (2, 3, 3, -2), (6, 3, 11, 0), (3, -3, 8, -8),
    (7, 8, 9, 3), (-11, -5, -6, -4), (-10, 11, -5, 10), (-5, -8, -3, 12),
    (-10, 5, -9, 0), (8, -1, 12, -6), (4, -6, 6, -11), (-10, 12, -8, 7),
    (4, -2, 6, 7), (-2, 0, -2, 12), (-5, -8, -5, 2), (7, -6, 10, 12),
    (-9, -13, -8, -8), (-5, -13, -5, -2), (8, -8, 9, -13), (-9, -11, -9, 0),
    (1, -8, 1, -2), (7, -4, 9, 1), (-2, 1, -1, -4), (11, -6, 12, -11),
    (-12, -9, -6, 4), (3, 7, 7, 12), (5, 5, 10, 8), (0, -4, 2, 8),
    (-9, 12, -5, -13), (0, 7, 2, 12), (-1, 2, 1, 7), (5, 11, 7, -9),
    (3, 5, 6, -8), (-13, -4, -8, 9), (-5, 9, -3, -3), (-4, -7, -3, -12),
    (6, 5, 8, 0), (-7, 6, -6, 12), (-13, 6, -5, -2), (1, -10, 3, 10),
    (4, 1, 8, -4), (-2, -2, 2, -13), (2, -12, 12, 12), (-2, -13, 0, -6),
    (4, 1, 9, 3), (-6, -10, -3, -5), (-3, -13, -1, 1), (7, 5, 12, -11),
    (4, -2, 5, -7), (-13, 9, -9, -5), (7, 1, 8, 6), (7, -8, 7, 6),
    (-7, -4, -7, 1), (-8, 11, -7, -8), (-13, 6, -12, -8), (2, 4, 3, 9),
    (10, -5, 12, 3), (-6, -5, -6, 7), (8, -3, 9, -8), (2, -12, 2, 8),
    (-11, -2, -10, 3), (-12, -13, -7, -9), (-11, 0, -10, -5), (5, -3, 11, 8),
    (-2, -13, -1, 12), (-1, -8, 0, 9), (-13, -11, -12, -5), (-10, -2, -10, 11),
    (-3, 9, -2, -13), (2, -3, 3, 2), (-9, -13, -4, 0), (-4, 6, -3, -10),
    (-4, 12, -2, -7), (-6, -11, -4, 9), (6, -3, 6, 11), (-13, 11, -5, 5),
    (11, 11, 12, 6), (7, -5, 12, -2), (-1, 12, 0, 7), (-4, -8, -3, -2),
    (-7, 1, -6, 7), (-13, -12, -8, -13), (-7, -2, -6, -8), (-8, 5, -6, -9),
    (-5, -1, -4, 5), (-13, 7, -8, 10), (1, 5, 5, -13), (1, 0, 10, -13),
    (9, 12, 10, -1), (5, -8, 10, -9), (-1, 11, 1, -13), (-9, -3, -6, 2),
    (-1, -10, 1, 12), (-13, 1, -8, -10), (8, -11, 10, -6), (2, -13, 3, -6),
    (7, -13, 12, -9), (-10, -10, -5, -7), (-10, -8, -8, -13), (4, -6, 8, 5),
    (3, 12, 8, -13), (-4, 2, -3, -3), (5, -13, 10, -12), (4, -13, 5, -1),
    (-9, 9, -4, 3), (0, 3, 3, -9), (-12, 1, -6, 1), (3, 2, 4, -8),
    (-10, -10, -10, 9), (8, -13, 12, 12), (-8, -12, -6, -5), (2, 2, 3, 7),
    (10, 6, 11, -8), (6, 8, 8, -12), (-7, 10, -6, 5), (-3, -9, -3, 9),
    (-1, -13, -1, 5), (-3, -7, -3, 4), (-8, -2, -8, 3), (4, 2, 12, 12),
    (2, -5, 3, 11), (6, -9, 11, -13), (3, -1, 7, 12), (11, -1, 12, 4),
    (-3, 0, -3, 6), (4, -11, 4, 12), (2, -4, 2, 1), (-10, -6, -8, 1),
    (-13, 7, -11, 1), (-13, 12, -11, -13), (6, 0, 11, -13), (0, -1, 1, 4),
    (-13, 3, -9, -2), (-9, 8, -6, -3), (-13, -6, -8, -2), (5, -9, 8, 10),
    (2, 7, 3, -9), (-1, -6, -1, -1), (9, 5, 11, -2), (11, -3, 12, -8),
    (3, 0, 3, 5), (-1, 4, 0, 10), (3, -6, 4, 5), (-13, 0, -10, 5),
    (5, 8, 12, 11), (8, 9, 9, -6), (7, -4, 8, -12), (-10, 4, -10, 9),
    (7, 3, 12, 4), (9, -7, 10, -2), (7, 0, 12, -2), (-1, -6, 0, -11),
)

_PATTERN = np.array(_ORB_PATTERN, dtype=np.float32)
_BIT_WEIGHTS = np.left_shift(np.uint64(1), np.arange(BITS_PER_WORD, dtype=np.uint64))


@dataclass
class KeyPoint:
    """An image feature location in pixel coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class DMatch:
    """A correspondence between a query descriptor and a train descriptor."""

    query_idx: int
    train_idx: int
    distance: float


def _orientation(img: np.ndarray, xi: int, yi: int) -> tuple[np.float32, np.float32]:
    """Return (sin, cos) of the intensity-centroid angle of the patch around (xi, yi)."""
    patch = img[yi - HALF_PATCH_SIZE:yi + HALF_PATCH_SIZE,
                xi - HALF_PATCH_SIZE:xi + HALF_PATCH_SIZE].astype(np.float64)
    offsets = np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE, dtype=np.float64)
    m10 = np.float32((patch * offsets[np.newaxis, :]).sum())
    m01 = np.float32((patch * offsets[:, np.newaxis]).sum())
    m_sqrt = np.float32(np.sqrt(np.float32(m01 * m01 + m10 * m10)) + 1e-18)
    return np.float32(m01 / m_sqrt), np.float32(m10 / m_sqrt)


def _sample(img: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    cols = np.clip(np.trunc(xs).astype(np.int64), 0, img.shape[1] - 1)
    rows = np.clip(np.trunc(ys).astype(np.int64), 0, img.shape[0] - 1)
    return img[rows, cols]


def _describe(img: np.ndarray, kx: np.float32, ky: np.float32, sin_t, cos_t) -> tuple:
    px, py, qx, qy = _PATTERN.T
    ppx = cos_t * px - sin_t * py + kx
    ppy = sin_t * px + cos_t * py + ky
    qqx = cos_t * qx - sin_t * qy + kx
    qqy = sin_t * qx + cos_t * qy + ky
    bits = (_sample(img, ppx, ppy) < _sample(img, qqx, qqy)).astype(np.uint64)
    words = bits.reshape(DESCRIPTOR_WORDS, BITS_PER_WORD) @ _BIT_WEIGHTS
    return tuple(int(w) for w in words)


def compute_orb(img, keypoints) -> list:
    """Compute a 256-bit descriptor (8 words of 32 bits) for each keypoint.

    Keypoints closer than 16 pixels to the image border get ``None``.
    """
    image = np.asarray(img)
    if image.ndim != 2:
        raise ValueError(f"img must be a single-channel 2D array, got shape {image.shape}")
    rows, cols = image.shape
    descriptors: list = []
    bad_points = 0
    for kp in keypoints:
        if (kp.x < HALF_BOUNDARY or kp.y < HALF_BOUNDARY
                or kp.x >= cols - HALF_BOUNDARY or kp.y >= rows - HALF_BOUNDARY):
            bad_points += 1
            descriptors.append(None)
            continue
        sin_t, cos_t = _orientation(image, int(kp.x), int(kp.y))
        descriptors.append(_describe(image, np.float32(kp.x), np.float32(kp.y), sin_t, cos_t))
    log.debug("bad/total: %d/%d", bad_points, len(descriptors))
    return descriptors


def hamming_distance(desc1: Sequence[int], desc2: Sequence[int]) -> int:
    """Number of differing bits between two 8-word descriptors."""
    if len(desc1) != DESCRIPTOR_WORDS or len(desc2) != DESCRIPTOR_WORDS:
        raise ValueError(f"descriptors must have {DESCRIPTOR_WORDS} words")
    return sum((int(a) ^ int(b)).bit_count() for a, b in zip(desc1, desc2))


def bf_match(desc1, desc2) -> list[DMatch]:
    """Match each descriptor to its nearest neighbour, keeping distances below 40."""
    matches = []
    for i1, d1 in enumerate(desc1):
        if not d1:
            continue
        best_idx, best_dist = 0, DESCRIPTOR_WORDS * BITS_PER_WORD
        for i2, d2 in enumerate(desc2):
            if not d2:
                continue
            distance = hamming_distance(d1, d2)
            if distance < MATCH_DISTANCE_LIMIT and distance < best_dist:
                best_idx, best_dist = i2, distance
        if best_dist < MATCH_DISTANCE_LIMIT:
            matches.append(DMatch(i1, best_idx, best_dist))
    return matches


def filter_matches(matches) -> list[DMatch]:
    """Keep matches whose distance is at most max(2 * min distance, 30)."""
    matches = list(matches)
    if not matches:
        return []
    min_dist = min(m.distance for m in matches)
    max_dist = max(m.distance for m in matches)
    log.debug("-- Max dist : %f", max_dist)
    log.debug("-- Min dist : %f", min_dist)
    threshold = max(2.0 * min_dist, FILTER_FLOOR)
    return [m for m in matches if m.distance <= threshold]