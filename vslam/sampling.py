"""Random draws used to perturb problems: uniform and normal variates."""

from __future__ import annotations

import math
import random


def rand_double(rng=None) -> float:
    """Draw a uniform value in [0, 1) from ``rng`` (the global generator if None)."""
    source = random if rng is None else rng
    return source.random()


def rand_normal(rng=None) -> float:
    """Draw a standard normal value with the Marsaglia polar method."""
    while True:
        x1 = 2.0 * rand_double(rng) - 1.0
        x2 = 2.0 * rand_double(rng) - 1.0
        w = x1 * x1 + x2 * x2
        if 0.0 < w < 1.0:
            break
    return x1 * math.sqrt((-2.0 * math.log(w)) / w)