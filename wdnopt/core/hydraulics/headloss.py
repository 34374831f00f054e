# wdnopt/core/hydraulics/headloss.py
from __future__ import annotations

import math

import numpy as np


def flow_from_head_difference(dh: float, *, L: float, r: float, alpha: float) -> float:
    """
    Inverse of the head loss law: q = sign(dh) (|dh| / (L r))^(1/alpha).
    """
    if L <= 0 or r <= 0:
        raise ValueError(f"Invalid resistance data: L={L}, r={r}")
    if dh == 0.0:
        return 0.0
    return math.copysign((abs(dh) / (L * r)) ** (1.0 / alpha), dh)


def tangent_points(q_max: float, n_points: int) -> np.ndarray:
    """
    Evenly spaced linearization points in (0, q_max]. Empty if q_max <= 0.
    """
    if q_max <= 0.0 or n_points < 1:
        return np.zeros(0, dtype=float)
    return np.linspace(q_max / n_points, q_max, n_points)
