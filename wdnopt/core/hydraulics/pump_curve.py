# wdnopt/core/hydraulics/pump_curve.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from wdnopt.core.build.validate import PumpCurveError, report


@dataclass(frozen=True)
class PumpCurve:
    """
    Quadratic head-gain curve g(q) = c1 q^2 + c2 q + c3 (c1 < 0).
    """
    c1: float
    c2: float
    c3: float

    @property
    def coefficients(self) -> Tuple[float, float, float]:
        return (self.c1, self.c2, self.c3)

    @property
    def max_gain(self) -> float:
        """Value at the vertex of the parabola."""
        return self.c3 - 0.25 * self.c2 * self.c2 / self.c1

    @property
    def max_flow(self) -> float:
        """Largest root of g(q) = 0 (runout flow)."""
        disc = self.c2 ** 2 - 4.0 * self.c1 * self.c3
        if disc < 0.0:
            return float("nan")
        r1 = (-self.c2 + math.sqrt(disc)) / (2.0 * self.c1)
        r2 = (-self.c2 - math.sqrt(disc)) / (2.0 * self.c1)
        return max(r1, r2)

    @property
    def power_coefficients(self) -> Tuple[float, float, float]:
        """Cubic q * g(q) = c1 q^3 + c2 q^2 + c3 q."""
        return (self.c1, self.c2, self.c3)

    def gain(self, points) -> np.ndarray:
        q = np.asarray(points, dtype=float)
        return self.c1 * q * q + self.c2 * q + self.c3

    def power_values(self, points) -> np.ndarray:
        q = np.asarray(points, dtype=float)
        return q * self.gain(q)

    def tangent(self, q_hat: float) -> Tuple[float, float]:
        """(slope, intercept) of the tangent line at q_hat."""
        slope = 2.0 * self.c1 * q_hat + self.c2
        intercept = self.c3 - self.c1 * q_hat * q_hat
        return slope, intercept


def fit_head_curve(head_curve: Sequence[Sequence[float]]) -> PumpCurve:
    """
    Least-squares quadratic fit of (flow, head gain) points.

    A single best-efficiency point (q, h) is completed with the shutoff point
    (0, 1.33 h) and the runout point (2 q, 0) before fitting.
    """
    points = [(float(q), float(h)) for q, h in head_curve]

    if len(points) == 0:
        report(PumpCurveError("Pump head curve has zero points."))
    if len(points) == 1:
        q, h = points[0]
        points = [(0.0, 1.33 * h), (2.0 * q, 0.0)] + points

    q = np.array([p[0] for p in points], dtype=float)
    h = np.array([p[1] for p in points], dtype=float)
    A = np.column_stack([q * q, q, np.ones_like(q)])
    coef, *_ = np.linalg.lstsq(A, h, rcond=None)

    curve = PumpCurve(c1=float(coef[0]), c2=float(coef[1]), c3=float(coef[2]))

    if not curve.c1 < 0.0:
        report(PumpCurveError(
            f"Fitted pump curve is not decreasing (c1={curve.c1:.6g} >= 0); points={points}"
        ))
    if not curve.max_flow > 0.0:
        report(PumpCurveError(
            f"Fitted pump curve has no positive runout flow (coefficients={curve.coefficients})"
        ))
    return curve


def pump_efficiency(points, efficiency_curve: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Linear interpolation of (flow, efficiency) samples, flat outside the samples.
    """
    if not efficiency_curve:
        raise ValueError("Empty efficiency curve.")
    ordered = sorted((float(q), float(e)) for q, e in efficiency_curve)
    qs = np.array([p[0] for p in ordered], dtype=float)
    es = np.array([p[1] for p in ordered], dtype=float)
    return np.interp(np.asarray(points, dtype=float), qs, es)
