from __future__ import annotations

from enum import Enum
from typing import Any

import pyomo.environ as pyo


class Formulation(str, Enum):
    """
    Formulation variants of the hydraulic model.

    NONCONVEX            undirected flows, exact head-loss/head-gain equalities, binary states
    OUTER_APPROXIMATION  directed flows, polyhedral (tangent/secant) cuts, binary states
    RELAXED              directed flows, convex nonlinear inequalities, states in [0, 1]
    """
    NONCONVEX = "nc"
    OUTER_APPROXIMATION = "oa"
    RELAXED = "crd"

    @staticmethod
    def parse(x: Any) -> "Formulation":
        if isinstance(x, Formulation):
            return x
        s = str(x).strip().lower()
        aliases = {
            "nc": Formulation.NONCONVEX,
            "ncnlp": Formulation.NONCONVEX,
            "nonconvex": Formulation.NONCONVEX,
            "minlp": Formulation.NONCONVEX,
            "oa": Formulation.OUTER_APPROXIMATION,
            "milp": Formulation.OUTER_APPROXIMATION,
            "outer_approximation": Formulation.OUTER_APPROXIMATION,
            "crd": Formulation.RELAXED,
            "cnlp": Formulation.RELAXED,
            "relaxed": Formulation.RELAXED,
            "continuous_relaxation": Formulation.RELAXED,
        }
        if s not in aliases:
            raise ValueError(f"Unknown formulation: {x!r}")
        return aliases[s]

    @property
    def is_directed(self) -> bool:
        return self is not Formulation.NONCONVEX

    @property
    def is_integral(self) -> bool:
        return self is not Formulation.RELAXED

    @property
    def indicator_domain(self):
        """Domain of on/off, direction and design-selection indicators."""
        return pyo.Binary if self.is_integral else pyo.UnitInterval
