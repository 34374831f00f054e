# wdnopt/core/build/config.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal

from wdnopt.core.form.formulation import Formulation


# ============================================================
# HeadlossConfig
# ============================================================

HeadlossMethod = Literal["h-w", "d-w"]

_METHOD_ALIASES = {
    "h-w": "h-w",
    "hw": "h-w",
    "hazen-williams": "h-w",
    "hazen_williams": "h-w",
    "d-w": "d-w",
    "dw": "d-w",
    "darcy-weisbach": "d-w",
    "darcy_weisbach": "d-w",
}


@dataclass(frozen=True)
class HeadlossConfig:
    """
    Head loss law used for resistances and for the exponent alpha.
    """
    method: HeadlossMethod = "h-w"
    viscosity: float = 1.0e-6       # m2/s
    reference_speed: float = 10.0   # m/s, Reynolds number for D-W resistances
    g_m_s2: float = 9.80665

    @staticmethod
    def from_dict(cfg: Dict[str, Any]) -> "HeadlossConfig":
        raw = str(
            cfg.get("head_loss",
            cfg.get("headloss",
            cfg.get("hl_model", "h-w")))
        ).strip().lower()
        method = _METHOD_ALIASES.get(raw, raw)

        nu = cfg.get("viscosity", cfg.get("nu", 1.0e-6))
        speed = cfg.get("reference_speed", cfg.get("speed", 10.0))
        g = cfg.get("g_m_s2", cfg.get("g", cfg.get("gravity", 9.80665)))

        out = HeadlossConfig(
            method=method,
            viscosity=float(nu),
            reference_speed=float(speed),
            g_m_s2=float(g),
        )
        out.validate()
        return out

    def validate(self) -> None:
        if self.method not in ("h-w", "d-w"):
            raise ValueError(f"HeadlossConfig.method invalid: {self.method!r}")
        if self.viscosity <= 0:
            raise ValueError(f"HeadlossConfig.viscosity must be > 0 (got {self.viscosity})")
        if self.reference_speed <= 0:
            raise ValueError(f"HeadlossConfig.reference_speed must be > 0 (got {self.reference_speed})")
        if not (0.0 < self.g_m_s2 < 20.0):
            raise ValueError(f"HeadlossConfig.g_m_s2 out of range: {self.g_m_s2}")

    @property
    def alpha(self) -> float:
        """Head loss exponent."""
        return 1.852 if self.method == "h-w" else 2.0


# ============================================================
# BuildConfig
# ============================================================

TankMode = Literal["as_given", "fixed", "relaxed", "start_dispatchable"]


@dataclass(frozen=True)
class BuildConfig:
    """
    Options of the model build pass.
    """
    formulation: Formulation = Formulation.NONCONVEX
    # open-device minimum flow, a tolerance kept for compatibility (not derived)
    epsilon: float = 6.31465679e-6
    free_pressure_margin: float = 100.0
    oa_points: int = 5
    tank_mode: TankMode = "as_given"

    @staticmethod
    def from_dict(cfg: Dict[str, Any]) -> "BuildConfig":
        formulation = Formulation.parse(cfg.get("formulation", cfg.get("form", "nc")))
        tank_mode = str(cfg.get("tank_mode", cfg.get("tanks", "as_given"))).strip().lower()

        out = BuildConfig(
            formulation=formulation,
            epsilon=float(cfg.get("epsilon", cfg.get("flow_epsilon", 6.31465679e-6))),
            free_pressure_margin=float(cfg.get("free_pressure_margin", 100.0)),
            oa_points=int(cfg.get("oa_points", 5)),
            tank_mode=tank_mode,
        )
        out.validate()
        return out

    def validate(self) -> None:
        if self.epsilon < 0:
            raise ValueError(f"BuildConfig.epsilon must be >= 0 (got {self.epsilon})")
        if self.free_pressure_margin < 0:
            raise ValueError(f"BuildConfig.free_pressure_margin must be >= 0 (got {self.free_pressure_margin})")
        if self.oa_points < 1:
            raise ValueError(f"BuildConfig.oa_points must be >= 1 (got {self.oa_points})")
        if self.tank_mode not in ("as_given", "fixed", "relaxed", "start_dispatchable"):
            raise ValueError(f"BuildConfig.tank_mode invalid: {self.tank_mode!r}")


