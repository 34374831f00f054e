# wdnopt/core/hydraulics/friction.py
from __future__ import annotations

import math

from wdnopt.core.build.config import HeadlossConfig


def swamee_jain_f(*, eps_over_D: float, Re: float) -> float:
    """
    Swamee-Jain (turbulent), valid ~Re>5000 (good general approximation).
    f = 0.25 / [log10( eps/(3.7D) + 5.74/Re^0.9 )]^2
    """
    if Re <= 0:
        return float("nan")
    term = (eps_over_D / 3.7) + (5.74 / (Re ** 0.9))
    return 0.25 / (math.log10(term) ** 2)


def darcy_f(*, Re: float, eps_over_D: float) -> float:
    """Darcy friction factor: laminar (64/Re) + simple switch to Swamee-Jain."""
    if Re <= 0:
        return float("nan")
    if Re < 2000.0:
        return 64.0 / Re
    return swamee_jain_f(eps_over_D=eps_over_D, Re=Re)


def reynolds(*, V_m_s: float, D_m: float, nu_m2s: float) -> float:
    return (V_m_s * D_m / nu_m2s) if (D_m > 0 and nu_m2s > 0) else float("nan")


def hazen_williams_resistance(*, diameter: float, roughness: float) -> float:
    """
    Per-unit-length resistance r for dH = L * r * q|q|^0.852 (SI units).
    roughness is the Hazen-Williams C coefficient.
    """
    if diameter <= 0 or roughness <= 0:
        raise ValueError(f"Invalid H-W data: D={diameter}, C={roughness}")
    return 7.8828 / (0.849 ** 1.852 * roughness ** 1.852 * diameter ** 4.87)


def darcy_weisbach_resistance(
    *,
    diameter: float,
    roughness: float,
    viscosity: float,
    speed: float,
    g_m_s2: float = 9.80665,
) -> float:
    """
    Per-unit-length resistance r for dH = L * r * q|q| with
    r = f / D / (2 g A^2) and f evaluated at the reference speed.
    roughness is the absolute roughness eps [m].
    """
    if diameter <= 0:
        raise ValueError(f"Invalid D-W diameter: D={diameter}")
    Re = reynolds(V_m_s=speed, D_m=diameter, nu_m2s=viscosity)
    f = darcy_f(Re=Re, eps_over_D=roughness / diameter)
    area = math.pi * diameter ** 2 / 4.0
    return f / diameter / (2.0 * g_m_s2 * area ** 2)


def resistance(*, diameter: float, roughness: float, headloss: HeadlossConfig) -> float:
    """Resistance per unit length under the configured head loss method."""
    if headloss.method == "h-w":
        return hazen_williams_resistance(diameter=diameter, roughness=roughness)
    return darcy_weisbach_resistance(
        diameter=diameter,
        roughness=roughness,
        viscosity=headloss.viscosity,
        speed=headloss.reference_speed,
        g_m_s2=headloss.g_m_s2,
    )
