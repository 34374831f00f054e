"""
Head-loss and head-gain laws of each formulation.

NONCONVEX            h_i - h_j == L r q |q|^(alpha-1)
RELAXED              dhp >= L r qp^alpha  (and the secant from the origin above)
OUTER_APPROXIMATION  tangent cuts of L r qp^alpha at evenly spaced flows, plus the secant

Pump head gain follows the same pattern with the concave curve c1 q^2 + c2 q + c3.
"""
from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from wdnopt.core.form.context import ModelContext
from wdnopt.core.form.formulation import Formulation
from wdnopt.core.hydraulics.headloss import tangent_points


def head_loss_expr(q, *, L: float, r: float, alpha: float):
    """L r q |q|^(alpha-1) as a pyomo expression."""
    if alpha == 2.0:
        return L * r * q * abs(q)
    return L * r * q * abs(q) ** (alpha - 1.0)


def tangent_cut(qp, on, *, L: float, r: float, alpha: float, q_hat: float):
    """
    Linear under-estimator of L r qp^alpha at q_hat, scaled by the indicator
    `on` so that it vanishes when the link is off.
    """
    slope = alpha * q_hat ** (alpha - 1.0)
    offset = (alpha - 1.0) * q_hat ** alpha
    return L * r * (slope * qp - offset * on)


def secant_slope(q_max: float, *, L: float, r: float, alpha: float) -> float:
    """Slope of the chord of L r q^alpha between 0 and q_max."""
    if q_max <= 0.0:
        return 0.0
    return L * r * q_max ** (alpha - 1.0)


def _positive_part_laws(ctx: ModelContext, dh, terms: Sequence[Tuple[Any, Any, float, float, float]]) -> List[Any]:
    """
    Constraints tying the one-directional head difference dh (>= 0) to the
    one-directional flows of `terms` = [(qp, on, r, q_max, L), ...].
    """
    alpha = ctx.ref.alpha
    out = []

    if ctx.formulation == Formulation.RELAXED:
        out.append(dh >= sum(L * r * qp ** alpha for qp, on, r, q_max, L in terms))
    else:
        n = ctx.config.oa_points
        active = [t for t in terms if t[3] > 0.0]
        for k in range(1, n + 1) if active else ():
            cut = sum(
                tangent_cut(qp, on, L=L, r=r, alpha=alpha, q_hat=q_max * k / n)
                for qp, on, r, q_max, L in active
            )
            out.append(dh >= cut)

    out.append(dh <= sum(secant_slope(q_max, L=L, r=r, alpha=alpha) * qp for qp, on, r, q_max, L in terms))
    return out


# ============================================================
# Pipes
# ============================================================

def pipe_head_loss(ctx: ModelContext, a: str) -> List[Any]:
    link = ctx.ref.link(a)
    h_i, h_j = ctx.head(link.node_fr), ctx.head(link.node_to)
    L, alpha = link.length, ctx.ref.alpha
    r = min(ctx.ref.resistance[a])

    if ctx.formulation == Formulation.NONCONVEX:
        return [h_i - h_j == head_loss_expr(ctx.flow(a), L=L, r=r, alpha=alpha)]

    lb, ub = ctx.bounds.flow_range(a)
    y = ctx.var["y"][a]
    qp, qn = ctx.var["qp"][a], ctx.var["qn"][a]
    dhp, dhn = ctx.var["dhp"][a], ctx.var["dhn"][a]

    return (
        _positive_part_laws(ctx, dhp, [(qp, y, r, max(ub, 0.0), L)])
        + _positive_part_laws(ctx, dhn, [(qn, 1 - y, r, max(-lb, 0.0), L)])
    )


def des_pipe_head_loss(ctx: ModelContext, a: str) -> List[Any]:
    link = ctx.ref.link(a)
    h_i, h_j = ctx.head(link.node_fr), ctx.head(link.node_to)
    L, alpha = link.length, ctx.ref.alpha
    resistances = ctx.ref.resistance[a]

    if ctx.formulation == Formulation.NONCONVEX:
        loss = sum(
            head_loss_expr(ctx.flow_des(a, r_id), L=L, r=r, alpha=alpha)
            for r_id, r in enumerate(resistances)
        )
        return [h_i - h_j == loss]

    x = ctx.var["x_res"]
    qp, qn = ctx.var["qp_des"], ctx.var["qn_des"]
    b = ctx.bounds
    fwd = [(qp[a, r_id], x[a, r_id], r, max(b.flow_max[a][r_id], 0.0), L) for r_id, r in enumerate(resistances)]
    bwd = [(qn[a, r_id], x[a, r_id], r, max(-b.flow_min[a][r_id], 0.0), L) for r_id, r in enumerate(resistances)]

    return (
        _positive_part_laws(ctx, ctx.var["dhp"][a], fwd)
        + _positive_part_laws(ctx, ctx.var["dhn"][a], bwd)
    )


# ============================================================
# Valves with a resistance (check / shutoff)
# ============================================================

def valve_head_loss(ctx: ModelContext, a: str, z_fwd, z_bwd, z_open) -> List[Any]:
    """
    Head loss through an open check/shutoff valve; the law is released by a
    big-M on (1 - z) when the valve (or the direction) is closed.

    z_bwd is None for a check valve (forward only).
    """
    link = ctx.ref.link(a)
    h_i, h_j = ctx.head(link.node_fr), ctx.head(link.node_to)
    dh_lb, dh_ub = ctx.bounds.head_difference(link.node_fr, link.node_to)
    L, alpha = link.length, ctx.ref.alpha
    r = min(ctx.ref.resistance[a])

    if ctx.formulation == Formulation.NONCONVEX:
        lhs = h_i - h_j - head_loss_expr(ctx.flow(a), L=L, r=r, alpha=alpha)
        return [lhs >= (1 - z_open) * dh_lb, lhs <= (1 - z_open) * dh_ub]

    lb, ub = ctx.bounds.flow_range(a)
    out = _valve_direction_law(ctx, h_i - h_j, ctx.var["qp"][a], z_fwd, r, max(ub, 0.0), L, dh_lb, dh_ub)
    if z_bwd is not None:
        out += _valve_direction_law(ctx, h_j - h_i, ctx.var["qn"][a], z_bwd, r, max(-lb, 0.0), L, -dh_ub, -dh_lb)
    return out


def _valve_direction_law(ctx, dh, q, z, r, q_max, L, dh_lb, dh_ub) -> List[Any]:
    """
    Law of one flow direction; [dh_lb, dh_ub] bounds dh and releases both
    sides when z = 0.
    """
    alpha = ctx.ref.alpha
    out = []
    if ctx.formulation == Formulation.RELAXED:
        out.append(dh >= L * r * q ** alpha + (1 - z) * dh_lb)
    else:
        for q_hat in tangent_points(q_max, ctx.config.oa_points):
            cut = tangent_cut(q, z, L=L, r=r, alpha=alpha, q_hat=float(q_hat))
            out.append(dh >= cut + (1 - z) * dh_lb)

    out.append(dh <= secant_slope(q_max, L=L, r=r, alpha=alpha) * q + (1 - z) * dh_ub)
    return out


# ============================================================
# Pumps
# ============================================================

def pump_head_gain(ctx: ModelContext, a: str) -> List[Any]:
    curve = ctx.ref.pump_curve[a]
    g, z = ctx.var["g"][a], ctx.status(a)

    if ctx.formulation == Formulation.NONCONVEX:
        q = ctx.flow(a)
        return [g == curve.c1 * q ** 2 + curve.c2 * q + curve.c3 * z]

    qp = ctx.var["qp"][a]
    if ctx.formulation == Formulation.RELAXED:
        return [g <= curve.c1 * qp ** 2 + curve.c2 * qp + curve.c3 * z]

    _, ub = ctx.bounds.flow_range(a)
    out = []
    for q_hat in tangent_points(ub, ctx.config.oa_points):
        slope, intercept = curve.tangent(float(q_hat))
        out.append(g <= slope * qp + intercept * z)
    return out
