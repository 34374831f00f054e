from __future__ import annotations

import logging
from typing import Callable, Dict

from wdnopt.core.build.validate import ConfigurationError, report
from wdnopt.core.form.context import ModelContext
from wdnopt.core.form.head_loss import (
    des_pipe_head_loss,
    pipe_head_loss,
    pump_head_gain,
    valve_head_loss,
)
from wdnopt.core.models.link import LinkType

LOGGER = logging.getLogger(__name__)


def _pos(x: float) -> float:
    return max(x, 0.0)


def _heads(ctx: ModelContext, a: str):
    link = ctx.ref.link(a)
    return ctx.head(link.node_fr), ctx.head(link.node_to)


# ============================================================
# Flow direction (directed formulations)
# ============================================================

def constraint_flow_direction(ctx: ModelContext, a: str) -> None:
    """
    qp is active only when y = 1 and qn only when y = 0. Device states are tied
    to the direction: a forward-only device can only be on when y = 1.
    """
    if not ctx.formulation.is_directed:
        return

    link = ctx.ref.link(a)
    y = ctx.var["y"][a]
    b = ctx.bounds
    cons = []

    if link.link_type == LinkType.DES_PIPE:
        for r_id in range(len(ctx.ref.resistance[a])):
            cons.append(ctx.var["qp_des"][a, r_id] <= _pos(b.flow_max[a][r_id]) * y)
            cons.append(ctx.var["qn_des"][a, r_id] <= _pos(-b.flow_min[a][r_id]) * (1 - y))
    else:
        lb, ub = b.flow_range(a)
        cons.append(ctx.var["qp"][a] <= _pos(ub) * y)
        cons.append(ctx.var["qn"][a] <= _pos(-lb) * (1 - y))

    if link.link_type in (LinkType.CHECK_VALVE, LinkType.PUMP, LinkType.PRV):
        cons.append(ctx.status(a) <= y)
    elif link.link_type == LinkType.SHUTOFF_VALVE:
        cons.append(ctx.var["yp_shutoff_valve"][a] <= y)
        cons.append(ctx.var["yn_shutoff_valve"][a] <= 1 - y)

    if link.link_type in (LinkType.PIPE, LinkType.DES_PIPE):
        dh_lb, dh_ub = b.head_difference(link.node_fr, link.node_to)
        h_i, h_j = _heads(ctx, a)
        dhp, dhn = ctx.var["dhp"][a], ctx.var["dhn"][a]
        cons.append(dhp - dhn == h_i - h_j)
        cons.append(dhp <= _pos(dh_ub) * y)
        cons.append(dhn <= _pos(-dh_lb) * (1 - y))

    ctx.register("flow_direction", a, cons)


# ============================================================
# Links
# ============================================================

def constraint_pipe(ctx: ModelContext, a: str) -> None:
    constraint_flow_direction(ctx, a)
    ctx.register("head_loss", a, pipe_head_loss(ctx, a))


def constraint_short_pipe(ctx: ModelContext, a: str) -> None:
    constraint_flow_direction(ctx, a)
    h_i, h_j = _heads(ctx, a)
    ctx.register("head_loss", a, [h_i == h_j])


def constraint_des_pipe(ctx: ModelContext, a: str) -> None:
    """
    Exactly one candidate resistance is selected and only its flow is nonzero.
    """
    constraint_flow_direction(ctx, a)

    x = ctx.var["x_res"]
    b = ctx.bounds
    n = len(ctx.ref.resistance[a])
    cons = [sum(x[a, r_id] for r_id in range(n)) == 1]

    for r_id in range(n):
        q = ctx.flow_des(a, r_id)
        cons.append(q >= b.flow_min[a][r_id] * x[a, r_id])
        cons.append(q <= b.flow_max[a][r_id] * x[a, r_id])
        if ctx.formulation.is_directed:
            cons.append(ctx.var["qp_des"][a, r_id] <= _pos(b.flow_max[a][r_id]) * x[a, r_id])
            cons.append(ctx.var["qn_des"][a, r_id] <= _pos(-b.flow_min[a][r_id]) * x[a, r_id])

    ctx.register("resistance_selection", a, cons)
    ctx.register("head_loss", a, des_pipe_head_loss(ctx, a))


def constraint_check_valve(ctx: ModelContext, a: str) -> None:
    """
    Open (z = 1): forward flow of at least epsilon, head drop >= 0.
    Closed (z = 0): no flow, head drop anywhere in its negative range.
    """
    constraint_flow_direction(ctx, a)

    link = ctx.ref.link(a)
    q, z = ctx.flow(a), ctx.status(a)
    _, ub = ctx.bounds.flow_range(a)
    dh_lb, dh_ub = ctx.bounds.head_difference(link.node_fr, link.node_to)
    h_i, h_j = _heads(ctx, a)

    ctx.register("check_valve", a, [
        q <= ub * z,
        q >= ctx.config.epsilon * z,
        h_i - h_j >= (1 - z) * dh_lb,
        h_i - h_j <= z * dh_ub,
    ])
    ctx.register("head_loss", a, valve_head_loss(ctx, a, z, None, z))


def constraint_shutoff_valve(ctx: ModelContext, a: str) -> None:
    """
    Open forward (yp), open backward (yn) or closed; open means |q| >= epsilon.
    """
    constraint_flow_direction(ctx, a)

    q, z = ctx.flow(a), ctx.status(a)
    yp, yn = ctx.var["yp_shutoff_valve"][a], ctx.var["yn_shutoff_valve"][a]
    lb, ub = ctx.bounds.flow_range(a)
    eps = ctx.config.epsilon

    ctx.register("shutoff_valve", a, [
        yp + yn == z,
        q <= ub * yp - eps * yn,
        q >= lb * yn + eps * yp,
    ])
    ctx.register("head_loss", a, valve_head_loss(ctx, a, yp, yn, z))


def constraint_prv(ctx: ModelContext, a: str) -> None:
    """
    Active (z = 1): forward flow and downstream head pinned to the setting.
    Inactive: no flow, downstream head free within its bounds.
    """
    constraint_flow_direction(ctx, a)

    link = ctx.ref.link(a)
    net, b = ctx.network, ctx.bounds
    q, z = ctx.flow(a), ctx.status(a)
    _, ub = b.flow_range(a)
    h_i, h_j = _heads(ctx, a)
    h_prv = net.nodes[link.node_to].elevation + float(link.setting)
    h_lb_j, h_ub_j = b.head_min[link.node_to], b.head_max[link.node_to]
    dh_lb, _ = b.head_difference(link.node_fr, link.node_to)

    ctx.register("pressure_reducing_valve", a, [
        q <= ub * z,
        q >= ctx.config.epsilon * z,
        h_j >= (1 - z) * h_lb_j + z * h_prv,
        h_j <= (1 - z) * h_ub_j + z * h_prv,
        h_i - h_j >= (1 - z) * dh_lb,
    ])


def constraint_pump(ctx: ModelContext, a: str) -> None:
    """
    On: forward flow, head rise h_j - h_i equal to the gain g.
    Off: no flow, no gain, head rise free within its bounds.
    """
    constraint_flow_direction(ctx, a)

    link = ctx.ref.link(a)
    q, z, g = ctx.flow(a), ctx.status(a), ctx.var["g"][a]
    _, ub = ctx.bounds.flow_range(a)
    h_i, h_j = _heads(ctx, a)
    rise_lb, rise_ub = ctx.bounds.head_difference(link.node_to, link.node_fr)
    q_on = max(ctx.config.epsilon, link.flow_min_forward or 0.0)

    ctx.register("pump", a, [
        q <= ub * z,
        q >= q_on * z,
        h_j - h_i - g >= (1 - z) * rise_lb,
        h_j - h_i - g <= (1 - z) * rise_ub,
        g <= ctx.bounds.gain_max[a] * z,
    ])
    ctx.register("head_gain", a, pump_head_gain(ctx, a))


def constraint_valve(ctx: ModelContext, a: str) -> None:
    """Lossless valve: open means equal heads, closed means zero flow."""
    constraint_flow_direction(ctx, a)

    link = ctx.ref.link(a)
    q, z = ctx.flow(a), ctx.status(a)
    lb, ub = ctx.bounds.flow_range(a)
    dh_lb, dh_ub = ctx.bounds.head_difference(link.node_fr, link.node_to)
    h_i, h_j = _heads(ctx, a)

    ctx.register("valve", a, [
        q <= ub * z,
        q >= lb * z,
        h_i - h_j <= (1 - z) * dh_ub,
        h_i - h_j >= (1 - z) * dh_lb,
    ])


LINK_TEMPLATES: Dict[LinkType, Callable[[ModelContext, str], None]] = {
    LinkType.PIPE: constraint_pipe,
    LinkType.DES_PIPE: constraint_des_pipe,
    LinkType.CHECK_VALVE: constraint_check_valve,
    LinkType.SHUTOFF_VALVE: constraint_shutoff_valve,
    LinkType.PRV: constraint_prv,
    LinkType.PUMP: constraint_pump,
    LinkType.SHORT_PIPE: constraint_short_pipe,
    LinkType.VALVE: constraint_valve,
}


def constraint_link(ctx: ModelContext, a: str) -> None:
    LINK_TEMPLATES[ctx.ref.link(a).link_type](ctx, a)


# ============================================================
# Nodes
# ============================================================

def constraint_flow_conservation(ctx: ModelContext, i: str) -> None:
    """
    inflow - outflow + reservoir supply + tank outflow - dispatchable demand
    == fixed demand
    """
    inc = ctx.ref.incidence
    net = ctx.network

    fixed = sum(net.demands[d].flow_rate for d in inc.node_demand[i] if not net.demands[d].is_dispatchable)
    dispatchable = [d for d in inc.node_demand[i] if net.demands[d].is_dispatchable]

    terms = (
        [ctx.flow(a) for a, _, _ in inc.arcs_to[i]]
        + [-ctx.flow(a) for a, _, _ in inc.arcs_fr[i]]
        + [ctx.var["q_reservoir"][r] for r in inc.node_reservoir[i]]
        + [ctx.var["q_tank"][t] for t in inc.node_tank[i]]
        + [-ctx.var["q_demand"][d] for d in dispatchable]
    )

    if not terms:
        if fixed != 0.0:
            report(ConfigurationError(
                f"Node {i!r} of index {ctx.index} has a demand of {fixed} but nothing can supply it."
            ))
        LOGGER.warning("Node %r of index %s is isolated; no flow conservation added.", i, ctx.index)
        return

    ctx.register("flow_conservation", i, [sum(terms) == fixed])


def constraint_node_directionality(ctx: ModelContext, i: str) -> None:
    """
    Valid inequalities on the direction indicators y around a node:
    a pass-through node of degree 2 has exactly one incoming link, a pure
    source at least one outgoing link and a pure sink at least one incoming.
    """
    if not ctx.formulation.is_directed:
        return

    inc = ctx.ref.incidence
    if inc.degree(i) == 0:
        return

    net = ctx.network
    y = ctx.var["y"]
    into = [y[a] for a, _, _ in inc.arcs_to[i]] + [1 - y[a] for a, _, _ in inc.arcs_fr[i]]

    fixed = sum(net.demands[d].flow_rate for d in inc.node_demand[i] if not net.demands[d].is_dispatchable)
    dispatchable = [net.demands[d] for d in inc.node_demand[i] if net.demands[d].is_dispatchable]
    tanks, reservoirs = inc.node_tank[i], inc.node_reservoir[i]
    can_supply = bool(tanks or reservoirs or any(d.demand_min < 0.0 for d in dispatchable))
    can_absorb = bool(tanks or any(d.demand_max > 0.0 for d in dispatchable))

    if inc.degree(i) == 2 and not inc.has_component(i):
        cons = [sum(into) == 1]
    elif (reservoirs and not tanks and not inc.node_demand[i]) or (fixed < 0.0 and not can_absorb):
        cons = [sum(1 - t for t in into) >= 1]
    elif fixed > 0.0 and not can_supply:
        cons = [sum(into) >= 1]
    else:
        return

    ctx.register("node_directionality", i, cons)


# ============================================================
# Reservoirs / tanks
# ============================================================

def constraint_reservoir_head(ctx: ModelContext, r: str) -> None:
    res = ctx.network.reservoirs[r]
    if res.is_dispatchable:
        return
    node = ctx.network.nodes[res.node]
    head = res.head if res.head is not None else node.head
    ctx.register("reservoir_head", r, [ctx.head(res.node) == head])


def constraint_tank_head(ctx: ModelContext, t: str) -> None:
    tank = ctx.network.tanks[t]
    elevation = ctx.network.nodes[tank.node].elevation
    ctx.register("tank_head", t, [ctx.head(tank.node) == elevation + ctx.var["V"][t] / tank.surface_area])


def constraint_tank_state(ctx: ModelContext, t: str) -> None:
    """Initial volume of a non-dispatchable tank."""
    tank = ctx.network.tanks[t]
    if tank.dispatchable:
        return
    if ctx.ref.time_step is None:
        report(ConfigurationError(
            f"Tank {t!r} of index {ctx.index} is not dispatchable but the network has no time_step."
        ))
    ctx.register("tank_state", t, [ctx.var["V"][t] == tank.surface_area * tank.init_level])
