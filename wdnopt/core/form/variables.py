from __future__ import annotations

import logging

import pyomo.environ as pyo

from wdnopt.core.form.context import STATUS_VAR, ModelContext
from wdnopt.core.models.link import RESISTIVE_TYPES, LinkType

LOGGER = logging.getLogger(__name__)

# Links whose head difference is split into dhp/dhn in directed formulations.
HEAD_SPLIT_TYPES = (LinkType.PIPE, LinkType.DES_PIPE)


def _pos(x: float) -> float:
    return max(x, 0.0)


# ============================================================
# Heads / flows
# ============================================================

def variable_head(ctx: ModelContext) -> None:
    b = ctx.bounds
    ctx.add_var("h", {i: (b.head_min[i], b.head_max[i]) for i in ctx.network.nodes})


def variable_flow(ctx: ModelContext) -> None:
    """
    Undirected: q (fixed links) and q_des (design candidates).
    Directed: qp/qn split with direction indicator y, and dhp/dhn for pipes.
    """
    b = ctx.bounds
    fixed = {a: l for a, l in ctx.network.links.items() if l.link_type != LinkType.DES_PIPE}
    des = ctx.ref.links(LinkType.DES_PIPE)
    des_keys = [(a, r) for a in des for r in range(len(ctx.ref.resistance[a]))]

    if not ctx.formulation.is_directed:
        ctx.add_var("q", {a: b.flow_range(a) for a in fixed})
        ctx.add_var("q_des", {(a, r): (b.flow_min[a][r], b.flow_max[a][r]) for a, r in des_keys})
        return

    qp, qn = {}, {}
    for a in fixed:
        lb, ub = b.flow_range(a)
        qp[a] = (_pos(lb), _pos(ub))
        qn[a] = (_pos(-ub), _pos(-lb))
    ctx.add_var("qp", qp)
    ctx.add_var("qn", qn)

    qp_des, qn_des = {}, {}
    for a, r in des_keys:
        lb, ub = b.flow_min[a][r], b.flow_max[a][r]
        qp_des[a, r] = (0.0, _pos(ub))
        qn_des[a, r] = (0.0, _pos(-lb))
    ctx.add_var("qp_des", qp_des)
    ctx.add_var("qn_des", qn_des)

    ctx.add_var("y", {a: (0, 1) for a in ctx.network.links}, domain=ctx.formulation.indicator_domain)

    dhp, dhn = {}, {}
    for a, link in ctx.ref.links(*HEAD_SPLIT_TYPES).items():
        dh_lb, dh_ub = b.head_difference(link.node_fr, link.node_to)
        dhp[a] = (0.0, _pos(dh_ub))
        dhn[a] = (0.0, _pos(-dh_lb))
    ctx.add_var("dhp", dhp)
    ctx.add_var("dhn", dhn)


def variable_resistance(ctx: ModelContext) -> None:
    """Selection indicators x_res[a, r] of design pipes."""
    keys = {
        (a, r): (0, 1)
        for a in ctx.ref.links(LinkType.DES_PIPE)
        for r in range(len(ctx.ref.resistance[a]))
    }
    ctx.add_var("x_res", keys, domain=ctx.formulation.indicator_domain)


def variable_indicators(ctx: ModelContext) -> None:
    domain = ctx.formulation.indicator_domain
    for link_type, name in STATUS_VAR.items():
        ctx.add_var(name, {a: (0, 1) for a in ctx.ref.links(link_type)}, domain=domain)

    shutoff = ctx.ref.links(LinkType.SHUTOFF_VALVE)
    ctx.add_var("yp_shutoff_valve", {a: (0, 1) for a in shutoff}, domain=domain)
    ctx.add_var("yn_shutoff_valve", {a: (0, 1) for a in shutoff}, domain=domain)


def variable_pump_gain(ctx: ModelContext) -> None:
    ctx.add_var("g", {a: (0.0, ctx.bounds.gain_max[a]) for a in ctx.ref.links(LinkType.PUMP)})


# ============================================================
# Components
# ============================================================

def variable_reservoir(ctx: ModelContext) -> None:
    # reservoirs only supply
    ctx.add_var("q_reservoir", {r: (0.0, None) for r in ctx.network.reservoirs})


def variable_tank(ctx: ModelContext) -> None:
    """
    q_tank is the tank outflow into its node; V the stored volume at the start
    of the time step.
    """
    b = ctx.bounds
    dt = ctx.ref.time_step

    q_tank = {}
    for t in ctx.network.tanks:
        if dt is not None:
            rate = (b.volume_max[t] - b.volume_min[t]) / dt
        else:
            rate = b.sum_demand
        q_tank[t] = (-rate, rate)

    ctx.add_var("q_tank", q_tank)
    ctx.add_var("V", {t: (b.volume_min[t], b.volume_max[t]) for t in ctx.network.tanks})


def variable_demand(ctx: ModelContext) -> None:
    b = ctx.bounds
    ctx.add_var("q_demand", {d: (b.demand_min[d], b.demand_max[d]) for d in ctx.network.dispatchable_demands()})


def build_variables(ctx: ModelContext) -> None:
    variable_head(ctx)
    variable_flow(ctx)
    variable_resistance(ctx)
    variable_indicators(ctx)
    variable_pump_gain(ctx)
    variable_reservoir(ctx)
    variable_tank(ctx)
    variable_demand(ctx)

    n_vars = sum(len(v) for v in ctx.var.values())
    LOGGER.debug("index %s: %d variables (%d resistive links)", ctx.index, n_vars,
                 len(ctx.ref.links(*RESISTIVE_TYPES)))
