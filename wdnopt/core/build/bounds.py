from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from wdnopt.core.build.config import BuildConfig
from wdnopt.core.build.ref import NetworkRef
from wdnopt.core.build.validate import BoundsError, ConfigurationError, report
from wdnopt.core.hydraulics.headloss import flow_from_head_difference
from wdnopt.core.models.link import RESISTIVE_TYPES, FlowDirection, Link, LinkType

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundTables:
    """
    Interval bounds of one network, computed once before any constraint is built.

    flow_min/flow_max hold one entry per candidate resistance (a single entry
    for links without resistances).
    """
    head_min: Dict[str, float]
    head_max: Dict[str, float]
    flow_min: Dict[str, Tuple[float, ...]]
    flow_max: Dict[str, Tuple[float, ...]]
    volume_min: Dict[str, float]
    volume_max: Dict[str, float]
    demand_min: Dict[str, float]
    demand_max: Dict[str, float]
    gain_max: Dict[str, float]
    sum_demand: float

    def flow_range(self, a: str) -> Tuple[float, float]:
        """Hull of the per-candidate flow intervals of link a."""
        return min(self.flow_min[a]), max(self.flow_max[a])

    def head_difference(self, i: str, j: str) -> Tuple[float, float]:
        """Bounds of h_i - h_j."""
        return self.head_min[i] - self.head_max[j], self.head_max[i] - self.head_min[j]


def _check_interval(kind: str, key, lb: float, ub: float) -> None:
    if lb > ub:
        report(BoundsError(f"Inconsistent {kind} bounds for {key!r}: lower {lb} > upper {ub}"))


# ============================================================
# Head bounds
# ============================================================

def calc_head_bounds(
    ref: NetworkRef,
    config: Optional[BuildConfig] = None,
) -> Tuple[Dict[str, float], Dict[str, float]]:
    config = config or BuildConfig()
    net = ref.network

    # Highest reachable head: top elevation (or fixed source head), plus every
    # tank filled, plus the shutoff gain of every pump.
    max_head = max(n.elevation for n in net.nodes.values())
    for r in net.reservoirs.values():
        for h in (r.head, r.h_max, net.nodes[r.node].head):
            if h is not None:
                max_head = max(max_head, h)
    max_head += sum(t.max_level for t in net.tanks.values())
    for curve in ref.pump_curve.values():
        max_head += curve.max_gain

    head_min = {i: n.elevation for i, n in net.nodes.items()}
    head_max = {i: max_head for i in net.nodes}

    # Pass-through nodes may see negative pressures.
    for i in net.nodes:
        if not ref.incidence.has_component(i):
            head_min[i] -= config.free_pressure_margin

    for uid, r in net.reservoirs.items():
        node = net.nodes[r.node]
        if not r.is_dispatchable:
            head = r.head if r.head is not None else node.head
            head_min[r.node] = head
            head_max[r.node] = head
        else:
            h_lb = r.h_min if r.h_min is not None else node.h_min
            h_ub = r.h_max if r.h_max is not None else node.h_max
            if h_lb is not None:
                head_min[r.node] = h_lb
            if h_ub is not None:
                head_max[r.node] = h_ub

    for uid, t in net.tanks.items():
        elevation = net.nodes[t.node].elevation
        head_min[t.node] = elevation + t.min_level
        head_max[t.node] = elevation + t.max_level

    for a, prv in ref.links(LinkType.PRV).items():
        h_setting = net.nodes[prv.node_to].elevation + float(prv.setting)
        head_min[prv.node_to] = min(head_min[prv.node_to], h_setting)
        head_max[prv.node_to] = min(head_max[prv.node_to], h_setting)

    for i, n in net.nodes.items():
        if n.h_min is not None:
            head_min[i] = max(head_min[i], n.h_min)
        if n.h_max is not None:
            head_max[i] = min(head_max[i], n.h_max)

    for i in net.nodes:
        _check_interval("head", i, head_min[i], head_max[i])

    return head_min, head_max


# ============================================================
# Tank volume / demand bounds
# ============================================================

def calc_tank_volume_bounds(ref: NetworkRef) -> Tuple[Dict[str, float], Dict[str, float]]:
    lb: Dict[str, float] = {}
    ub: Dict[str, float] = {}

    for i, tank in ref.network.tanks.items():
        if tank.curve_name is not None:
            report(ConfigurationError(
                f"Tank {i!r} uses volume curve {tank.curve_name!r}: only cylindrical tanks are supported."
            ))
        area = tank.surface_area
        lb[i] = max(tank.min_vol, area * tank.min_level)
        ub[i] = area * tank.max_level
        _check_interval("tank volume", i, lb[i], ub[i])
        if lb[i] < 0.0:
            report(BoundsError(f"Tank {i!r} has a negative minimum volume {lb[i]}"))

    return lb, ub


def calc_demand_bounds(ref: NetworkRef) -> Tuple[Dict[str, float], Dict[str, float]]:
    demand_min = {i: -math.inf for i in ref.network.dispatchable_demands()}
    demand_max = {i: math.inf for i in ref.network.dispatchable_demands()}

    for i, demand in ref.network.dispatchable_demands().items():
        demand_min[i] = max(demand_min[i], demand.demand_min)
        demand_max[i] = min(demand_max[i], demand.demand_max)
        _check_interval("demand", i, demand_min[i], demand_max[i])

    return demand_min, demand_max


def calc_sum_demand(ref: NetworkRef) -> float:
    """
    Largest total flow any link may carry: fixed demand magnitudes, dispatchable
    demand extremes and, with a time step, the fill/drain rate of every tank.
    """
    net = ref.network
    total = sum(abs(d.flow_rate) for d in net.fixed_demands().values())
    total += sum(max(abs(d.demand_min), abs(d.demand_max)) for d in net.dispatchable_demands().values())

    if ref.time_step is not None and net.tanks:
        V_lb, V_ub = calc_tank_volume_bounds(ref)
        total += sum((V_ub[i] - V_lb[i]) / ref.time_step for i in net.tanks)

    return float(total)


def calc_pump_gain_bounds(ref: NetworkRef) -> Dict[str, float]:
    return {a: max(0.0, curve.max_gain) for a, curve in ref.pump_curve.items()}


# ============================================================
# Flow bounds
# ============================================================

def _apply_direction(link: Link, lb: float, ub: float) -> Tuple[float, float]:
    if link.flow_direction == FlowDirection.POSITIVE:
        lb = max(lb, 0.0)
    elif link.flow_direction == FlowDirection.NEGATIVE:
        ub = min(ub, 0.0)
    return lb, ub


def _apply_user_bounds(link: Link, lb: float, ub: float) -> Tuple[float, float]:
    if link.q_min is not None:
        lb = max(lb, link.q_min)
    if link.q_max is not None:
        ub = min(ub, link.q_max)
    return lb, ub


def _resistive_flow_bounds(
    ref: NetworkRef,
    link: Link,
    head_min: Dict[str, float],
    head_max: Dict[str, float],
    sum_demand: float,
) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
    i, j = link.node_fr, link.node_to
    dh_lb, dh_ub = head_min[i] - head_max[j], head_max[i] - head_min[j]
    L, alpha = link.length, ref.alpha

    lbs, ubs = [], []
    for r_id, r in enumerate(ref.resistance[link.uid]):
        lb = flow_from_head_difference(dh_lb, L=L, r=r, alpha=alpha)
        ub = flow_from_head_difference(dh_ub, L=L, r=r, alpha=alpha)
        lb, ub = max(lb, -sum_demand), min(ub, sum_demand)

        if link.maximum_velocity is not None:
            rate = link.maximum_velocity * link.area(r_id)
            lb, ub = max(lb, -rate), min(ub, rate)

        if link.link_type == LinkType.CHECK_VALVE:
            lb = max(lb, 0.0)
        lb, ub = _apply_direction(link, lb, ub)

        # a closed valve carries zero flow whatever the heads are
        if link.link_type in (LinkType.CHECK_VALVE, LinkType.SHUTOFF_VALVE):
            lb, ub = min(lb, 0.0), max(ub, 0.0)

        lb, ub = _apply_user_bounds(link, lb, ub)
        _check_interval("flow", (link.uid, r_id), lb, ub)
        lbs.append(lb)
        ubs.append(ub)

    return tuple(lbs), tuple(ubs)


def calc_flow_bounds(
    ref: NetworkRef,
    head_min: Dict[str, float],
    head_max: Dict[str, float],
    sum_demand: float,
) -> Tuple[Dict[str, Tuple[float, ...]], Dict[str, Tuple[float, ...]]]:
    lb: Dict[str, Tuple[float, ...]] = {}
    ub: Dict[str, Tuple[float, ...]] = {}

    for a, link in ref.network.links.items():
        t = link.link_type

        if t in RESISTIVE_TYPES:
            lb[a], ub[a] = _resistive_flow_bounds(ref, link, head_min, head_max, sum_demand)
            continue

        if t == LinkType.PUMP:
            q_lb, q_ub = 0.0, min(sum_demand, ref.pump_curve[a].max_flow)
        elif t == LinkType.PRV:
            q_lb, q_ub = 0.0, sum_demand
        elif t == LinkType.SHORT_PIPE:
            q_lb, q_ub = _apply_direction(link, -sum_demand, sum_demand)
        else:  # generic valve
            q_lb, q_ub = _apply_direction(link, -sum_demand, sum_demand)
            q_lb, q_ub = min(q_lb, 0.0), max(q_ub, 0.0)

        q_lb, q_ub = _apply_user_bounds(link, q_lb, q_ub)
        _check_interval("flow", a, q_lb, q_ub)
        lb[a], ub[a] = (q_lb,), (q_ub,)

    return lb, ub


def calc_bounds(ref: NetworkRef, config: Optional[BuildConfig] = None) -> BoundTables:
    """
    All bounds of one network. Pure: the same ref always gives the same tables.
    """
    config = config or BuildConfig()

    head_min, head_max = calc_head_bounds(ref, config)
    volume_min, volume_max = calc_tank_volume_bounds(ref)
    demand_min, demand_max = calc_demand_bounds(ref)
    sum_demand = calc_sum_demand(ref)
    flow_min, flow_max = calc_flow_bounds(ref, head_min, head_max, sum_demand)

    LOGGER.debug("bounds %s: sum_demand=%g", ref.index, sum_demand)

    return BoundTables(
        head_min=head_min,
        head_max=head_max,
        flow_min=flow_min,
        flow_max=flow_max,
        volume_min=volume_min,
        volume_max=volume_max,
        demand_min=demand_min,
        demand_max=demand_max,
        gain_max=calc_pump_gain_bounds(ref),
        sum_demand=sum_demand,
    )
