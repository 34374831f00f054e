from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from wdnopt.core.build.validate import ClassificationError, report
from wdnopt.core.hydraulics.friction import resistance
from wdnopt.core.models.link import RESISTIVE_TYPES, FlowDirection, Link, LinkType

if TYPE_CHECKING:
    from wdnopt.core.models.network import Network

LOGGER = logging.getLogger(__name__)

# Link categories of the normalized mapping, in classification order.
LINK_CATEGORIES = ("pipe", "short_pipe", "pump", "valve")

_DEFAULT_TYPE = {
    "pipe": LinkType.PIPE,
    "short_pipe": LinkType.SHORT_PIPE,
    "pump": LinkType.PUMP,
    "valve": LinkType.VALVE,
}


# ============================================================
# Subtype predicates
# ============================================================

def has_check_valve(rec: Dict[str, Any]) -> bool:
    return bool(rec.get("has_check_valve", False))


def has_shutoff_valve(rec: Dict[str, Any]) -> bool:
    return bool(rec.get("has_shutoff_valve", False))


def is_pressure_reducing_valve(rec: Dict[str, Any]) -> bool:
    return str(rec.get("valve_type", "")).strip().lower() == "prv"


def is_des_pipe(rec: Dict[str, Any]) -> bool:
    return "diameters" in rec


_PREDICATES = (
    (has_check_valve, LinkType.CHECK_VALVE),
    (has_shutoff_valve, LinkType.SHUTOFF_VALVE),
    (is_pressure_reducing_valve, LinkType.PRV),
    (is_des_pipe, LinkType.DES_PIPE),
)


def classify_link(category: str, uid: str, rec: Dict[str, Any]) -> LinkType:
    """
    Device subtype of a raw link record. A record must match at most one
    predicate; records matching none fall back to the category default.
    """
    if category not in _DEFAULT_TYPE:
        report(ClassificationError(f"Unknown link category {category!r} for link {uid!r}."))

    matches = [t for pred, t in _PREDICATES if pred(rec)]

    if len(matches) > 1:
        names = ", ".join(t.value for t in matches)
        report(ClassificationError(f"Link {category}/{uid} is ambiguous: matches {names}."))

    if category in ("pump", "short_pipe") and matches:
        report(ClassificationError(
            f"Link {category}/{uid} cannot be tagged as {matches[0].value}."
        ))
    if category == "valve" and LinkType.DES_PIPE in matches:
        report(ClassificationError(f"Valve {uid} cannot carry design diameters."))

    return matches[0] if matches else _DEFAULT_TYPE[category]


def _maybe_float(x: Any):
    return None if x is None else float(x)


def link_from_record(category: str, uid: str, rec: Dict[str, Any]) -> Link:
    link_type = classify_link(category, uid, rec)

    diameters: Tuple[float, ...] = ()
    costs: Tuple[float, ...] = ()
    if link_type == LinkType.DES_PIPE:
        diameters = tuple(float(d["diameter"]) for d in rec["diameters"])
        costs = tuple(float(d.get("cost", 0.0)) for d in rec["diameters"])
        if not diameters:
            report(ClassificationError(f"Design pipe {uid} has an empty diameter list."))

    return Link(
        uid=str(uid),
        link_type=link_type,
        node_fr=str(rec["node_fr"]),
        node_to=str(rec["node_to"]),
        length=float(rec.get("length", 0.0) or 0.0),
        diameter=_maybe_float(rec.get("diameter")),
        roughness=_maybe_float(rec.get("roughness")),
        diameters=diameters,
        costs=costs,
        flow_direction=FlowDirection.parse(rec.get("flow_direction")),
        q_min=_maybe_float(rec.get("q_min")),
        q_max=_maybe_float(rec.get("q_max")),
        maximum_velocity=_maybe_float(rec.get("maximum_velocity", rec.get("maximumVelocity"))),
        setting=_maybe_float(rec.get("setting")),
        head_curve=tuple((float(q), float(h)) for q, h in rec.get("head_curve", ())),
        efficiency_curve=tuple((float(q), float(e)) for q, e in rec.get("efficiency_curve", ())),
        flow_min_forward=_maybe_float(rec.get("flow_min_forward")),
    )


def links_from_dict(data: Dict[str, Any]) -> Dict[str, Link]:
    """
    Classify every link record of the normalized mapping. Link ids must be
    unique across categories.
    """
    links: Dict[str, Link] = {}
    for category in LINK_CATEGORIES:
        for uid, rec in data.get(category, {}).items():
            uid = str(uid)
            if uid in links:
                report(ClassificationError(
                    f"Link id {uid!r} is used by both {links[uid].link_type.value} and {category}."
                ))
            links[uid] = link_from_record(category, uid, rec)

    LOGGER.debug("classified %d links", len(links))
    return links


# ============================================================
# Resistances and costs
# ============================================================

def calc_resistances(network: Network) -> Dict[str, Tuple[float, ...]]:
    """
    Resistance per unit length for every resistive link, one entry per
    candidate diameter (in the order of the candidate list).
    """
    out: Dict[str, Tuple[float, ...]] = {}
    for uid, a in network.links.items():
        if a.link_type not in RESISTIVE_TYPES:
            continue
        out[uid] = tuple(
            resistance(diameter=d, roughness=float(a.roughness), headloss=network.headloss)
            for d in a.candidate_diameters
        )
    return out


def calc_resistance_costs(network: Network) -> Dict[str, Tuple[float, ...]]:
    """Unit cost per candidate diameter of design pipes."""
    return {
        uid: a.costs
        for uid, a in network.links.items()
        if a.link_type == LinkType.DES_PIPE
    }


def calc_design_costs(network: Network) -> Dict[str, List[float]]:
    """Total cost (unit cost * length) per candidate of design pipes."""
    return {
        uid: [c * a.length for c in a.costs]
        for uid, a in network.links.items()
        if a.link_type == LinkType.DES_PIPE
    }
