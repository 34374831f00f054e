from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, NoReturn, Optional

if TYPE_CHECKING:
    from wdnopt.core.models.network import Network

LOGGER = logging.getLogger(__name__)


# ============================================================
# Errors
# ============================================================

class ConfigurationError(ValueError):
    """Inconsistent or unsupported input/options. Fatal, never retried."""


class ClassificationError(ConfigurationError):
    """A link record does not map to exactly one device subtype."""


class BoundsError(ValueError):
    """A propagated bound ended with lower > upper."""


class PumpCurveError(BoundsError):
    """Pump head curve cannot be fitted to a decreasing quadratic."""


def report(error: Exception) -> NoReturn:
    """Log a fatal condition and abort the current build."""
    LOGGER.error("%s", error)
    raise error


# ============================================================
# Validation issues
# ============================================================

@dataclass(frozen=True)
class ValidationIssue:
    level: str              # "error" | "warning"
    message: str
    hint: Optional[str] = None


class NetworkValidationError(ConfigurationError):
    """Raised when validation finds one or more errors."""
    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        lines = ["Network validation failed with errors:"]
        for it in issues:
            if it.level == "error":
                lines.append(f"- {it.message}" + (f" | hint: {it.hint}" if it.hint else ""))
        super().__init__("\n".join(lines))


def validate_network(network: Network) -> List[ValidationIssue]:
    """
    Validate a Network for basic consistency.
    Returns a list of issues (errors and warnings). If errors exist, caller may raise.
    """
    # imported here, the models package depends on this module for its errors
    from wdnopt.core.models.link import RESISTIVE_TYPES, LinkType

    issues: List[ValidationIssue] = []

    # --- Nodes ---
    if not network.nodes:
        issues.append(ValidationIssue(
            level="error",
            message="Network has zero nodes.",
            hint="Add at least one entry under 'node'."
        ))

    for uid, n in network.nodes.items():
        if n.elevation != n.elevation:  # NaN check
            issues.append(ValidationIssue("error", f"Node(uid={uid}) elevation is NaN."))
        if n.h_min is not None and n.h_max is not None and n.h_min > n.h_max:
            issues.append(ValidationIssue("error", f"Node(uid={uid}) has h_min > h_max ({n.h_min} > {n.h_max})."))

    # --- Links ---
    for uid, a in network.links.items():
        for end, node_id in (("node_fr", a.node_fr), ("node_to", a.node_to)):
            if node_id not in network.nodes:
                issues.append(ValidationIssue(
                    "error",
                    f"Link(uid={uid}, type={a.link_type.value}) references unknown {end} uid={node_id!r}.",
                    "Check the node identifiers of the link record."
                ))

        if a.link_type in RESISTIVE_TYPES:
            if a.length <= 0:
                issues.append(ValidationIssue("error", f"Link(uid={uid}) length <= 0: {a.length}"))
            diameters = a.candidate_diameters
            if not diameters:
                issues.append(ValidationIssue("error", f"Link(uid={uid}) has no diameter."))
            elif min(diameters) <= 0:
                issues.append(ValidationIssue("error", f"Link(uid={uid}) has a diameter <= 0: {diameters}"))
            if a.roughness is None or a.roughness <= 0:
                issues.append(ValidationIssue("error", f"Link(uid={uid}) roughness missing or <= 0: {a.roughness!r}"))

        if a.link_type == LinkType.PUMP and not a.head_curve:
            issues.append(ValidationIssue(
                "error",
                f"Pump(uid={uid}) has an empty head curve.",
                "Provide at least one (flow, head) point."
            ))

        if a.link_type == LinkType.PRV and a.setting is None:
            issues.append(ValidationIssue("error", f"PRV(uid={uid}) has no pressure setting."))

        if a.q_min is not None and a.q_max is not None and a.q_min > a.q_max:
            issues.append(ValidationIssue("error", f"Link(uid={uid}) has q_min > q_max ({a.q_min} > {a.q_max})."))

    # --- Node-attached components ---
    for kind, comps in (("Tank", network.tanks), ("Reservoir", network.reservoirs), ("Demand", network.demands)):
        for uid, c in comps.items():
            if c.node not in network.nodes:
                issues.append(ValidationIssue("error", f"{kind}(uid={uid}) references unknown node uid={c.node!r}."))

    for uid, t in network.tanks.items():
        if t.min_level > t.max_level:
            issues.append(ValidationIssue("error", f"Tank(uid={uid}) has min_level > max_level."))
        if t.curve_name is None and t.diameter <= 0:
            issues.append(ValidationIssue("error", f"Tank(uid={uid}) diameter <= 0: {t.diameter}"))

    for uid, r in network.reservoirs.items():
        node = network.nodes.get(r.node)
        if not r.dispatchable and r.head is None and (node is None or node.head is None):
            issues.append(ValidationIssue(
                "error",
                f"Reservoir(uid={uid}) is fixed but no head is given.",
                "Set 'head' on the reservoir or on its node."
            ))

    # --- Connectivity ---
    n_parts = _count_components(network)
    if n_parts > 1:
        issues.append(ValidationIssue(
            "warning",
            f"Network splits into {n_parts} parts that no link connects.",
            "Isolated parts get no flow unless they hold their own sources."
        ))

    return issues


def _count_components(network: Network) -> int:
    parent = {i: i for i in network.nodes}

    def root(i: str) -> str:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for a in network.links.values():
        if a.node_fr in parent and a.node_to in parent:
            parent[root(a.node_fr)] = root(a.node_to)

    return len({root(i) for i in parent})


def raise_on_errors(issues: List[ValidationIssue]) -> None:
    for w in (i for i in issues if i.level == "warning"):
        LOGGER.warning("%s", w.message)
    errors = [i for i in issues if i.level == "error"]
    if errors:
        report(NetworkValidationError(errors))
