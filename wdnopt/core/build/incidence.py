from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from wdnopt.core.models.link import LinkType
from wdnopt.core.models.network import Network

Arc = Tuple[str, str, str]  # (link uid, this node, other node)


@dataclass(frozen=True)
class IncidenceIndex:
    """
    Node -> incident arcs and attached components. Every node is keyed, even
    with empty lists.

    arcs_fr[i]: (a, node_fr, node_to) for links starting at i
    arcs_to[i]: (a, node_to, node_fr) for links ending at i
    """
    arcs_fr: Dict[str, List[Arc]]
    arcs_to: Dict[str, List[Arc]]
    node_demand: Dict[str, List[str]]
    node_tank: Dict[str, List[str]]
    node_reservoir: Dict[str, List[str]]
    link_type: Dict[str, LinkType]

    def degree(self, i: str) -> int:
        return len(self.arcs_fr[i]) + len(self.arcs_to[i])

    def has_component(self, i: str) -> bool:
        return bool(self.node_demand[i] or self.node_tank[i] or self.node_reservoir[i])

    def arcs_fr_of_type(self, i: str, types: Iterable[LinkType]) -> List[Arc]:
        types = tuple(types)
        return [arc for arc in self.arcs_fr[i] if self.link_type[arc[0]] in types]

    def arcs_to_of_type(self, i: str, types: Iterable[LinkType]) -> List[Arc]:
        types = tuple(types)
        return [arc for arc in self.arcs_to[i] if self.link_type[arc[0]] in types]


def build_incidence(network: Network) -> IncidenceIndex:
    """
    Pure function of the topology: same network -> identical index.
    """
    arcs_fr: Dict[str, List[Arc]] = {i: [] for i in network.nodes}
    arcs_to: Dict[str, List[Arc]] = {i: [] for i in network.nodes}

    for uid, a in network.links.items():
        arcs_fr[a.node_fr].append((uid, a.node_fr, a.node_to))
        arcs_to[a.node_to].append((uid, a.node_to, a.node_fr))

    node_demand: Dict[str, List[str]] = {i: [] for i in network.nodes}
    node_tank: Dict[str, List[str]] = {i: [] for i in network.nodes}
    node_reservoir: Dict[str, List[str]] = {i: [] for i in network.nodes}

    for uid, d in network.demands.items():
        node_demand[d.node].append(uid)
    for uid, t in network.tanks.items():
        node_tank[t.node].append(uid)
    for uid, r in network.reservoirs.items():
        node_reservoir[r.node].append(uid)

    return IncidenceIndex(
        arcs_fr=arcs_fr,
        arcs_to=arcs_to,
        node_demand=node_demand,
        node_tank=node_tank,
        node_reservoir=node_reservoir,
        link_type={uid: a.link_type for uid, a in network.links.items()},
    )
