from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from wdnopt.core.build.classify import links_from_dict
from wdnopt.core.build.config import HeadlossConfig
from wdnopt.core.models.components import Demand, Reservoir, Tank
from wdnopt.core.models.link import Link, LinkType
from wdnopt.core.models.node import Node

# Top-level keys of a multinetwork mapping inherited by every time index.
GLOBAL_KEYS = ("name", "head_loss", "headloss", "viscosity", "time_step")


@dataclass(frozen=True, slots=True)
class Network:
    """
    Canonical water network (core model). Immutable: toggles return a new Network.
    """
    name: str = ""
    nodes: Dict[str, Node] = field(default_factory=dict)
    links: Dict[str, Link] = field(default_factory=dict)
    tanks: Dict[str, Tank] = field(default_factory=dict)
    reservoirs: Dict[str, Reservoir] = field(default_factory=dict)
    demands: Dict[str, Demand] = field(default_factory=dict)

    headloss: HeadlossConfig = field(default_factory=HeadlossConfig)
    time_step: Optional[float] = None  # [s]

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Network":
        ts = data.get("time_step")
        return Network(
            name=str(data.get("name", "")),
            nodes={str(k): Node.from_dict(k, v) for k, v in data.get("node", {}).items()},
            links=links_from_dict(data),
            tanks={str(k): Tank.from_dict(k, v) for k, v in data.get("tank", {}).items()},
            reservoirs={str(k): Reservoir.from_dict(k, v) for k, v in data.get("reservoir", {}).items()},
            demands={str(k): Demand.from_dict(k, v) for k, v in data.get("demand", {}).items()},
            headloss=HeadlossConfig.from_dict(data),
            time_step=None if ts is None else float(ts),
        )

    def links_from(self, node_uid: str) -> List[Link]:
        return [a for a in self.links.values() if a.node_fr == node_uid]

    def links_to(self, node_uid: str) -> List[Link]:
        return [a for a in self.links.values() if a.node_to == node_uid]

    def links_of_type(self, *types: LinkType) -> Dict[str, Link]:
        return {uid: a for uid, a in self.links.items() if a.link_type in types}

    def fixed_demands(self) -> Dict[str, Demand]:
        return {uid: d for uid, d in self.demands.items() if not d.is_dispatchable}

    def dispatchable_demands(self) -> Dict[str, Demand]:
        return {uid: d for uid, d in self.demands.items() if d.is_dispatchable}

    def with_tanks(self, dispatchable: bool) -> "Network":
        """Copy of the network with the dispatchable flag of every tank set."""
        tanks = {uid: replace(t, dispatchable=dispatchable) for uid, t in self.tanks.items()}
        return replace(self, tanks=tanks)


@dataclass(frozen=True)
class MultiNetwork:
    """
    Ordered sequence of per-time-index networks of a time-expanded model.
    """
    indices: Tuple[str, ...]
    networks: Dict[str, Network]

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "MultiNetwork":
        if not is_multinetwork(data):
            raise ValueError("Mapping is not a multinetwork (missing 'multinetwork'/'nw').")

        shared = {k: data[k] for k in GLOBAL_KEYS if k in data}
        networks: Dict[str, Network] = {}
        for n, nw in data["nw"].items():
            merged = dict(shared)
            merged.update(nw)
            networks[str(n)] = Network.from_dict(merged)

        return MultiNetwork(indices=tuple(sorted(networks, key=_index_key)), networks=networks)

    def __iter__(self):
        return iter(self.indices)

    def __len__(self) -> int:
        return len(self.indices)

    def __getitem__(self, n: str) -> Network:
        return self.networks[n]

    def replace_networks(self, networks: Dict[str, Network]) -> "MultiNetwork":
        return MultiNetwork(indices=self.indices, networks=networks)


def is_multinetwork(data: Dict[str, Any]) -> bool:
    return bool(data.get("multinetwork", False)) and "nw" in data


def _index_key(n: str):
    # numeric indices sort numerically ("2" < "10"), others lexicographically
    return (0, int(n), n) if n.lstrip("-").isdigit() else (1, 0, n)
