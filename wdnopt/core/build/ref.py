from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from wdnopt.core.build.classify import calc_resistance_costs, calc_resistances
from wdnopt.core.build.config import BuildConfig
from wdnopt.core.build.incidence import IncidenceIndex, build_incidence
from wdnopt.core.build.tanks import apply_tank_mode
from wdnopt.core.build.validate import raise_on_errors, validate_network
from wdnopt.core.hydraulics.pump_curve import PumpCurve, fit_head_curve
from wdnopt.core.models.link import Link, LinkType
from wdnopt.core.models.network import MultiNetwork, Network

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkRef:
    """
    Precomputed, read-only data of one network (one time index).
    """
    index: str
    network: Network
    resistance: Dict[str, Tuple[float, ...]]
    resistance_cost: Dict[str, Tuple[float, ...]]
    pump_curve: Dict[str, PumpCurve]
    incidence: IncidenceIndex
    alpha: float

    @property
    def time_step(self) -> Optional[float]:
        return self.network.time_step

    def links(self, *types: LinkType) -> Dict[str, Link]:
        return self.network.links_of_type(*types)

    def link(self, a: str) -> Link:
        return self.network.links[a]


def build_ref(network: Network, *, index: str = "0") -> NetworkRef:
    """
    Validate and derive the reference data of a network whose tank toggle has
    already been applied.
    """
    raise_on_errors(validate_network(network))

    pump_curve = {
        uid: fit_head_curve(a.head_curve)
        for uid, a in network.links_of_type(LinkType.PUMP).items()
    }

    ref = NetworkRef(
        index=str(index),
        network=network,
        resistance=calc_resistances(network),
        resistance_cost=calc_resistance_costs(network),
        pump_curve=pump_curve,
        incidence=build_incidence(network),
        alpha=network.headloss.alpha,
    )

    counts = {t.value: len(network.links_of_type(t)) for t in LinkType}
    LOGGER.debug("ref %s: %d nodes, links %s", ref.index, len(network.nodes), counts)
    return ref


def build_refs(multi: MultiNetwork, config: Optional[BuildConfig] = None) -> List[NetworkRef]:
    """One reference per time index, in index order."""
    config = config or BuildConfig()
    multi = apply_tank_mode(multi, config.tank_mode)
    return [build_ref(multi[n], index=n) for n in multi]


def build_single_ref(network: Network, config: Optional[BuildConfig] = None) -> NetworkRef:
    config = config or BuildConfig()
    return build_ref(apply_tank_mode(network, config.tank_mode))
