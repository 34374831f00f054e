from __future__ import annotations

import logging
from typing import Union

from wdnopt.core.models.network import MultiNetwork, Network

LOGGER = logging.getLogger(__name__)

NetworkLike = Union[Network, MultiNetwork]


def relax_tanks(data: NetworkLike) -> NetworkLike:
    """All tanks dispatchable (tank levels become free decisions)."""
    if isinstance(data, MultiNetwork):
        return data.replace_networks({n: data[n].with_tanks(True) for n in data})
    return data.with_tanks(True)


def fix_tanks(data: NetworkLike) -> NetworkLike:
    """All tanks non-dispatchable (levels follow the volume balance)."""
    if isinstance(data, MultiNetwork):
        return data.replace_networks({n: data[n].with_tanks(False) for n in data})
    return data.with_tanks(False)


def make_tank_start_dispatchable(data: NetworkLike) -> NetworkLike:
    """
    Tanks of the first time index become dispatchable, the rest is unchanged.
    For a single network every tank is made dispatchable.
    """
    if isinstance(data, MultiNetwork):
        first = data.indices[0]
        networks = dict(data.networks)
        networks[first] = data[first].with_tanks(True)
        return data.replace_networks(networks)
    return data.with_tanks(True)


def apply_tank_mode(data: NetworkLike, mode: str) -> NetworkLike:
    """
    Single tank-dispatchability toggle, applied before bound propagation.
    Returns a new object; the input is left unchanged.
    """
    if mode == "as_given":
        return data
    if mode == "fixed":
        out = fix_tanks(data)
    elif mode == "relaxed":
        out = relax_tanks(data)
    elif mode == "start_dispatchable":
        out = make_tank_start_dispatchable(data)
    else:
        raise ValueError(f"Unknown tank mode: {mode!r}")
    LOGGER.debug("tank mode %r applied", mode)
    return out
