from __future__ import annotations

import copy

import pyomo.environ as pyo
import pytest

from wdnopt.core.build.bounds import calc_bounds
from wdnopt.core.build.config import BuildConfig
from wdnopt.core.build.ref import build_single_ref
from wdnopt.core.form.context import ModelContext
from wdnopt.core.form.formulation import Formulation
from wdnopt.core.form.variables import build_variables
from wdnopt.core.models.network import Network


# ============================================================
# Network mappings
# ============================================================

TWO_NODE = {
    "name": "two_node",
    "head_loss": "h-w",
    "node": {
        "A": {"elevation": 100.0},
        "B": {"elevation": 50.0},
    },
    "pipe": {
        "p1": {"node_fr": "A", "node_to": "B", "length": 1000.0, "diameter": 0.5, "roughness": 130.0},
    },
    "reservoir": {"R": {"node": "A", "head": 100.0}},
    "demand": {"d1": {"node": "B", "flow_rate": 10.0}},
}

CHAIN = {
    "name": "chain",
    "head_loss": "h-w",
    "node": {
        "A": {"elevation": 100.0},
        "B": {"elevation": 60.0},
        "C": {"elevation": 40.0},
    },
    "pipe": {
        "p1": {"node_fr": "A", "node_to": "B", "length": 500.0, "diameter": 0.3, "roughness": 120.0},
        "p2": {"node_fr": "B", "node_to": "C", "length": 500.0, "diameter": 0.3, "roughness": 120.0},
    },
    "reservoir": {"R": {"node": "A", "head": 100.0}},
    "demand": {"d1": {"node": "C", "flow_rate": 0.1}},
}

TANK = {
    "name": "tank",
    "head_loss": "h-w",
    "time_step": 3600.0,
    "node": {
        "T": {"elevation": 50.0},
        "J": {"elevation": 20.0},
    },
    "pipe": {
        "p1": {"node_fr": "T", "node_to": "J", "length": 200.0, "diameter": 0.3, "roughness": 120.0},
    },
    "tank": {
        "T1": {"node": "T", "diameter": 10.0, "min_level": 1.0, "max_level": 5.0, "init_level": 3.0},
    },
    "demand": {"d1": {"node": "J", "flow_rate": 0.05}},
}

PUMPED = {
    "name": "pumped",
    "head_loss": "h-w",
    "node": {
        "A": {"elevation": 10.0},
        "B": {"elevation": 10.0},
    },
    "pump": {
        "pu1": {"node_fr": "A", "node_to": "B", "head_curve": [[0.0, 40.0], [0.05, 35.0], [0.1, 20.0]]},
    },
    "reservoir": {"R": {"node": "A", "head": 10.0}},
    "demand": {"d1": {"node": "B", "flow_rate": 0.05}},
}


# every link subtype, a tank and a dispatchable demand
FULL = {
    "name": "full",
    "head_loss": "h-w",
    "time_step": 3600.0,
    "node": {
        "R1": {"elevation": 0.0},
        "P": {"elevation": 0.0},
        "J1": {"elevation": 5.0},
        "J2": {"elevation": 5.0},
        "J3": {"elevation": 3.0},
        "J4": {"elevation": 3.0},
        "J5": {"elevation": 0.0},
        "T": {"elevation": 30.0},
    },
    "pump": {
        "pu1": {"node_fr": "R1", "node_to": "P", "head_curve": [[0.0, 60.0], [0.05, 55.0], [0.1, 40.0]]},
    },
    "pipe": {
        "p1": {"node_fr": "P", "node_to": "J1", "length": 300.0, "diameter": 0.3, "roughness": 120.0},
        "p2": {"node_fr": "J1", "node_to": "J2", "length": 100.0, "diameter": 0.2, "roughness": 120.0,
               "has_check_valve": True},
        "p3": {"node_fr": "J2", "node_to": "J3", "length": 100.0, "diameter": 0.2, "roughness": 120.0,
               "has_shutoff_valve": True},
        "p4": {"node_fr": "J1", "node_to": "T", "length": 400.0, "roughness": 120.0,
               "diameters": [{"diameter": 0.2, "cost": 80.0}, {"diameter": 0.3, "cost": 120.0}]},
    },
    "valve": {
        "v1": {"node_fr": "J3", "node_to": "J4", "valve_type": "prv", "setting": 20.0},
        "v2": {"node_fr": "J2", "node_to": "J5"},
    },
    "short_pipe": {
        "s1": {"node_fr": "J4", "node_to": "J5"},
    },
    "tank": {
        "T1": {"node": "T", "diameter": 5.0, "min_level": 1.0, "max_level": 4.0, "init_level": 2.0},
    },
    "reservoir": {"R": {"node": "R1", "head": 10.0}},
    "demand": {
        "d1": {"node": "J4", "flow_rate": 0.02},
        "d2": {"node": "J5", "dispatchable": True, "demand_min": 0.0, "demand_max": 0.01},
    },
}


@pytest.fixture
def full_network():
    return copy.deepcopy(FULL)


@pytest.fixture
def two_node():
    return copy.deepcopy(TWO_NODE)


@pytest.fixture
def chain():
    return copy.deepcopy(CHAIN)


@pytest.fixture
def tank_network():
    return copy.deepcopy(TANK)


@pytest.fixture
def pumped():
    return copy.deepcopy(PUMPED)


@pytest.fixture
def multinetwork_tank():
    nw = copy.deepcopy(TANK)
    time_step = nw.pop("time_step")
    return {
        "multinetwork": True,
        "name": "tank_mn",
        "time_step": time_step,
        "nw": {"1": copy.deepcopy(nw), "2": copy.deepcopy(nw)},
    }


# ============================================================
# Helpers
# ============================================================

def make_context(data, formulation="nc", **options) -> ModelContext:
    """Context of a single network with all its variables created."""
    config = BuildConfig(formulation=Formulation.parse(formulation), **options)
    ref = build_single_ref(Network.from_dict(data), config)
    ctx = ModelContext(ref, calc_bounds(ref, config), config)
    build_variables(ctx)
    return ctx


def set_values(var, values):
    for key, v in values.items():
        var[key].set_value(v)


def satisfied(con, tol=1e-7) -> bool:
    body = pyo.value(con.body)
    lower = None if con.lower is None else pyo.value(con.lower)
    upper = None if con.upper is None else pyo.value(con.upper)
    return (lower is None or body >= lower - tol) and (upper is None or body <= upper + tol)
