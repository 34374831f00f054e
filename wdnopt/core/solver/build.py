# wdnopt/core/solver/build.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Union

import pyomo.environ as pyo

from wdnopt.core.build.bounds import calc_bounds
from wdnopt.core.build.config import BuildConfig
from wdnopt.core.build.ref import build_refs, build_single_ref
from wdnopt.core.build.validate import ConfigurationError, report
from wdnopt.core.form.context import ModelContext
from wdnopt.core.form.formulation import Formulation
from wdnopt.core.form.templates import (
    constraint_flow_conservation,
    constraint_link,
    constraint_node_directionality,
    constraint_reservoir_head,
    constraint_tank_head,
    constraint_tank_state,
)
from wdnopt.core.form.temporal import link_time_indices
from wdnopt.core.form.variables import build_variables
from wdnopt.core.models.network import MultiNetwork, Network, is_multinetwork

LOGGER = logging.getLogger(__name__)


# ============================================================
# Result container
# ============================================================

@dataclass
class WaterModel:
    """
    Built pyomo model and the per-index contexts, in time order.

    For a single network `model` is the block of the only context; for a
    multinetwork each context owns a `nw_<index>` sub-block of `model`.
    """
    model: pyo.ConcreteModel
    contexts: List[ModelContext]
    multinetwork: bool = False
    config: BuildConfig = field(default_factory=BuildConfig)

    @property
    def indices(self) -> List[str]:
        return [ctx.index for ctx in self.contexts]

    def context(self, index: Optional[str] = None) -> ModelContext:
        if index is None:
            return self.contexts[0]
        for ctx in self.contexts:
            if ctx.index == str(index):
                return ctx
        raise KeyError(f"Unknown time index: {index!r}")

    def constraint_counts(self) -> Dict[str, Dict[str, int]]:
        return {ctx.index: {cat: ctx.count(cat) for cat in ctx.con} for ctx in self.contexts}


# ============================================================
# Build passes
# ============================================================

def build_wf(ctx: ModelContext, *, initial_tank_state: bool = True) -> None:
    """
    Variables and constraints of one time index (feasibility problem).
    """
    build_variables(ctx)

    for a in ctx.network.links:
        constraint_link(ctx, a)

    for i in ctx.network.nodes:
        constraint_flow_conservation(ctx, i)
        constraint_node_directionality(ctx, i)

    for r in ctx.network.reservoirs:
        constraint_reservoir_head(ctx, r)

    for t in ctx.network.tanks:
        constraint_tank_head(ctx, t)
        if initial_tank_state:
            constraint_tank_state(ctx, t)

    LOGGER.info(
        "index %s built (%s): %s",
        ctx.index, ctx.formulation.value,
        ", ".join(f"{cat}={ctx.count(cat)}" for cat in sorted(ctx.con)),
    )


def build_mn_wf(contexts: List[ModelContext]) -> None:
    """
    Every index is built independently; only the first carries initial tank
    volumes, the others are tied to their predecessor by the volume balance.
    """
    for k, ctx in enumerate(contexts):
        build_wf(ctx, initial_tank_state=(k == 0))
    link_time_indices(contexts)


def _add_objective(model: pyo.ConcreteModel) -> None:
    # feasibility only
    model.objective = pyo.Objective(expr=0.0, sense=pyo.minimize)


# ============================================================
# Entry point
# ============================================================

def instantiate_model(
    data: Union[Dict[str, Any], Network, MultiNetwork],
    formulation: Union[Formulation, str, None] = None,
    *,
    multinetwork: bool = False,
    config: Optional[BuildConfig] = None,
    build_method: Optional[Callable[..., None]] = None,
) -> WaterModel:
    """
    Build a model from raw network data.

    build_method receives the single context (single network) or the list of
    contexts (multinetwork); defaults are build_wf and build_mn_wf.
    """
    config = config or BuildConfig()
    if formulation is not None:
        config = replace(config, formulation=Formulation.parse(formulation))
    config.validate()

    if isinstance(data, dict):
        data_is_multi = is_multinetwork(data)
    else:
        data_is_multi = isinstance(data, MultiNetwork)

    if multinetwork and not data_is_multi:
        report(ConfigurationError("Attempted to build a multinetwork model with single-network data."))
    if not multinetwork and data_is_multi:
        report(ConfigurationError("Attempted to build a single-network model with multinetwork data."))

    if not multinetwork:
        network = Network.from_dict(data) if isinstance(data, dict) else data
        ref = build_single_ref(network, config)
        model = pyo.ConcreteModel(name=network.name or "wdnopt")
        ctx = ModelContext(ref, calc_bounds(ref, config), config, block=model)
        (build_method or build_wf)(ctx)
        _add_objective(model)
        return WaterModel(model=model, contexts=[ctx], multinetwork=False, config=config)

    multi = MultiNetwork.from_dict(data) if isinstance(data, dict) else data
    refs = build_refs(multi, config)
    model = pyo.ConcreteModel(name=multi[multi.indices[0]].name or "wdnopt")

    contexts = []
    for ref in refs:
        block = pyo.Block()
        model.add_component(f"nw_{ref.index}", block)
        contexts.append(ModelContext(ref, calc_bounds(ref, config), config, block=block))

    (build_method or build_mn_wf)(contexts)
    _add_objective(model)

    LOGGER.info("multinetwork model built: %d time indices", len(contexts))
    return WaterModel(model=model, contexts=contexts, multinetwork=True, config=config)
