from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import pyomo.environ as pyo

from wdnopt.core.build.bounds import BoundTables
from wdnopt.core.build.config import BuildConfig
from wdnopt.core.build.ref import NetworkRef
from wdnopt.core.build.validate import ConfigurationError, report
from wdnopt.core.form.formulation import Formulation
from wdnopt.core.models.link import LinkType

LOGGER = logging.getLogger(__name__)

# Name of the on/off variable of each switchable link type.
STATUS_VAR = {
    LinkType.CHECK_VALVE: "z_check_valve",
    LinkType.SHUTOFF_VALVE: "z_shutoff_valve",
    LinkType.PRV: "z_pressure_reducing_valve",
    LinkType.PUMP: "z_pump",
    LinkType.VALVE: "z_valve",
}


class ModelContext:
    """
    Everything the templates of one time index read and write.

    ref and bounds are read-only inputs; the context owns the pyomo block, the
    variable store and the constraint registry (category -> component -> keys).
    """

    def __init__(
        self,
        ref: NetworkRef,
        bounds: BoundTables,
        config: Optional[BuildConfig] = None,
        block: Optional[pyo.Block] = None,
    ):
        self.ref = ref
        self.bounds = bounds
        self.config = config or BuildConfig()
        self.block = block if block is not None else pyo.ConcreteModel(name=ref.network.name or "wdnopt")
        self.var: Dict[str, pyo.Var] = {}
        self.con: Dict[str, Dict[str, List[Any]]] = {}

    # ------------------------------------------------------------
    # shortcuts
    # ------------------------------------------------------------

    @property
    def index(self) -> str:
        return self.ref.index

    @property
    def network(self):
        return self.ref.network

    @property
    def formulation(self) -> Formulation:
        return self.config.formulation

    # ------------------------------------------------------------
    # variables
    # ------------------------------------------------------------

    def add_var(self, name: str, bounds: Dict[Any, tuple], domain=pyo.Reals) -> pyo.Var:
        """
        Indexed variable over the keys of `bounds` (key -> (lb, ub)).
        """
        table = dict(bounds)

        def _bounds(m, *key):
            return table[key[0] if len(key) == 1 else key]

        v = pyo.Var(list(table), domain=domain, bounds=_bounds)
        self.block.add_component(name, v)
        self.var[name] = v
        return v

    def head(self, i: str):
        return self.var["h"][i]

    def status(self, a: str):
        return self.var[STATUS_VAR[self.ref.link(a).link_type]][a]

    def flow(self, a: str):
        """Signed flow of link a (an expression in directed formulations)."""
        link = self.ref.link(a)
        if link.link_type == LinkType.DES_PIPE:
            return sum(self.flow_des(a, r) for r in range(len(self.ref.resistance[a])))
        if self.formulation.is_directed:
            return self.var["qp"][a] - self.var["qn"][a]
        return self.var["q"][a]

    def flow_des(self, a: str, r: int):
        if self.formulation.is_directed:
            return self.var["qp_des"][a, r] - self.var["qn_des"][a, r]
        return self.var["q_des"][a, r]

    # ------------------------------------------------------------
    # constraint registry
    # ------------------------------------------------------------

    def _category(self, category: str) -> pyo.Constraint:
        if category not in self.con:
            self.block.add_component(category, pyo.Constraint(pyo.Any))
            self.con[category] = {}
        return self.block.component(category)

    def register(self, category: str, component: str, exprs: Iterable[Any]) -> List[Any]:
        """
        Store the constraints of one component under a category. Re-registering
        the same (category, component) replaces the previous entries, so a
        template run twice leaves the model unchanged.
        """
        con = self._category(category)
        old = self.con[category].get(component, [])

        keys = []
        for expr in exprs:
            if expr is True:
                continue
            if expr is False:
                report(ConfigurationError(
                    f"Constraint {category}[{component}] of index {self.index} is trivially infeasible."
                ))
            key = (component, len(keys))
            con[key] = expr
            keys.append(key)

        for key in old[len(keys):]:
            del con[key]

        self.con[category][component] = keys
        return [con[k] for k in keys]

    def constraints(self, category: str, component: str) -> List[Any]:
        keys = self.con.get(category, {}).get(component, [])
        con = self.block.component(category)
        return [con[k] for k in keys]

    def count(self, category: str) -> int:
        return sum(len(v) for v in self.con.get(category, {}).values())
