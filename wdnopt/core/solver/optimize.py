from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import pyomo.environ as pyo
from pyomo.common.errors import ApplicationError
from pyomo.opt import SolverStatus, TerminationCondition

from wdnopt.core.solver.build import WaterModel

LOGGER = logging.getLogger(__name__)


class SolveStatus(str, Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    TIME_LIMIT = "time_limit"
    ERROR = "error"


_TERMINATION = {
    TerminationCondition.optimal: SolveStatus.OPTIMAL,
    TerminationCondition.globallyOptimal: SolveStatus.OPTIMAL,
    TerminationCondition.locallyOptimal: SolveStatus.OPTIMAL,
    TerminationCondition.feasible: SolveStatus.OPTIMAL,
    TerminationCondition.infeasible: SolveStatus.INFEASIBLE,
    TerminationCondition.invalidProblem: SolveStatus.INFEASIBLE,
    TerminationCondition.infeasibleOrUnbounded: SolveStatus.INFEASIBLE,
    TerminationCondition.maxTimeLimit: SolveStatus.TIME_LIMIT,
    TerminationCondition.maxIterations: SolveStatus.TIME_LIMIT,
}

# time limit option name per solver
_TIME_LIMIT_OPTION = {
    "ipopt": "max_cpu_time",
    "bonmin": "bonmin.time_limit",
    "couenne": "time_limit",
    "gurobi": "TimeLimit",
    "gurobi_direct": "TimeLimit",
    "gurobi_persistent": "TimeLimit",
    "cbc": "seconds",
    "glpk": "tmlim",
    "scip": "limits/time",
    "highs": "time_limit",
    "appsi_highs": "time_limit",
}


@dataclass(frozen=True)
class SolveResult:
    status: SolveStatus
    termination: str
    objective: Optional[float] = None
    solve_time: float = 0.0
    solution: Dict[str, Dict[str, Dict[Any, Optional[float]]]] = field(default_factory=dict)


def extract_solution(wm: WaterModel) -> Dict[str, Dict[str, Dict[Any, Optional[float]]]]:
    """index -> variable name -> key -> value (None when not set)."""
    return {
        ctx.index: {name: {k: v[k].value for k in v} for name, v in ctx.var.items()}
        for ctx in wm.contexts
    }


def optimize_model(
    wm: WaterModel,
    solver: Union[str, Any],
    *,
    time_limit: Optional[float] = None,
    options: Optional[Dict[str, Any]] = None,
    tee: bool = False,
) -> SolveResult:
    """
    Hand a built model to a pyomo solver and map the outcome to SolveStatus.
    Solver failures are reported as ERROR, not raised.
    """
    opt = pyo.SolverFactory(solver) if isinstance(solver, str) else solver
    name = solver if isinstance(solver, str) else getattr(opt, "name", type(opt).__name__)

    for k, v in (options or {}).items():
        opt.options[k] = v
    if time_limit is not None:
        key = _TIME_LIMIT_OPTION.get(str(name).lower())
        if key is None:
            LOGGER.warning("No time limit option known for solver %r; time_limit ignored.", name)
        else:
            opt.options[key] = time_limit

    t0 = time.perf_counter()
    try:
        results = opt.solve(wm.model, tee=tee, load_solutions=False)
    except (ApplicationError, RuntimeError, ValueError) as exc:
        LOGGER.error("Solver %r failed: %s", name, exc)
        return SolveResult(status=SolveStatus.ERROR, termination=str(exc), solve_time=time.perf_counter() - t0)
    elapsed = time.perf_counter() - t0

    tc = results.solver.termination_condition
    status = _TERMINATION.get(tc, SolveStatus.ERROR)
    if status == SolveStatus.OPTIMAL and results.solver.status not in (SolverStatus.ok, SolverStatus.warning):
        status = SolveStatus.ERROR

    objective, solution = None, {}
    if status in (SolveStatus.OPTIMAL, SolveStatus.TIME_LIMIT) and len(results.solution) > 0:
        wm.model.solutions.load_from(results)
        objective = pyo.value(wm.model.objective)
        solution = extract_solution(wm)

    LOGGER.info("solve %s: %s (%s) in %.2f s", name, status.value, tc, elapsed)
    return SolveResult(
        status=status,
        termination=str(tc),
        objective=objective,
        solve_time=elapsed,
        solution=solution,
    )
