from __future__ import annotations

import logging
from typing import Sequence

from wdnopt.core.build.validate import ConfigurationError, report
from wdnopt.core.form.context import ModelContext

LOGGER = logging.getLogger(__name__)


def constraint_tank_state_link(ctx_1: ModelContext, ctx_2: ModelContext, t: str) -> None:
    """
    V(n2) == V(n1) - dt * q_tank(n1), stored in the block of the later index.

    Only tanks present and non-dispatchable in both indices are linked; a
    tank missing from one of the two indices is skipped with a warning.
    """
    tanks_1, tanks_2 = ctx_1.network.tanks, ctx_2.network.tanks
    if t not in tanks_1 or t not in tanks_2:
        LOGGER.warning(
            "Tank %r is not present in both time indices %s and %s; no volume link added.",
            t, ctx_1.index, ctx_2.index,
        )
        return
    if tanks_1[t].dispatchable or tanks_2[t].dispatchable:
        return

    dt = ctx_1.ref.time_step
    if dt is None:
        report(ConfigurationError(
            f"Linking tank {t!r} between {ctx_1.index} and {ctx_2.index} requires a time_step."
        ))

    V_1, V_2 = ctx_1.var["V"][t], ctx_2.var["V"][t]
    ctx_2.register("tank_state", t, [V_2 == V_1 - dt * ctx_1.var["q_tank"][t]])


def link_time_indices(contexts: Sequence[ModelContext]) -> None:
    """Volume balance between every pair of consecutive time indices."""
    for ctx_1, ctx_2 in zip(contexts[:-1], contexts[1:]):
        for t in sorted(set(ctx_1.network.tanks) | set(ctx_2.network.tanks)):
            constraint_tank_state_link(ctx_1, ctx_2, t)
