from __future__ import annotations

import logging
import os
from typing import Dict, Optional

import pandas as pd

from wdnopt.core.build.bounds import BoundTables
from wdnopt.core.build.ref import NetworkRef

LOGGER = logging.getLogger(__name__)


def head_bounds_frame(bounds: BoundTables) -> pd.DataFrame:
    """
    Columns: node, h_min_m, h_max_m, h_range_m
    """
    df = pd.DataFrame({
        "node": list(bounds.head_min),
        "h_min_m": [bounds.head_min[i] for i in bounds.head_min],
        "h_max_m": [bounds.head_max[i] for i in bounds.head_min],
    })
    df["h_range_m"] = df["h_max_m"] - df["h_min_m"]
    return df


def flow_bounds_frame(bounds: BoundTables, ref: Optional[NetworkRef] = None) -> pd.DataFrame:
    """
    One row per (link, candidate):
      link, candidate, link_type, q_min_m3s, q_max_m3s
    link_type is filled only when the reference is given.
    """
    rows = []
    for a, lbs in bounds.flow_min.items():
        for r_id, (lb, ub) in enumerate(zip(lbs, bounds.flow_max[a])):
            rows.append({
                "link": a,
                "candidate": r_id,
                "link_type": ref.link(a).link_type.value if ref is not None else None,
                "q_min_m3s": lb,
                "q_max_m3s": ub,
            })
    return pd.DataFrame(rows, columns=["link", "candidate", "link_type", "q_min_m3s", "q_max_m3s"])


def tank_bounds_frame(bounds: BoundTables) -> pd.DataFrame:
    """
    Columns: tank, v_min_m3, v_max_m3
    """
    return pd.DataFrame({
        "tank": list(bounds.volume_min),
        "v_min_m3": [bounds.volume_min[t] for t in bounds.volume_min],
        "v_max_m3": [bounds.volume_max[t] for t in bounds.volume_min],
    }, columns=["tank", "v_min_m3", "v_max_m3"])


def export_bounds_csv(
    bounds: BoundTables,
    folder: str,
    ref: Optional[NetworkRef] = None,
    prefix: str = "",
) -> Dict[str, str]:
    """
    Writes <prefix>heads.csv, <prefix>flows.csv and <prefix>tanks.csv into folder.
    Returns {kind: path}.
    """
    os.makedirs(folder, exist_ok=True)

    frames = {
        "heads": head_bounds_frame(bounds),
        "flows": flow_bounds_frame(bounds, ref),
        "tanks": tank_bounds_frame(bounds),
    }

    paths = {}
    for kind, df in frames.items():
        path = os.path.join(folder, f"{prefix}{kind}.csv")
        df.to_csv(path, index=False)
        paths[kind] = path

    LOGGER.info("bounds exported to %s", folder)
    return paths
