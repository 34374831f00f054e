from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class Tank:
    """
    Storage tank attached to a node.

    Only right-cylinder tanks are supported downstream; a tank carrying a
    volume curve (curve_name) is kept here and rejected by the bound propagator.
    """
    uid: str
    node: str

    diameter: float     # [m]
    min_level: float    # [m]
    max_level: float    # [m]
    init_level: float   # [m]
    min_vol: float = 0.0  # [m3]

    dispatchable: bool = False
    curve_name: Optional[str] = None


    @property
    def surface_area(self) -> float:
        return 0.25 * math.pi * self.diameter ** 2

    @staticmethod
    def from_dict(uid: str, rec: Dict[str, Any]) -> "Tank":
        return Tank(
            uid=str(uid),
            node=str(rec["node"]),
            diameter=float(rec.get("diameter", 0.0)),
            min_level=float(rec.get("min_level", 0.0)),
            max_level=float(rec.get("max_level", 0.0)),
            init_level=float(rec.get("init_level", rec.get("min_level", 0.0))),
            min_vol=float(rec.get("min_vol", 0.0) or 0.0),
            dispatchable=bool(rec.get("dispatchable", False)),
            curve_name=rec.get("curve_name") or None,
        )


@dataclass(frozen=True, slots=True)
class Reservoir:
    uid: str
    node: str

    head: Optional[float] = None   # fixed head [m]
    dispatchable: bool = False
    h_min: Optional[float] = None  # used when dispatchable
    h_max: Optional[float] = None

    @property
    def is_dispatchable(self) -> bool:
        return self.dispatchable

    @staticmethod
    def from_dict(uid: str, rec: Dict[str, Any]) -> "Reservoir":
        return Reservoir(
            uid=str(uid),
            node=str(rec["node"]),
            head=None if rec.get("head") is None else float(rec["head"]),
            dispatchable=bool(rec.get("dispatchable", False)),
            h_min=None if rec.get("h_min") is None else float(rec["h_min"]),
            h_max=None if rec.get("h_max") is None else float(rec["h_max"]),
        )


@dataclass(frozen=True, slots=True)
class Demand:
    uid: str
    node: str

    flow_rate: float = 0.0  # [m3/s], fixed demand (negative = injection)
    dispatchable: bool = False
    demand_min: float = 0.0
    demand_max: float = 0.0

    @property
    def is_dispatchable(self) -> bool:
        return self.dispatchable

    @staticmethod
    def from_dict(uid: str, rec: Dict[str, Any]) -> "Demand":
        flow = float(rec.get("flow_rate", 0.0) or 0.0)
        dispatchable = bool(rec.get("dispatchable", False))
        return Demand(
            uid=str(uid),
            node=str(rec["node"]),
            flow_rate=flow,
            dispatchable=dispatchable,
            demand_min=float(rec.get("demand_min", flow if not dispatchable else 0.0)),
            demand_max=float(rec.get("demand_max", flow)),
        )
