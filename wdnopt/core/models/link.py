from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple


class LinkType(str, Enum):
    """Closed set of link variants handled by the model builder."""
    PIPE = "pipe"
    DES_PIPE = "des_pipe"
    CHECK_VALVE = "check_valve"
    SHUTOFF_VALVE = "shutoff_valve"
    PRV = "pressure_reducing_valve"
    PUMP = "pump"
    SHORT_PIPE = "short_pipe"
    VALVE = "valve"


# Links whose head loss follows the friction law (they carry resistances).
RESISTIVE_TYPES = (LinkType.PIPE, LinkType.DES_PIPE, LinkType.CHECK_VALVE, LinkType.SHUTOFF_VALVE)


class FlowDirection(int, Enum):
    POSITIVE = 1
    NEGATIVE = -1
    UNKNOWN = 0

    @staticmethod
    def parse(x: Any) -> "FlowDirection":
        if x is None:
            return FlowDirection.UNKNOWN
        if isinstance(x, FlowDirection):
            return x
        if isinstance(x, str):
            s = x.strip().lower()
            if s in ("positive", "pos", "+", "1"):
                return FlowDirection.POSITIVE
            if s in ("negative", "neg", "-", "-1"):
                return FlowDirection.NEGATIVE
            if s in ("unknown", "", "0", "none"):
                return FlowDirection.UNKNOWN
            raise ValueError(f"Invalid flow_direction: {x!r}")
        return FlowDirection(int(x))


@dataclass(frozen=True, slots=True)
class Link:
    """
    Canonical link (pipe, valve, pump...) of the water network.

    Notes:
    - node_fr/node_to reference Node.uid; positive flow goes node_fr -> node_to
    - diameters/costs are only filled for design-candidate pipes, in input order
    - head_curve holds (flow, head gain) samples for pumps
    """
    uid: str
    link_type: LinkType

    node_fr: str
    node_to: str

    length: float = 0.0              # [m]
    diameter: Optional[float] = None  # [m]
    roughness: Optional[float] = None  # C (H-W) or eps [m] (D-W)

    diameters: Tuple[float, ...] = ()
    costs: Tuple[float, ...] = ()     # unit cost per candidate diameter

    flow_direction: FlowDirection = FlowDirection.UNKNOWN
    q_min: Optional[float] = None
    q_max: Optional[float] = None
    maximum_velocity: Optional[float] = None

    setting: Optional[float] = None   # PRV pressure setting [m]

    head_curve: Tuple[Tuple[float, float], ...] = ()
    efficiency_curve: Tuple[Tuple[float, float], ...] = ()
    flow_min_forward: Optional[float] = None


    @property
    def candidate_diameters(self) -> Tuple[float, ...]:
        if self.diameters:
            return self.diameters
        if self.diameter is not None:
            return (float(self.diameter),)
        return ()

    def area(self, r_id: int = 0) -> float:
        d = self.candidate_diameters[r_id]
        return math.pi * (d ** 2) / 4.0
