from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass(frozen=True, slots=True)
class Node:
    """
    Canonical hydraulic node (core model).

    Notes:
    - uid: identifier coming from the normalized network mapping
    - h_min/h_max: optional explicit head bounds, they only tighten computed bounds
    - head: fixed head of an attached (non-dispatchable) reservoir, if any
    """
    uid: str
    elevation: float  # [m]

    h_min: Optional[float] = None
    h_max: Optional[float] = None
    head: Optional[float] = None

    name: Optional[str] = None

    @staticmethod
    def from_dict(uid: str, rec: Dict[str, Any]) -> "Node":
        return Node(
            uid=str(uid),
            elevation=float(rec.get("elevation", 0.0)),
            h_min=_maybe_float(rec.get("h_min")),
            h_max=_maybe_float(rec.get("h_max")),
            head=_maybe_float(rec.get("head")),
            name=rec.get("name"),
        )


def _maybe_float(x: Any) -> Optional[float]:
    if x is None:
        return None
    return float(x)
