# step_mesh/state/models.py
"""
STATE MODELS: What the Store Holds
==================================

    Triangle        materialized state of one TriangleId
    AuditEvent      one immutable log entry (create / click / subdivide / state_change)
    ProofRecord     last accepted proof of an account (speed gate, interval)
    ClickMutation   everything one accepted click changes, committed atomically

All are frozen dataclasses. The lifecycle builds new values with
dataclasses.replace() and hands them to the store in a single ClickMutation;
nothing is mutated in place.

LIFECYCLE:
----------
                 click (clicks < threshold)
               ┌──────────┐
               ▼          │
    ──────> ACTIVE ───────┘
               │
               │ click (clicks == threshold)
               ├──────────────────> SUBDIVIDED     level < max_level, 4 ACTIVE children
               │
               └──────────────────> EXHAUSTED      level == max_level, completion bonus
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..addressing import TriangleId, children_of, encode, parent_of
from ..subdivision import polygon_of


class TriangleState(str, Enum):
    ACTIVE = "active"
    SUBDIVIDED = "subdivided"
    EXHAUSTED = "exhausted"


class EventKind(str, Enum):
    CREATE = "create"
    CLICK = "click"
    SUBDIVIDE = "subdivide"
    STATE_CHANGE = "state_change"


@dataclass(frozen=True)
class Triangle:
    """
    Materialized state of one mesh triangle.

    Attributes:
    -----------
    id : TriangleId
    polygon : 3 × (lon, lat), computed once at creation
    clicks : accepted proofs on this triangle
    state : ACTIVE | SUBDIVIDED | EXHAUSTED
    parent : None for level-1 faces
    children : empty until SUBDIVIDED, then exactly 4
    created_at, moratorium_ends_at, last_click_at : aware UTC datetimes
    version : optimistic-concurrency token, bumped by every committed write
    """
    id: TriangleId
    polygon: Tuple[Tuple[float, float], ...]
    clicks: int = 0
    state: TriangleState = TriangleState.ACTIVE
    parent: Optional[TriangleId] = None
    children: Tuple[TriangleId, ...] = ()
    created_at: Optional[datetime] = None
    moratorium_ends_at: Optional[datetime] = None
    last_click_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def create(cls, tid: TriangleId, now: datetime,
               moratorium_ends_at: Optional[datetime] = None) -> "Triangle":
        """
        New ACTIVE triangle with no clicks.

        Without an explicit moratorium the triangle is mineable immediately
        (moratorium_ends_at == created_at).
        """
        return cls(
            id=tid,
            polygon=tuple(polygon_of(tid)),
            parent=parent_of(tid) if tid.level > 1 else None,
            created_at=now,
            moratorium_ends_at=moratorium_ends_at if moratorium_ends_at is not None else now,
        )

    @property
    def address(self) -> str:
        return encode(self.id)

    @property
    def is_active(self) -> bool:
        return self.state == TriangleState.ACTIVE

    def child_ids(self) -> List[TriangleId]:
        return children_of(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triangle_id": self.address,
            "face": self.id.face,
            "level": self.id.level,
            "path": list(self.id.path),
            "polygon": [list(p) for p in self.polygon],
            "clicks": self.clicks,
            "state": self.state.value,
            "parent": encode(self.parent) if self.parent else None,
            "children": [encode(c) for c in self.children],
            "created_at": _iso(self.created_at),
            "moratorium_ends_at": _iso(self.moratorium_ends_at),
            "last_click_at": _iso(self.last_click_at),
            "version": self.version,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class AuditEvent:
    """One append-only audit log entry."""
    event_id: str
    triangle_id: TriangleId
    kind: EventKind
    timestamp: datetime
    account: Optional[str] = None
    nonce: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProofRecord:
    """Last accepted proof for an account."""
    account: str
    lat: float
    lon: float
    timestamp: datetime
    triangle_id: Optional[TriangleId] = None


@dataclass(frozen=True)
class ClickMutation:
    """
    The complete effect of one accepted click.

    The store applies all of it or none of it, and only if the triangle
    still has `expected_version`.
    """
    triangle: Triangle
    expected_version: int
    account: str
    nonce: str
    reward: Decimal
    proof: ProofRecord
    events: Tuple[AuditEvent, ...]
    new_children: Tuple[Triangle, ...] = ()

    @property
    def subdivided(self) -> bool:
        return self.triangle.state == TriangleState.SUBDIVIDED
