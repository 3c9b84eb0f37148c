# step_mesh/state - Triangle state and persistence
"""
Materialized triangle state and the store contract.

The click lifecycle lives in step_mesh.state.lifecycle; it depends on the
validator pipeline and is imported from there directly.
"""

from .models import (
    Triangle,
    TriangleState,
    EventKind,
    AuditEvent,
    ProofRecord,
    ClickMutation,
)
from .store import MeshStore, InMemoryStore

__all__ = [
    'Triangle',
    'TriangleState',
    'EventKind',
    'AuditEvent',
    'ProofRecord',
    'ClickMutation',
    'MeshStore',
    'InMemoryStore',
]
