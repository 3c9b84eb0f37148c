# File: tests/test_store.py
"""
Test the in-memory store: conditional updates, nonce uniqueness,
balances, audit log and lock timeouts.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from conftest import T0
from step_mesh.addressing import TriangleId, children_of
from step_mesh.errors import (
    ConcurrentUpdateError,
    NonceConflictError,
    StoreUnavailableError,
)
from step_mesh.state import (
    AuditEvent,
    ClickMutation,
    EventKind,
    InMemoryStore,
    ProofRecord,
    Triangle,
    TriangleState,
)

TID = TriangleId(face=4, level=3, path=(0, 3))
ACCOUNT = "0xAAAA000000000000000000000000000000000001"


def _mutation(triangle, expected_version, nonce="n-1", reward=Decimal(1), new_children=()):
    return ClickMutation(
        triangle=triangle,
        expected_version=expected_version,
        account=ACCOUNT,
        nonce=nonce,
        reward=reward,
        proof=ProofRecord(account=ACCOUNT.lower(), lat=1.0, lon=2.0, timestamp=T0, triangle_id=triangle.id),
        events=(AuditEvent(event_id=nonce, triangle_id=triangle.id, kind=EventKind.CLICK, timestamp=T0),),
        new_children=new_children,
    )


def _first_click(store, nonce="n-1"):
    fresh = Triangle.create(TID, T0)
    clicked = replace(fresh, clicks=1, last_click_at=T0, version=1)
    return store.commit_click(_mutation(clicked, expected_version=0, nonce=nonce))


def test_unreferenced_triangle_is_absent():
    store = InMemoryStore()
    assert store.get_triangle(TID) is None
    assert store.triangles() == []
    assert store.balance(ACCOUNT) == Decimal(0)
    assert store.last_proof(ACCOUNT) is None


def test_commit_applies_everything():
    store = InMemoryStore()
    balance = _first_click(store)

    assert balance == Decimal(1)
    assert store.get_triangle(TID).clicks == 1
    assert store.get_triangle(TID).version == 1
    assert store.has_nonce(ACCOUNT, "n-1")
    assert store.last_proof(ACCOUNT).lat == 1.0
    assert [e.kind for e in store.audit_log(TID)] == [EventKind.CLICK]


def test_accounts_are_case_insensitive():
    store = InMemoryStore()
    _first_click(store)
    assert store.balance(ACCOUNT.lower()) == Decimal(1)
    assert store.balance(ACCOUNT.upper().replace("0X", "0x")) == Decimal(1)
    assert store.has_nonce(ACCOUNT.lower(), "n-1")


def test_stale_version_rejected():
    """
    WHAT IS THIS TEST?
    ==================
    Two writers read the same triangle at version 0. The first commit
    moves it to version 1; the second still expects 0 and must fail with
    ConcurrentUpdateError, leaving the stored state untouched.
    """
    store = InMemoryStore()
    _first_click(store)

    loser = replace(Triangle.create(TID, T0), clicks=1, version=1)
    with pytest.raises(ConcurrentUpdateError):
        store.commit_click(_mutation(loser, expected_version=0, nonce="n-2"))

    assert store.get_triangle(TID).clicks == 1
    assert not store.has_nonce(ACCOUNT, "n-2")
    assert store.balance(ACCOUNT) == Decimal(1)


def test_nonce_is_globally_unique():
    store = InMemoryStore()
    _first_click(store)

    current = store.get_triangle(TID)
    again = replace(current, clicks=2, version=2)
    with pytest.raises(NonceConflictError):
        store.commit_click(_mutation(again, expected_version=1, nonce="n-1"))
    assert store.get_triangle(TID).clicks == 1


def test_children_inserted_once():
    store = InMemoryStore()
    _first_click(store)

    existing_child = Triangle.create(children_of(TID)[0], T0)
    store._triangles[existing_child.id] = replace(existing_child, clicks=3, version=3)

    current = store.get_triangle(TID)
    kids = tuple(Triangle.create(c, T0) for c in children_of(TID))
    subdivided = replace(current, clicks=2, version=2, state=TriangleState.SUBDIVIDED,
                         children=tuple(k.id for k in kids))
    store.commit_click(_mutation(subdivided, expected_version=1, nonce="n-2", new_children=kids))

    assert store.get_triangle(kids[0].id).clicks == 3
    assert all(store.get_triangle(k.id) is not None for k in kids)
    assert len(store.triangles()) == 5


def test_lock_timeout_raises_unavailable():
    store = InMemoryStore(timeout_s=0.01)
    store._lock.acquire()
    try:
        with pytest.raises(StoreUnavailableError):
            store.get_triangle(TID)
    finally:
        store._lock.release()
