# step_mesh/state/store.py
"""
PERSISTENCE COLLABORATOR
========================

The core needs exactly three capabilities from its store:

    1. a conditional update scoped to one triangle (optimistic concurrency
       on Triangle.version)
    2. a global unique index on (account, nonce)
    3. an append-only audit log

MeshStore is that contract. InMemoryStore implements it for tests, demos
and single-process deployments; a database-backed store implements the
same methods inside one transaction.

TIMEOUTS:
---------
Every store call must finish or fail within `timeout_s`. InMemoryStore
bounds lock acquisition and raises StoreUnavailableError rather than
blocking forever.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..addressing import TriangleId
from ..errors import ConcurrentUpdateError, NonceConflictError, StoreUnavailableError
from .models import AuditEvent, ClickMutation, ProofRecord, Triangle

logger = logging.getLogger(__name__)


class MeshStore(ABC):
    """Abstract persistence collaborator."""

    @abstractmethod
    def get_triangle(self, tid: TriangleId) -> Optional[Triangle]:
        """Materialized state, or None if the triangle was never referenced."""

    @abstractmethod
    def has_nonce(self, account: str, nonce: str) -> bool:
        ...

    @abstractmethod
    def last_proof(self, account: str) -> Optional[ProofRecord]:
        ...

    @abstractmethod
    def balance(self, account: str) -> Decimal:
        ...

    @abstractmethod
    def commit_click(self, mutation: ClickMutation) -> Decimal:
        """
        Apply a click atomically and return the account's new balance.

        Raises:
        -------
        ConcurrentUpdateError
            The triangle's version is no longer mutation.expected_version
        NonceConflictError
            (account, nonce) already recorded
        StoreUnavailableError
            The store could not complete within its timeout
        """

    @abstractmethod
    def audit_log(self, tid: Optional[TriangleId] = None) -> List[AuditEvent]:
        """Events in commit order, optionally for one triangle."""

    @abstractmethod
    def triangles(self) -> List[Triangle]:
        """All materialized triangles."""


def _account_key(account: str) -> str:
    return account.lower()


class InMemoryStore(MeshStore):
    """
    Thread-safe dict-backed store.

    One lock guards all state, so commit_click is trivially atomic. The
    version check still matters: the lifecycle reads, validates and builds
    its mutation outside the lock.
    """

    def __init__(self, timeout_s: float = 5.0):
        self.timeout_s = timeout_s
        self._lock = threading.Lock()
        self._triangles: Dict[TriangleId, Triangle] = {}
        self._nonces: Set[Tuple[str, str]] = set()
        self._last_proofs: Dict[str, ProofRecord] = {}
        self._balances: Dict[str, Decimal] = {}
        self._events: List[AuditEvent] = []

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout_s):
            raise StoreUnavailableError(f"Store lock not acquired within {self.timeout_s} s")
        try:
            yield
        finally:
            self._lock.release()

    def get_triangle(self, tid: TriangleId) -> Optional[Triangle]:
        with self._locked():
            return self._triangles.get(tid)

    def has_nonce(self, account: str, nonce: str) -> bool:
        with self._locked():
            return (_account_key(account), nonce) in self._nonces

    def last_proof(self, account: str) -> Optional[ProofRecord]:
        with self._locked():
            return self._last_proofs.get(_account_key(account))

    def balance(self, account: str) -> Decimal:
        with self._locked():
            return self._balances.get(_account_key(account), Decimal(0))

    def commit_click(self, mutation: ClickMutation) -> Decimal:
        tid = mutation.triangle.id
        account = _account_key(mutation.account)

        with self._locked():
            current = self._triangles.get(tid)
            current_version = current.version if current is not None else 0
            if current_version != mutation.expected_version:
                raise ConcurrentUpdateError(
                    f"Triangle {mutation.triangle.address} is at version {current_version}, "
                    f"expected {mutation.expected_version}"
                )

            nonce_key = (account, mutation.nonce)
            if nonce_key in self._nonces:
                raise NonceConflictError(f"Nonce {mutation.nonce!r} already used by {mutation.account}")

            # All checks passed; nothing below can fail
            self._triangles[tid] = mutation.triangle
            for child in mutation.new_children:
                if child.id not in self._triangles:
                    self._triangles[child.id] = child
            self._nonces.add(nonce_key)
            self._last_proofs[account] = mutation.proof
            balance = self._balances.get(account, Decimal(0)) + mutation.reward
            self._balances[account] = balance
            self._events.extend(mutation.events)

        logger.debug("Committed click on %s (version %d -> %d)",
                     mutation.triangle.address, mutation.expected_version, mutation.triangle.version)
        return balance

    def audit_log(self, tid: Optional[TriangleId] = None) -> List[AuditEvent]:
        with self._locked():
            if tid is None:
                return list(self._events)
            return [e for e in self._events if e.triangle_id == tid]

    def triangles(self) -> List[Triangle]:
        with self._locked():
            return list(self._triangles.values())
