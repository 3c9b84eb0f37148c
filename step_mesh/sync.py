# step_mesh/sync.py
"""
LOCAL COMMAND LOG: Optimistic Client State Without Drift
========================================================

PURPOSE:
--------
A client (mobile app, explorer) wants to show a click the moment the user
makes it, before the server has answered. Keeping a second mutable copy of
the mesh and "syncing" it later lets the two copies silently diverge.
Instead the client keeps:

    confirmed   the last state the server reported for each triangle
    pending     commands sent but not yet answered

and the state it displays is always derived:

    view(t) = confirmed(t) with every pending command on t replayed

When an answer arrives, `reconcile` drops the command and replaces
confirmed(t) with whatever the server reported about t: its click count and
state on acceptance, and on rejections that read the stored triangle. A
rejection that says nothing about t just drops the command, which rolls the
view back. There is never a local value that the server result does not
override.

USAGE:
------
    log = LocalCommandLog(click_threshold=11)
    cmd = log.predict(address)                 # view shows clicks + 1
    result = service.submit_proof(payload, sig)
    log.reconcile(cmd, result)                 # view now equals the server's
"""

import itertools
from collections import OrderedDict
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .addressing import MAX_LEVEL, children_of, decode, encode
from .errors import ErrorCode, ProofRejected
from .service import SubmissionResult


class LocalState(str, Enum):
    ACTIVE = "active"
    SUBDIVIDED = "subdivided"
    EXHAUSTED = "exhausted"
    # Server refused it as inactive without saying more (not yet minted)
    LOCKED = "locked"


@dataclass(frozen=True)
class LocalTriangleState:
    triangle_id: str
    clicks: int = 0
    state: LocalState = LocalState.ACTIVE
    children: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PendingCommand:
    command_id: str
    triangle_id: str


class LocalCommandLog:
    """
    Client-side predicted clicks reconciled against authoritative results.

    Parameters:
    -----------
    click_threshold : int
        Must match the server's MeshConfig.click_threshold
    max_level : int
        Must match the server's MeshConfig.max_level
    """

    def __init__(self, click_threshold: int = 11, max_level: int = MAX_LEVEL):
        self.click_threshold = click_threshold
        self.max_level = max_level
        self._confirmed: Dict[str, LocalTriangleState] = {}
        self._pending: "OrderedDict[str, PendingCommand]" = OrderedDict()
        self._ids = itertools.count(1)

    def _apply_click(self, current: LocalTriangleState) -> LocalTriangleState:
        clicks = current.clicks + 1
        if clicks < self.click_threshold:
            return replace(current, clicks=clicks)
        tid = decode(current.triangle_id)
        if tid.level < self.max_level:
            return replace(
                current,
                clicks=clicks,
                state=LocalState.SUBDIVIDED,
                children=tuple(encode(c) for c in children_of(tid)),
            )
        return replace(current, clicks=clicks, state=LocalState.EXHAUSTED)

    def confirmed(self, triangle_id: str) -> LocalTriangleState:
        return self._confirmed.get(triangle_id, LocalTriangleState(triangle_id))

    def view(self, triangle_id: str) -> LocalTriangleState:
        """Confirmed state with all pending commands on this triangle replayed."""
        state = self.confirmed(triangle_id)
        for cmd in self._pending.values():
            if cmd.triangle_id == triangle_id and state.state == LocalState.ACTIVE:
                state = self._apply_click(state)
        return state

    def predict(self, triangle_id: str, local_state: Optional[LocalTriangleState] = None) -> str:
        """
        Record a pending click and return its command id.

        `local_state` seeds the confirmed state of a triangle this log has
        not seen yet (e.g. loaded from a mesh query).

        Raises:
        -------
        ProofRejected(TRIANGLE_INACTIVE)
            If the triangle is already predicted or confirmed non-active
        """
        decode(triangle_id)
        if local_state is not None and triangle_id not in self._confirmed:
            self._confirmed[triangle_id] = local_state

        if self.view(triangle_id).state != LocalState.ACTIVE:
            raise ProofRejected(ErrorCode.TRIANGLE_INACTIVE, f"Triangle {triangle_id} is not active")

        command_id = f"cmd-{next(self._ids)}"
        self._pending[command_id] = PendingCommand(command_id=command_id, triangle_id=triangle_id)
        return command_id

    def reconcile(self, command_id: str, result: SubmissionResult) -> LocalTriangleState:
        """
        Resolve a pending command with the server's answer.

        Whenever the result describes the triangle (accepted, or rejected
        after the server read it), that description replaces the confirmed
        state. A TRIANGLE_INACTIVE rejection without one marks the triangle
        LOCKED. Any other rejection only drops the command. Returns the new
        view.
        """
        cmd = self._pending.pop(command_id, None)
        if cmd is None:
            raise KeyError(f"Unknown or already reconciled command: {command_id}")

        if result.state is not None:
            state = LocalState(result.state)
        elif result.ok:
            if result.subdivided:
                state = LocalState.SUBDIVIDED
            elif result.exhausted:
                state = LocalState.EXHAUSTED
            else:
                state = LocalState.ACTIVE
        elif result.code == ErrorCode.TRIANGLE_INACTIVE:
            state = LocalState.LOCKED
        else:
            return self.view(cmd.triangle_id)

        self._confirmed[cmd.triangle_id] = self._server_state(cmd.triangle_id, state, result.new_clicks)
        return self.view(cmd.triangle_id)

    def _server_state(self, triangle_id: str, state: LocalState,
                      clicks: Optional[int]) -> LocalTriangleState:
        children: Tuple[str, ...] = ()
        if state == LocalState.SUBDIVIDED:
            children = tuple(encode(c) for c in children_of(decode(triangle_id)))
        return LocalTriangleState(
            triangle_id=triangle_id,
            clicks=clicks if clicks is not None else self.confirmed(triangle_id).clicks,
            state=state,
            children=children,
        )

    def adopt(self, state: LocalTriangleState) -> None:
        """Replace the confirmed state with one read from the server (e.g. a mesh query)."""
        decode(state.triangle_id)
        self._confirmed[state.triangle_id] = state

    def pending(self) -> List[PendingCommand]:
        """Unresolved commands, oldest first."""
        return list(self._pending.values())
