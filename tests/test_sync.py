# File: tests/test_sync.py
"""
Test the client-side local command log: optimistic predictions are always
overridden by the server's answer.
"""

import pytest

from conftest import account_for
from step_mesh import MeshConfig, MeshService, SubmissionResult
from step_mesh.addressing import TriangleId, children_of, encode
from step_mesh.errors import ErrorCode, ProofRejected
from step_mesh.sync import LocalCommandLog, LocalState, LocalTriangleState

ADDRESS = encode(TriangleId(face=6, level=4, path=(2, 0, 1)))


def test_prediction_shows_immediately():
    log = LocalCommandLog(click_threshold=3)
    cmd = log.predict(ADDRESS)

    assert log.view(ADDRESS).clicks == 1
    assert log.confirmed(ADDRESS).clicks == 0
    assert [p.command_id for p in log.pending()] == [cmd]


def test_rejection_rolls_back():
    log = LocalCommandLog(click_threshold=3)
    cmd = log.predict(ADDRESS)

    view = log.reconcile(cmd, SubmissionResult(ok=False, code=ErrorCode.MORATORIUM))

    assert view.clicks == 0
    assert log.pending() == []


def test_server_result_overrides_prediction():
    """
    WHAT IS THIS TEST?
    ==================
    The client predicted its click would be the first. The server says
    other users got there first and this was click 5. The confirmed state
    must take the server's number, never the local guess.
    """
    log = LocalCommandLog(click_threshold=11)
    cmd = log.predict(ADDRESS)

    view = log.reconcile(cmd, SubmissionResult(ok=True, triangle_id=ADDRESS, new_clicks=5))

    assert view.clicks == 5
    assert log.confirmed(ADDRESS).clicks == 5


def test_predicted_subdivision_blocks_further_clicks():
    log = LocalCommandLog(click_threshold=2)
    log.predict(ADDRESS)
    log.predict(ADDRESS)

    view = log.view(ADDRESS)
    assert view.state == LocalState.SUBDIVIDED
    assert view.children == tuple(encode(c) for c in children_of(TriangleId(face=6, level=4, path=(2, 0, 1))))

    with pytest.raises(ProofRejected) as exc_info:
        log.predict(ADDRESS)
    assert exc_info.value.code == ErrorCode.TRIANGLE_INACTIVE


def test_confirmed_subdivision_from_server():
    log = LocalCommandLog(click_threshold=11)
    cmd = log.predict(ADDRESS)
    view = log.reconcile(cmd, SubmissionResult(ok=True, new_clicks=11, subdivided=True))

    assert view.state == LocalState.SUBDIVIDED
    assert len(view.children) == 4


def test_inactive_rejection_adopts_server_state():
    log = LocalCommandLog(click_threshold=11)
    cmd = log.predict(ADDRESS)

    view = log.reconcile(cmd, SubmissionResult(
        ok=False,
        code=ErrorCode.TRIANGLE_INACTIVE,
        triangle_id=ADDRESS,
        new_clicks=11,
        state="subdivided",
    ))

    assert view.state == LocalState.SUBDIVIDED
    assert view.clicks == 11
    assert len(view.children) == 4
    with pytest.raises(ProofRejected):
        log.predict(ADDRESS)


def test_bare_inactive_rejection_locks_triangle():
    log = LocalCommandLog(click_threshold=11)
    cmd = log.predict(ADDRESS)

    view = log.reconcile(cmd, SubmissionResult(ok=False, code=ErrorCode.TRIANGLE_INACTIVE))

    assert view.state == LocalState.LOCKED
    assert view.clicks == 0
    with pytest.raises(ProofRejected) as exc_info:
        log.predict(ADDRESS)
    assert exc_info.value.code == ErrorCode.TRIANGLE_INACTIVE

    log.adopt(LocalTriangleState(ADDRESS))
    assert log.predict(ADDRESS)


def test_client_behind_the_server_converges(clock, signed_v1):
    """
    WHAT IS THIS TEST?
    ==================
    Another account subdivides a triangle the client still believes is
    fresh. The client predicts a click, the server refuses it as inactive,
    and the log must end up showing exactly what the server holds instead
    of the stale ACTIVE guess.
    """
    service = MeshService(config=MeshConfig(click_threshold=2, inter_click_base_s=0), clock=clock)
    for seed in (1, 2):
        payload, signature = signed_v1(account_for(seed))
        assert service.submit_proof(payload, signature).ok

    late, signature = signed_v1(account_for(3))
    log = LocalCommandLog(click_threshold=2)
    cmd = log.predict(late["triangleId"])
    assert log.view(late["triangleId"]).state == LocalState.ACTIVE

    view = log.reconcile(cmd, service.submit_proof(late, signature))

    assert view.state == LocalState.SUBDIVIDED
    assert view.clicks == 2
    assert list(view.children) == service.children(late["triangleId"])
    assert log.pending() == []


def test_exhaustion_at_max_level():
    leaf = encode(TriangleId(face=0, level=3, path=(1, 1)))
    log = LocalCommandLog(click_threshold=1, max_level=3)
    log.predict(leaf)
    assert log.view(leaf).state == LocalState.EXHAUSTED


def test_seeded_local_state():
    log = LocalCommandLog(click_threshold=11)
    log.predict(ADDRESS, local_state=LocalTriangleState(ADDRESS, clicks=7))
    assert log.view(ADDRESS).clicks == 8


def test_unknown_command():
    log = LocalCommandLog()
    with pytest.raises(KeyError):
        log.reconcile("cmd-404", SubmissionResult(ok=False))
