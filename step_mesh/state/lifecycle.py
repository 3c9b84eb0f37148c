# step_mesh/state/lifecycle.py
"""
TRIANGLE LIFECYCLE: Clicks, Rewards, Subdivision
================================================

PURPOSE:
--------
An accepted proof is a "click" on its triangle. Each click:

    1. increments the triangle's click count
    2. credits the account with R(N) = 1 / 2^(N-1) for the N-th click
    3. appends an audit event
    4. on the threshold-th click either
         subdivides (level < max_level): 4 ACTIVE children under moratorium
         exhausts  (level == max_level): completion bonus added to the reward

All of it is one ClickMutation, committed with a conditional update on the
triangle's version. Two concurrent threshold clicks cannot both subdivide:
the second one's commit fails with ConcurrentUpdateError, and the whole
read → validate → write sequence is retried against the new state, where it
finds a SUBDIVIDED triangle (or a longer inter-click delay) and is rejected
like any other proof.

REWARD SCHEDULE:
----------------
    N      R(N)
    1      1
    2      0.5
    3      0.25
    ...
    28     1/2^27
    > 28   0

    Σ R(N), N = 1..28  =  2 - 2^-27  ≈ 2
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from ..addressing import children_of
from ..config import MeshConfig
from ..errors import ConcurrentUpdateError, ErrorCode, NonceConflictError, ProofRejected
from ..validator.confidence import ConfidenceScore
from ..validator.pipeline import Evaluation, ProofPipeline, VerifiedProof
from .models import AuditEvent, ClickMutation, EventKind, ProofRecord, Triangle, TriangleState
from .store import MeshStore

logger = logging.getLogger(__name__)

# Upper bound of the random pause between optimistic retries, seconds
RETRY_JITTER_S = 0.01


def reward_for_click(n: int, schedule_clicks: int = 28) -> Decimal:
    """
    Reward for the n-th click on a triangle (1-based).

    Exact in Decimal for the whole schedule: 1/2^27 has 19 significant digits.
    """
    if n < 1:
        raise ValueError(f"Click number must be >= 1, got {n}")
    if n > schedule_clicks:
        return Decimal(0)
    return Decimal(1) / (Decimal(2) ** (n - 1))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClickOutcome:
    """Result of a committed click."""
    triangle: Triangle
    reward: Decimal
    balance: Decimal
    confidence: ConfidenceScore
    children: Tuple[Triangle, ...] = ()

    @property
    def subdivided(self) -> bool:
        return self.triangle.state == TriangleState.SUBDIVIDED

    @property
    def exhausted(self) -> bool:
        return self.triangle.state == TriangleState.EXHAUSTED


def _event(tid, kind: EventKind, now: datetime, account: Optional[str] = None,
           nonce: Optional[str] = None, **payload) -> AuditEvent:
    return AuditEvent(
        event_id=uuid.uuid4().hex,
        triangle_id=tid,
        kind=kind,
        timestamp=now,
        account=account,
        nonce=nonce,
        payload=payload,
    )


class TriangleLifecycle:
    """
    Applies verified proofs to triangle state.

    Parameters:
    -----------
    store : MeshStore
    config : MeshConfig
    pipeline : ProofPipeline
        Re-run for steps 3-8 on every attempt
    clock : callable returning an aware UTC datetime
        Injected so tests control time
    """

    def __init__(self, store: MeshStore, config: MeshConfig, pipeline: ProofPipeline,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.config = config
        self.pipeline = pipeline
        self.clock = clock

    def plan_click(self, evaluation: Evaluation, now: datetime) -> ClickMutation:
        """Build the full effect of one click without touching the store."""
        config = self.config
        proof = evaluation.proof
        payload = proof.payload
        triangle = evaluation.triangle
        tid = triangle.id

        tier = triangle.clicks
        new_clicks = tier + 1
        reward = reward_for_click(new_clicks, config.reward_schedule_clicks)

        events = []
        if not evaluation.exists:
            events.append(_event(tid, EventKind.CREATE, now))

        updated = replace(
            triangle,
            clicks=new_clicks,
            last_click_at=now,
            version=triangle.version + 1,
        )
        new_children: Tuple[Triangle, ...] = ()

        if new_clicks >= config.click_threshold:
            if tid.level < config.max_level:
                moratorium_ends_at = now + timedelta(seconds=config.moratorium_duration_s)
                new_children = tuple(
                    Triangle.create(child, now, moratorium_ends_at=moratorium_ends_at)
                    for child in children_of(tid)
                )
                updated = replace(
                    updated,
                    state=TriangleState.SUBDIVIDED,
                    children=tuple(c.id for c in new_children),
                )
            else:
                reward += config.completion_bonus
                updated = replace(updated, state=TriangleState.EXHAUSTED)

        events.append(_event(
            tid, EventKind.CLICK, now,
            account=proof.account,
            nonce=payload.nonce,
            click=new_clicks,
            reward=str(reward),
            lat=payload.lat,
            lon=payload.lon,
            confidence=evaluation.confidence.total,
        ))
        if updated.state != triangle.state:
            events.append(_event(
                tid, EventKind.STATE_CHANGE, now,
                previous=triangle.state.value,
                current=updated.state.value,
            ))
        if new_children:
            events.append(_event(
                tid, EventKind.SUBDIVIDE, now,
                children=[c.address for c in new_children],
                moratorium_ends_at=new_children[0].moratorium_ends_at.isoformat(),
            ))

        return ClickMutation(
            triangle=updated,
            expected_version=triangle.version,
            account=proof.account,
            nonce=payload.nonce,
            reward=reward,
            proof=ProofRecord(
                account=proof.account,
                lat=payload.lat,
                lon=payload.lon,
                timestamp=proof.issued_at,
                triangle_id=tid,
            ),
            events=tuple(events),
            new_children=new_children,
        )

    def _attempt(self, proof: VerifiedProof) -> ClickOutcome:
        now = self.clock()
        evaluation = self.pipeline.evaluate(proof, now)
        mutation = self.plan_click(evaluation, now)
        try:
            balance = self.store.commit_click(mutation)
        except NonceConflictError as e:
            raise ProofRejected(ErrorCode.NONCE_REPLAY, e.message) from e
        return ClickOutcome(
            triangle=mutation.triangle,
            reward=mutation.reward,
            balance=balance,
            confidence=evaluation.confidence,
            children=mutation.new_children,
        )

    def apply(self, proof: VerifiedProof) -> ClickOutcome:
        """
        Validate steps 3-8 and commit, retrying lost optimistic races.

        Raises:
        -------
        ProofRejected
            Any check failed on the final attempt's view of the state
        ConcurrentUpdateError
            Still losing after config.commit_attempts attempts
        StoreUnavailableError
            Store timeout (not retried here)
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.config.commit_attempts),
            wait=wait_random(0, RETRY_JITTER_S),
            retry=retry_if_exception_type(ConcurrentUpdateError),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        outcome = retrying(self._attempt, proof)

        logger.info(
            "Click %d on %s by %s: reward %s%s",
            outcome.triangle.clicks, outcome.triangle.address, proof.account, outcome.reward,
            " (subdivided)" if outcome.subdivided else " (exhausted)" if outcome.exhausted else "",
        )
        return outcome
