# step_mesh/validator/pipeline.py
"""
PROOF VALIDATION PIPELINE
=========================

PURPOSE:
--------
Turn an untrusted (payload, signature) pair into either a rejection with one
ErrorCode or an Evaluation the lifecycle can commit. Checks run in a fixed
order and stop at the first failure:

    #   Check                                           Rejection
    --  ----------------------------------------------  --------------------
    1   schema, version, ranges, timestamp not future   INVALID_PAYLOAD
    2   EIP-191 signature recovers the claimed account  BAD_SIGNATURE
    3   (account, nonce) never seen                     NONCE_REPLAY
    4   address decodes; point inside its triangle      BAD_ADDRESS_CHECKSUM /
                                                        INVALID_PAYLOAD /
                                                        OUT_OF_BOUNDS
    5   0 < accuracy <= gps_max_accuracy_m              LOW_GPS_ACCURACY
    6   speed since previous proof <= speed_limit_mps   TOO_FAST
    7   triangle on the ACTIVE frontier; moratorium,    TRIANGLE_INACTIVE /
        inter-click delay, account interval respected   MORATORIUM
    8   confidence >= min_confidence (if configured)    LOW_CONFIDENCE

TWO PHASES:
-----------
Steps 1-2 depend only on the request, so `precheck` runs them once.
Steps 3-8 read store state, so `evaluate` runs them on every optimistic
retry: a retry must see the state that beat it, not the state it first read.

USAGE:
------
    pipeline = ProofPipeline(store, config)
    verified = pipeline.precheck(raw_payload, signature, now)
    evaluation = pipeline.evaluate(verified, now)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from ..addressing import MIN_LEVEL, TriangleId, decode, encode, parent_of
from ..config import MeshConfig
from ..errors import AddressError, ErrorCode, ProofRejected
from ..kernel.containment import is_point_in_spherical_triangle
from ..kernel.vector import latlon_to_vector
from ..state.models import ProofRecord, Triangle, TriangleState
from ..state.store import MeshStore
from ..subdivision import vertices_of
from .attestation import score_attestation
from .cell_tower import CellResolver, score_cell_tower
from .confidence import ConfidenceScore, SignalResults, compute_confidence
from .gnss import score_gnss
from .heuristics import (
    SpeedCheck,
    check_account_interval,
    check_gps_accuracy,
    check_speed,
    check_triangle_time_locks,
)
from .payload import ProofPayload, ProofPayloadV2, parse_payload
from .signature import verify_payload_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedProof:
    """A structurally valid payload whose signature matches its account."""
    payload: ProofPayload
    signature: str
    issued_at: datetime

    @property
    def account(self) -> str:
        return self.payload.account.lower()


@dataclass(frozen=True)
class Evaluation:
    """Everything steps 3-8 learned, pinned to one store read."""
    proof: VerifiedProof
    triangle_id: TriangleId
    triangle: Triangle
    exists: bool
    previous: Optional[ProofRecord]
    speed: Optional[SpeedCheck]
    confidence: ConfidenceScore


class ProofPipeline:
    """
    Ordered, short-circuiting proof checks.

    Parameters:
    -----------
    store : MeshStore
        Source of nonces, previous proofs and triangle state
    config : MeshConfig
        Thresholds
    cell_resolver : CellResolver, optional
        Tower position lookup for the cell-tower signal. Without one the
        signal scores 0.
    """

    def __init__(self, store: MeshStore, config: MeshConfig,
                 cell_resolver: Optional[CellResolver] = None):
        self.store = store
        self.config = config
        self.cell_resolver = cell_resolver

    # -------------------------------------------------------------------------
    # Phase 1: request-only checks
    # -------------------------------------------------------------------------

    def precheck(self, raw_payload: Any, signature: Any, now: datetime) -> VerifiedProof:
        """Steps 1 and 2."""
        payload = parse_payload(raw_payload)

        issued_at = payload.issued_at
        if issued_at > now + timedelta(seconds=self.config.clock_skew_s):
            raise ProofRejected(
                ErrorCode.INVALID_PAYLOAD,
                f"Timestamp {payload.timestamp} is more than {self.config.clock_skew_s:g} s in the future",
            )

        verify_payload_signature(payload, signature)
        return VerifiedProof(payload=payload, signature=signature, issued_at=issued_at)

    # -------------------------------------------------------------------------
    # Phase 2: state-dependent checks
    # -------------------------------------------------------------------------

    def check_nonce(self, proof: VerifiedProof) -> None:
        if self.store.has_nonce(proof.account, proof.payload.nonce):
            raise ProofRejected(
                ErrorCode.NONCE_REPLAY,
                f"Nonce {proof.payload.nonce!r} was already used by this account",
            )

    def check_geometry(self, proof: VerifiedProof) -> TriangleId:
        payload = proof.payload
        try:
            tid = decode(payload.triangle_id)
        except AddressError as e:
            raise ProofRejected(e.code, e.message) from e
        if tid.level > self.config.max_level:
            raise ProofRejected(
                ErrorCode.INVALID_PAYLOAD,
                f"Triangle level {tid.level} is deeper than the mesh (max {self.config.max_level})",
            )

        point = latlon_to_vector(payload.lat, payload.lon)
        if not is_point_in_spherical_triangle(point, *vertices_of(tid)):
            raise ProofRejected(
                ErrorCode.OUT_OF_BOUNDS,
                f"Location ({payload.lat}, {payload.lon}) is outside triangle {payload.triangle_id}",
            )
        return tid

    def load_triangle(self, tid: TriangleId, now: datetime):
        """
        Stored state of `tid` and whether it exists, or a fresh triangle.

        Only base faces are created on first reference. Anything deeper is
        minted by its parent's subdivision and is not mineable before it.
        """
        stored = self.store.get_triangle(tid)
        if stored is not None:
            return stored, True
        if tid.level == MIN_LEVEL:
            return Triangle.create(tid, now), False

        parent_id = parent_of(tid)
        parent = self.store.get_triangle(parent_id)
        if parent is None or parent.state != TriangleState.SUBDIVIDED:
            raise ProofRejected(
                ErrorCode.TRIANGLE_INACTIVE,
                f"Triangle {encode(tid)} is not mineable until {encode(parent_id)} subdivides",
            )
        # Subdivided parent whose children the store never received
        moratorium_ends_at = None
        if parent.last_click_at is not None:
            moratorium_ends_at = parent.last_click_at + timedelta(seconds=self.config.moratorium_duration_s)
        return Triangle.create(tid, now, moratorium_ends_at=moratorium_ends_at), False

    def score(self, proof: VerifiedProof, now: datetime) -> ConfidenceScore:
        """Confidence for a proof that passed steps 1-7."""
        payload = proof.payload
        results = SignalResults(
            signature_valid=True,
            gps_accuracy_ok=True,
            speed_gate_ok=True,
            moratorium_ok=True,
        )
        if isinstance(payload, ProofPayloadV2):
            attestation = score_attestation(
                payload.attestation, now, self.config.expected_app_id, payload.device.os
            )
            gnss = score_gnss(payload.gnss)
            cell = score_cell_tower(payload.cell, payload.lat, payload.lon, self.cell_resolver)
            results = SignalResults(
                signature_valid=True,
                gps_accuracy_ok=True,
                speed_gate_ok=True,
                moratorium_ok=True,
                attestation_valid=attestation.passed,
                gnss_score=gnss.score,
                cell_tower_score=cell.score,
            )
        return compute_confidence(results)

    def evaluate(self, proof: VerifiedProof, now: datetime) -> Evaluation:
        """Steps 3 to 8 against the store's current state."""
        payload = proof.payload

        # 3. Replay
        self.check_nonce(proof)

        # 4. Geometry
        tid = self.check_geometry(proof)

        # 5. GPS accuracy
        check_gps_accuracy(payload.accuracy, self.config)

        # 6. Speed gate
        previous = self.store.last_proof(proof.account)
        speed = check_speed(previous, payload.lat, payload.lon, proof.issued_at, self.config)

        # 7. Triangle state and time locks
        triangle, exists = self.load_triangle(tid, now)
        if not triangle.is_active:
            raise ProofRejected(
                ErrorCode.TRIANGLE_INACTIVE,
                f"Triangle {triangle.address} is {triangle.state.value}",
                triangle=triangle,
            )
        try:
            check_triangle_time_locks(triangle, now, self.config)
        except ProofRejected as e:
            raise ProofRejected(e.code, e.message, triangle=triangle if exists else None) from e
        check_account_interval(previous, proof.issued_at, self.config)

        # 8. Confidence
        confidence = self.score(proof, now)
        if self.config.min_confidence is not None and confidence.total < self.config.min_confidence:
            raise ProofRejected(
                ErrorCode.LOW_CONFIDENCE,
                f"Confidence {confidence.total} ({confidence.level}) below required "
                f"{self.config.min_confidence}",
            )

        return Evaluation(
            proof=proof,
            triangle_id=tid,
            triangle=triangle,
            exists=exists,
            previous=previous,
            speed=speed,
            confidence=confidence,
        )
