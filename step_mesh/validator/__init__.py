# step_mesh/validator - Proof-of-location validation
"""Ordered proof checks and the signal scorers behind the confidence score."""

from .payload import (
    ProofPayloadV1,
    ProofPayloadV2,
    parse_payload,
    canonical_message,
)
from .signature import recover_signer, verify_payload_signature
from .heuristics import (
    check_gps_accuracy,
    check_speed,
    inter_click_delay_s,
    check_triangle_time_locks,
    check_account_interval,
)
from .gnss import score_gnss
from .cell_tower import CellLocation, StaticCellResolver, score_cell_tower
from .attestation import score_attestation
from .confidence import SignalResults, ConfidenceScore, compute_confidence
from .pipeline import ProofPipeline, VerifiedProof, Evaluation

__all__ = [
    # Payload
    'ProofPayloadV1',
    'ProofPayloadV2',
    'parse_payload',
    'canonical_message',
    # Signature
    'recover_signer',
    'verify_payload_signature',
    # Heuristics
    'check_gps_accuracy',
    'check_speed',
    'inter_click_delay_s',
    'check_triangle_time_locks',
    'check_account_interval',
    # Scorers
    'score_gnss',
    'CellLocation',
    'StaticCellResolver',
    'score_cell_tower',
    'score_attestation',
    'SignalResults',
    'ConfidenceScore',
    'compute_confidence',
    # Pipeline
    'ProofPipeline',
    'VerifiedProof',
    'Evaluation',
]
