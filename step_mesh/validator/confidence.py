# step_mesh/validator/confidence.py
"""
CONFIDENCE SCORE: 0-100 Across All Signals
==========================================

Each signal contributes a fixed point budget:

    signature      20    EIP-191 signature verified
    gps_accuracy   15    accuracy within the configured maximum
    speed_gate     10    movement plausible since the last proof
    moratorium      5    time locks respected
    attestation    25    device attestation accepted
    gnss           15    raw satellite plausibility (graded, 0-15)
    cell_tower     10    serving cell near the fix (graded, 0-10)
                  ---
                  100

A v1 proof can reach at most 50, since it carries no attestation or raw
signals. The score is advisory: it is reported with every accepted proof
and only gates acceptance when MeshConfig.min_confidence is set.

    score     level
    -------   --------------
    < 50      Fraud Likely
    < 70      Suspicious
    < 85      Moderate
    < 100     High
    100       Very High
"""

from dataclasses import asdict, dataclass
from typing import Dict, Optional

WEIGHTS: Dict[str, int] = {
    "signature": 20,
    "gps_accuracy": 15,
    "speed_gate": 10,
    "moratorium": 5,
    "attestation": 25,
    "gnss": 15,
    "cell_tower": 10,
}


@dataclass(frozen=True)
class SignalResults:
    """Outcome of each check feeding the score."""
    signature_valid: bool = False
    gps_accuracy_ok: bool = False
    speed_gate_ok: bool = False
    moratorium_ok: bool = False
    attestation_valid: bool = False
    gnss_score: Optional[int] = None
    cell_tower_score: Optional[int] = None


@dataclass(frozen=True)
class ConfidenceScore:
    signature: int
    gps_accuracy: int
    speed_gate: int
    moratorium: int
    attestation: int
    gnss: int
    cell_tower: int
    total: int
    level: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def confidence_level(total: int) -> str:
    if total < 50:
        return "Fraud Likely"
    if total < 70:
        return "Suspicious"
    if total < 85:
        return "Moderate"
    if total < 100:
        return "High"
    return "Very High"


def compute_confidence(results: SignalResults) -> ConfidenceScore:
    """Weighted sum of the signal results; graded scores are clamped to their budget."""
    parts = {
        "signature": WEIGHTS["signature"] if results.signature_valid else 0,
        "gps_accuracy": WEIGHTS["gps_accuracy"] if results.gps_accuracy_ok else 0,
        "speed_gate": WEIGHTS["speed_gate"] if results.speed_gate_ok else 0,
        "moratorium": WEIGHTS["moratorium"] if results.moratorium_ok else 0,
        "attestation": WEIGHTS["attestation"] if results.attestation_valid else 0,
        "gnss": max(0, min(results.gnss_score or 0, WEIGHTS["gnss"])),
        "cell_tower": max(0, min(results.cell_tower_score or 0, WEIGHTS["cell_tower"])),
    }
    total = sum(parts.values())
    return ConfidenceScore(total=total, level=confidence_level(total), **parts)
