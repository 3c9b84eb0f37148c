# File: tests/test_scorers.py
"""
Test the signal scorers (GNSS, cell tower, attestation) and the combined
confidence score.
"""

import base64
import json
from datetime import timedelta

import pytest

from conftest import T0
from step_mesh.validator.attestation import (
    ATTESTATION_POINTS,
    detect_platform,
    score_attestation,
)
from step_mesh.validator.cell_tower import CellLocation, StaticCellResolver, score_cell_tower
from step_mesh.validator.confidence import (
    SignalResults,
    compute_confidence,
    confidence_level,
)
from step_mesh.validator.gnss import score_gnss
from step_mesh.validator.payload import CellTowerData, GnssData

APP_ID = "com.step.mobile"


def _gnss(sats, raw=True):
    return GnssData.model_validate({
        "satellites": [
            {"svid": i, "cn0": cn0, "az": 10.0 * i, "el": 30.0, "constellation": c}
            for i, (cn0, c) in enumerate(sats)
        ],
        "rawAvailable": raw,
    })


class TestGnss:

    def test_rich_sky_scores_full(self):
        sky = _gnss([
            (22.0, "GPS"), (28.5, "GPS"), (35.0, "GPS"),
            (41.0, "GLONASS"), (44.5, "GLONASS"),
            (31.0, "GALILEO"), (26.0, "GALILEO"), (47.0, "BEIDOU"),
        ])
        result = score_gnss(sky)
        assert result.score == 15
        assert result.passed
        assert result.constellations == ["BEIDOU", "GALILEO", "GLONASS", "GPS"]
        assert not result.issues

    def test_spoofer_signature_fails(self):
        """
        WHAT IS THIS TEST?
        ==================
        A typical spoofing rig: four GPS-only satellites all at the same
        strong C/N0. Count (3) and average (3) pass; single constellation
        gives 1; zero variance and identical strengths give 0. Total 7.
        """
        spoofed = _gnss([(45.0, "GPS")] * 4)
        result = score_gnss(spoofed)
        assert result.score == 7
        assert not result.passed
        assert result.cn0_variance == 0.0
        assert len(result.issues) == 3

    def test_missing_data(self):
        assert score_gnss(None).score == 0
        assert score_gnss(_gnss([(30.0, "GPS")], raw=False)).score == 0
        assert score_gnss(_gnss([])).score == 0


class TestCellTower:

    def setup_method(self):
        self.resolver = StaticCellResolver()
        self.resolver.add(310, 260, 4242, CellLocation(lat=37.79, lon=-122.39))

    def _cell(self, cell_id=4242, neighbors=2, mcc=310, mnc=260):
        return CellTowerData.model_validate({
            "mcc": mcc,
            "mnc": mnc,
            "cellId": cell_id,
            "neighbors": [{"cellId": 9000 + i, "rsrp": -100} for i in range(neighbors)],
        })

    def test_nearby_tower(self):
        result = score_cell_tower(self._cell(), 37.7955, -122.3937, self.resolver)
        assert result.score == 9
        assert result.passed
        assert result.distance_km < 1.0

    def test_distant_tower(self):
        # Los Angeles fix, San Francisco tower
        result = score_cell_tower(self._cell(neighbors=5), 34.05, -118.24, self.resolver)
        assert result.score == 3
        assert not result.passed

    def test_unknown_tower_or_no_resolver(self):
        assert score_cell_tower(self._cell(cell_id=1), 37.79, -122.39, self.resolver).score == 0
        assert score_cell_tower(self._cell(), 37.79, -122.39, None).score == 0
        assert score_cell_tower(None, 37.79, -122.39, self.resolver).score == 0
        assert score_cell_tower(self._cell(mcc=0), 37.79, -122.39, self.resolver).score == 0

    def test_zero_network_code_and_cell_id_are_valid(self):
        # China Mobile is MNC 00; cell id 0 is a legal identity too
        self.resolver.add(460, 0, 0, CellLocation(lat=37.79, lon=-122.39))
        result = score_cell_tower(self._cell(cell_id=0, mcc=460, mnc=0), 37.7955, -122.3937, self.resolver)
        assert result.score == 9
        assert result.cell_location is not None


def _android_token(claims):
    def part(obj):
        raw = json.dumps(obj).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    return ".".join([part({"alg": "ES256"}), part(claims), "c2lnbmF0dXJl"])


def _ios_token(claims):
    return base64.b64encode(json.dumps(claims).encode("utf-8")).decode("ascii")


GOOD_ANDROID = {
    "deviceIntegrity": {"deviceRecognitionVerdict": ["MEETS_DEVICE_INTEGRITY"]},
    "appIntegrity": {"appRecognitionVerdict": "PLAY_RECOGNIZED", "packageName": APP_ID},
}


class TestAttestation:

    def test_android_verdicts(self):
        result = score_attestation(_android_token(GOOD_ANDROID), T0, APP_ID)
        assert result.passed
        assert result.score == ATTESTATION_POINTS
        assert result.platform == "android"

        wrong_package = dict(GOOD_ANDROID, appIntegrity={
            "appRecognitionVerdict": "PLAY_RECOGNIZED", "packageName": "com.other"})
        assert score_attestation(_android_token(wrong_package), T0, APP_ID).score == 0

        no_integrity = dict(GOOD_ANDROID, deviceIntegrity={"deviceRecognitionVerdict": []})
        assert score_attestation(_android_token(no_integrity), T0, APP_ID).score == 0

    def test_ios_freshness_and_risk(self):
        now_ms = int(T0.timestamp() * 1000)
        fresh = _ios_token({"authentic": True, "timestamp": now_ms - 60_000})
        stale = _ios_token({"authentic": True, "timestamp": now_ms - 10 * 60_000})
        risky = _ios_token({"authentic": True, "timestamp": now_ms, "riskMetric": "HIGH"})
        fake = _ios_token({"authentic": False, "timestamp": now_ms})

        assert score_attestation(fresh, T0, APP_ID, device_os="iOS 17.4").passed
        assert score_attestation(stale, T0, APP_ID).error.startswith("Attestation token expired")
        assert score_attestation(risky, T0, APP_ID).score == 0
        assert score_attestation(fake, T0, APP_ID).score == 0

    def test_garbage_tokens_score_zero(self):
        for token in ("", "   ", "a.b.c", "not base64 !!!", _ios_token([1, 2, 3])):
            result = score_attestation(token, T0, APP_ID)
            assert result.score == 0
            assert not result.passed

    def test_detect_platform(self):
        assert detect_platform("x.y.z") == "android"
        assert detect_platform("abc") == "ios"
        assert detect_platform("abc", device_os="Android 14") == "android"
        assert detect_platform("x.y.z", device_os="iPadOS 17") == "ios"


class TestConfidence:

    def test_v1_proof_caps_at_fifty(self):
        """
        WHAT IS THIS TEST?
        ==================
        A v1 proof can only earn the four baseline signals:
        20 + 15 + 10 + 5 = 50 points, which is "Suspicious".
        """
        score = compute_confidence(SignalResults(
            signature_valid=True,
            gps_accuracy_ok=True,
            speed_gate_ok=True,
            moratorium_ok=True,
        ))
        assert score.total == 50
        assert score.level == "Suspicious"

    def test_all_signals_reach_one_hundred(self):
        score = compute_confidence(SignalResults(
            signature_valid=True,
            gps_accuracy_ok=True,
            speed_gate_ok=True,
            moratorium_ok=True,
            attestation_valid=True,
            gnss_score=15,
            cell_tower_score=10,
        ))
        assert score.total == 100
        assert score.level == "Very High"
        assert score.to_dict()["attestation"] == 25

    def test_graded_scores_are_clamped(self):
        score = compute_confidence(SignalResults(gnss_score=40, cell_tower_score=-3))
        assert score.gnss == 15
        assert score.cell_tower == 0

    @pytest.mark.parametrize("total, level", [
        (0, "Fraud Likely"),
        (49, "Fraud Likely"),
        (50, "Suspicious"),
        (69, "Suspicious"),
        (70, "Moderate"),
        (85, "High"),
        (99, "High"),
        (100, "Very High"),
    ])
    def test_levels(self, total, level):
        assert confidence_level(total) == level


def test_ios_token_from_the_future_is_accepted():
    future_ms = int((T0 + timedelta(seconds=30)).timestamp() * 1000)
    assert score_attestation(_ios_token({"authentic": True, "timestamp": future_ms}), T0, APP_ID).passed
