# step_mesh/validator/attestation.py
"""
Device attestation scoring.

The token is treated as an opaque, already-issued verdict: this module only
reads the claims it carries and awards all (25) or nothing. Verifying the
issuer's signature on the token is the job of the platform attestation
service in front of this core.

    Android  compact JWT; claims must include deviceIntegrity with
             MEETS_DEVICE_INTEGRITY or MEETS_BASIC_INTEGRITY, appIntegrity
             PLAY_RECOGNIZED or UNEVALUATED, and the expected package name
    iOS      base64 JSON {authentic: true, timestamp: <ms>, riskMetric?}
             no older than 5 minutes, riskMetric LOW if present
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ATTESTATION_POINTS = 25
IOS_MAX_AGE_S = 5 * 60


@dataclass(frozen=True)
class AttestationResult:
    score: int
    passed: bool
    platform: str  # 'android' | 'ios' | 'unknown'
    error: Optional[str] = None


def _fail(platform: str, error: str) -> AttestationResult:
    return AttestationResult(score=0, passed=False, platform=platform, error=error)


def _ok(platform: str) -> AttestationResult:
    return AttestationResult(score=ATTESTATION_POINTS, passed=True, platform=platform)


def _b64decode(text: str, urlsafe: bool) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    if urlsafe:
        return base64.urlsafe_b64decode(padded)
    return base64.b64decode(padded, validate=True)


def _decode_json(raw: bytes) -> Dict[str, Any]:
    claims = json.loads(raw.decode("utf-8"))
    if not isinstance(claims, dict):
        raise ValueError("attestation claims must be a JSON object")
    return claims


def detect_platform(token: str, device_os: Optional[str] = None) -> str:
    if device_os:
        os_name = device_os.strip().lower()
        if os_name.startswith("android"):
            return "android"
        if os_name.startswith(("ios", "ipados")):
            return "ios"
    if token.count(".") == 2:
        return "android"
    return "ios"


def verify_android(token: str, expected_package: str) -> AttestationResult:
    parts = token.split(".")
    if len(parts) != 3:
        return _fail("android", "Invalid JWT format")
    try:
        claims = _decode_json(_b64decode(parts[1], urlsafe=True))
    except (ValueError, binascii.Error, UnicodeDecodeError) as e:
        return _fail("android", f"Unreadable attestation payload: {e}")

    device = claims.get("deviceIntegrity")
    app = claims.get("appIntegrity")
    if not isinstance(device, dict) or not isinstance(app, dict):
        return _fail("android", "Missing required fields in attestation payload")

    verdicts = device.get("deviceRecognitionVerdict") or []
    if "MEETS_DEVICE_INTEGRITY" not in verdicts and "MEETS_BASIC_INTEGRITY" not in verdicts:
        return _fail("android", "Device integrity check failed")

    if app.get("appRecognitionVerdict") not in ("PLAY_RECOGNIZED", "UNEVALUATED"):
        return _fail("android", "App integrity check failed")

    package = app.get("packageName")
    if package != expected_package:
        return _fail("android", f"Package name mismatch: expected {expected_package}, got {package}")

    licensing = (claims.get("accountDetails") or {}).get("appLicensingVerdict")
    if licensing == "UNLICENSED":
        logger.info("Attestation for unlicensed install of %s", package)

    return _ok("android")


def verify_ios(token: str, now: datetime) -> AttestationResult:
    try:
        claims = _decode_json(_b64decode(token, urlsafe=False))
    except (ValueError, binascii.Error, UnicodeDecodeError) as e:
        return _fail("ios", f"Unreadable attestation payload: {e}")

    if claims.get("authentic") is not True:
        return _fail("ios", "Device authenticity check failed")

    timestamp_ms = claims.get("timestamp")
    if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, (int, float)):
        return _fail("ios", "Missing attestation timestamp")
    age_s = now.timestamp() - timestamp_ms / 1000.0
    if age_s > IOS_MAX_AGE_S:
        return _fail("ios", f"Attestation token expired ({age_s:.0f} s old)")

    risk = claims.get("riskMetric")
    if risk is not None and risk != "LOW":
        return _fail("ios", f"High risk device: {risk}")

    return _ok("ios")


def score_attestation(token: Optional[str], now: datetime, expected_app_id: str,
                      device_os: Optional[str] = None) -> AttestationResult:
    """Score an attestation token: 25 if its claims pass, 0 otherwise."""
    if not token or not token.strip():
        return _fail("unknown", "Attestation token is required")

    platform = detect_platform(token, device_os)
    if platform == "android":
        return verify_android(token, expected_app_id)
    return verify_ios(token, now)
