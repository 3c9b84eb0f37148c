# File: tests/conftest.py
"""
Shared fixtures: a controllable clock, deterministic signing accounts and a
proof builder that produces correctly signed payloads.
"""

from datetime import datetime, timedelta, timezone

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from step_mesh.addressing import encode
from step_mesh.lookup import find_triangle_containing_point
from step_mesh.validator.payload import canonical_message, parse_payload


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

# San Francisco, Ferry Building
SF_LAT = 37.7955
SF_LON = -122.3937


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def account_for(seed: int):
    """Deterministic local account; seed 1 -> private key 0x00..01."""
    return Account.from_key("0x" + format(seed, "064x"))


def sign_payload(acct, payload: dict) -> str:
    message = canonical_message(parse_payload(payload))
    return acct.sign_message(encode_defunct(text=message)).signature.hex()


def build_v1(acct, lat=SF_LAT, lon=SF_LON, level=1, when=T0, nonce="n-1",
             accuracy=8.5, triangle_id=None) -> dict:
    if triangle_id is None:
        triangle_id = encode(find_triangle_containing_point(lat, lon, level))
    return {
        "version": "STEP-PROOF-v1",
        "account": acct.address,
        "triangleId": triangle_id,
        "lat": lat,
        "lon": lon,
        "accuracy": accuracy,
        "timestamp": iso(when),
        "nonce": nonce,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alice():
    return account_for(1)


@pytest.fixture
def bob():
    return account_for(2)


@pytest.fixture
def signed_v1():
    """Factory: signed_v1(acct, **fields) -> (payload, signature)."""
    def _make(acct, **kwargs):
        payload = build_v1(acct, **kwargs)
        return payload, sign_payload(acct, payload)
    return _make
