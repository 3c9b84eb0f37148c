# step_mesh/validator/payload.py
"""
PROOF PAYLOADS: Strict Versioned Schemas
========================================

PURPOSE:
--------
A proof payload is the claim a client signs: "account A was at (lat, lon)
inside triangle T at time t". Two versions exist:

    STEP-PROOF-v1   GPS fix only
    STEP-PROOF-v2   GPS fix + optional GNSS / cell / Wi-Fi signals,
                    device metadata and an attestation token

The `version` field selects the schema. Unknown versions, unknown fields,
wrong types and out-of-range values are all rejected with INVALID_PAYLOAD.
Nothing is coerced: "45.0" is not a latitude and 1 is not a boolean.

CANONICAL MESSAGE:
------------------
The signature covers a pipe-delimited text built from the payload in a fixed
field order:

    STEP-PROOF-v1|account:<lowercased>|triangle:<id>|lat:<n>|lon:<n>|acc:<n>|ts:<iso>|nonce:<n>

v2 uses the same fields (lat/lon/acc from `location`) and appends
`|att:<sha256 hex of the attestation token>`, so the token is bound to the
signature without being embedded verbatim.

Numbers are rendered the way mobile clients render them: integral values
without a decimal point (45 not 45.0), otherwise the shortest text that
round-trips.
"""

import hashlib
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ..errors import ErrorCode, ProofRejected


PROOF_V1 = "STEP-PROOF-v1"
PROOF_V2 = "STEP-PROOF-v2"

ACCOUNT_PATTERN = r"^0x[0-9a-fA-F]{40}$"
MAX_NONCE_LENGTH = 128
MAX_ATTESTATION_LENGTH = 16_384


def _reject_non_numbers(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


Number = Annotated[float, BeforeValidator(_reject_non_numbers)]


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 with an explicit offset or 'Z' → aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError("timestamp must include a UTC offset or 'Z'")
    return parsed.astimezone(timezone.utc)


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class _SignedFields(_Strict):
    """Fields shared by every payload version."""
    account: StrictStr = Field(pattern=ACCOUNT_PATTERN)
    triangle_id: StrictStr = Field(alias="triangleId", min_length=1, max_length=64)
    timestamp: StrictStr
    nonce: StrictStr = Field(min_length=1, max_length=MAX_NONCE_LENGTH)

    @field_validator("timestamp")
    @classmethod
    def _timestamp_is_iso8601(cls, v: str) -> str:
        parse_timestamp(v)
        return v

    @property
    def issued_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


class ProofPayloadV1(_SignedFields):
    version: Literal["STEP-PROOF-v1"]
    lat: Number = Field(ge=-90, le=90, allow_inf_nan=False)
    lon: Number = Field(ge=-180, le=180, allow_inf_nan=False)
    accuracy: Number = Field(ge=0, allow_inf_nan=False)


# -----------------------------------------------------------------------------
# v2 signal blocks
# -----------------------------------------------------------------------------

class Location(_Strict):
    lat: Number = Field(ge=-90, le=90, allow_inf_nan=False)
    lon: Number = Field(ge=-180, le=180, allow_inf_nan=False)
    alt: Optional[Number] = Field(default=None, allow_inf_nan=False)
    accuracy: Number = Field(ge=0, allow_inf_nan=False)


class GnssSatellite(_Strict):
    svid: StrictInt = Field(ge=0)
    cn0: Number = Field(ge=0, le=100, allow_inf_nan=False)
    az: Number = Field(ge=0, le=360, allow_inf_nan=False)
    el: Number = Field(ge=-90, le=90, allow_inf_nan=False)
    constellation: StrictStr = Field(min_length=1, max_length=16)


class GnssData(_Strict):
    satellites: List[GnssSatellite] = Field(default_factory=list, max_length=128)
    raw_available: StrictBool = Field(alias="rawAvailable")


class CellNeighbor(_Strict):
    cell_id: StrictInt = Field(alias="cellId", ge=0)
    rsrp: Number = Field(allow_inf_nan=False)


class CellTowerData(_Strict):
    mcc: StrictInt = Field(ge=0, le=999)
    mnc: StrictInt = Field(ge=0, le=999)
    cell_id: StrictInt = Field(alias="cellId", ge=0)
    tac: Optional[StrictInt] = None
    rsrp: Optional[Number] = Field(default=None, allow_inf_nan=False)
    neighbors: List[CellNeighbor] = Field(default_factory=list, max_length=32)


class WifiAccessPoint(_Strict):
    bssid: StrictStr = Field(pattern=r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")
    ssid: Optional[StrictStr] = None
    rssi: Number = Field(allow_inf_nan=False)


class DeviceMetadata(_Strict):
    model: StrictStr = Field(max_length=128)
    os: StrictStr = Field(max_length=64)
    app_version: StrictStr = Field(alias="appVersion", max_length=32)
    mock_location_enabled: Optional[StrictBool] = Field(default=None, alias="mockLocationEnabled")


class ProofPayloadV2(_SignedFields):
    version: Literal["STEP-PROOF-v2"]
    location: Location
    gnss: Optional[GnssData] = None
    cell: Optional[CellTowerData] = None
    wifi: Optional[List[WifiAccessPoint]] = Field(default=None, max_length=64)
    device: DeviceMetadata
    attestation: StrictStr = Field(max_length=MAX_ATTESTATION_LENGTH)

    @property
    def lat(self) -> float:
        return self.location.lat

    @property
    def lon(self) -> float:
        return self.location.lon

    @property
    def accuracy(self) -> float:
        return self.location.accuracy


ProofPayload = Union[ProofPayloadV1, ProofPayloadV2]

_PAYLOAD_ADAPTER = TypeAdapter(Annotated[ProofPayload, Field(discriminator="version")])


def parse_payload(data: Any) -> ProofPayload:
    """
    Validate raw input (a dict, e.g. decoded JSON) into a payload model.

    Already-validated models pass through unchanged.

    Raises:
    -------
    ProofRejected(INVALID_PAYLOAD)
        With the first validation error in the message
    """
    if isinstance(data, (ProofPayloadV1, ProofPayloadV2)):
        return data
    if not isinstance(data, dict):
        raise ProofRejected(ErrorCode.INVALID_PAYLOAD, "Payload must be an object")
    try:
        return _PAYLOAD_ADAPTER.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "payload"
        raise ProofRejected(ErrorCode.INVALID_PAYLOAD, f"{where}: {first['msg']}") from e


# -----------------------------------------------------------------------------
# Canonical message
# -----------------------------------------------------------------------------

def format_number(value: float) -> str:
    """
    Render a number in the compact form signing clients produce.

    Shortest round-trip digits; positional notation for magnitudes in
    [1e-6, 1e21), exponent notation (no zero padding) outside it.

    >>> format_number(45.0)
    '45'
    >>> format_number(-122.4194)
    '-122.4194'
    >>> format_number(0.00001)
    '0.00001'
    >>> format_number(1e-7)
    '1e-7'
    """
    value = float(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))

    text = repr(value)
    if 1e-6 <= abs(value) < 1e21:
        return format(Decimal(text), "f")
    if "e" in text:
        mantissa, exponent = text.split("e")
        sign = "-" if exponent.startswith("-") else "+"
        text = f"{mantissa}e{sign}{exponent.lstrip('+-').lstrip('0')}"
    return text


def attestation_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def canonical_message(payload: ProofPayload) -> str:
    """Build the exact text the client signed."""
    parts = [
        payload.version,
        f"account:{payload.account.lower()}",
        f"triangle:{payload.triangle_id}",
        f"lat:{format_number(payload.lat)}",
        f"lon:{format_number(payload.lon)}",
        f"acc:{format_number(payload.accuracy)}",
        f"ts:{payload.timestamp}",
        f"nonce:{payload.nonce}",
    ]
    if isinstance(payload, ProofPayloadV2):
        parts.append(f"att:{attestation_digest(payload.attestation)}")
    return "|".join(parts)
