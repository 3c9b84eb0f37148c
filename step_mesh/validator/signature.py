# step_mesh/validator/signature.py
"""
Signature verification for proof payloads.

Clients sign the canonical message with a personal_sign style (EIP-191
version 0x45) signature:

    keccak256("\\x19Ethereum Signed Message:\\n" + len(message) + message)

The signer address is recovered from the 65-byte (r, s, v) signature and
compared case-insensitively against the payload's claimed account.
"""

import logging
import re

from eth_account import Account
from eth_account.messages import encode_defunct

from ..errors import ErrorCode, ProofRejected
from .payload import ProofPayload, canonical_message

logger = logging.getLogger(__name__)

_SIGNATURE_RE = re.compile(r"^(0x)?[0-9a-fA-F]{130}$")


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the checksummed address that signed `message`.

    Raises:
    -------
    ProofRejected(BAD_SIGNATURE)
        Malformed signature or failed public key recovery
    """
    if not isinstance(signature, str) or not _SIGNATURE_RE.match(signature):
        raise ProofRejected(ErrorCode.BAD_SIGNATURE,
                            "Signature must be 65 bytes of hex (130 characters)")

    hex_sig = signature[2:] if signature.startswith("0x") else signature
    v = int(hex_sig[128:130], 16)
    if v not in (0, 1, 27, 28):
        raise ProofRejected(ErrorCode.BAD_SIGNATURE, f"Invalid recovery id: {v}")

    try:
        return Account.recover_message(encode_defunct(text=message), signature="0x" + hex_sig)
    except Exception as e:
        # eth-account surfaces bad curve points and out-of-range s as
        # assorted exception types
        raise ProofRejected(ErrorCode.BAD_SIGNATURE, f"Signature recovery failed: {e}") from e


def verify_payload_signature(payload: ProofPayload, signature: str) -> str:
    """
    Check that `signature` over the payload's canonical message was made by
    payload.account. Returns the recovered address.
    """
    recovered = recover_signer(canonical_message(payload), signature)
    if recovered.lower() != payload.account.lower():
        logger.warning("Signature mismatch: claimed %s, recovered %s", payload.account, recovered)
        raise ProofRejected(
            ErrorCode.BAD_SIGNATURE,
            f"Signature does not match account: recovered {recovered}",
        )
    return recovered
