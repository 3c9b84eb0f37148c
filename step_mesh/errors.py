# step_mesh/errors.py
"""
ERROR TAXONOMY
==============

Every user-visible outcome of a failed query or proof submission maps to one
ErrorCode. Exceptions carry their code so the service boundary can turn them
into result objects without string matching.

    StepMeshError
    ├── AddressError            (addressing codec)
    │   ├── BadFormatError
    │   └── BadChecksumError
    ├── DegenerateVectorError   (also a ValueError)
    ├── MeshQueryError          (read surface)
    │   ├── InvalidQueryError
    │   └── NotFoundError
    ├── ProofRejected           (validation pipeline, terminal)
    └── StoreError              (persistence collaborator, retryable by caller)
        ├── StoreUnavailableError
        ├── ConcurrentUpdateError   (retried internally)
        └── NonceConflictError
"""

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    BAD_SIGNATURE = "BAD_SIGNATURE"
    NONCE_REPLAY = "NONCE_REPLAY"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    LOW_GPS_ACCURACY = "LOW_GPS_ACCURACY"
    TOO_FAST = "TOO_FAST"
    MORATORIUM = "MORATORIUM"
    BAD_ADDRESS_CHECKSUM = "BAD_ADDRESS_CHECKSUM"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TRIANGLE_INACTIVE = "TRIANGLE_INACTIVE"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"


class StepMeshError(Exception):
    """Base class for all mesh errors."""
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "", code: ErrorCode = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class AddressError(StepMeshError):
    """Raised when a triangle address cannot be trusted."""
    code = ErrorCode.INVALID_PAYLOAD


class BadFormatError(AddressError):
    """Malformed address text or out-of-range TriangleId fields."""
    pass


class BadChecksumError(AddressError):
    """Address parsed but its checksum does not match the payload."""
    code = ErrorCode.BAD_ADDRESS_CHECKSUM


class DegenerateVectorError(StepMeshError, ValueError):
    """Raised when normalizing a zero-length vector."""
    pass


class MeshQueryError(StepMeshError):
    code = ErrorCode.INVALID_PAYLOAD


class InvalidQueryError(MeshQueryError):
    """Query parameters out of range (lat, lon, level, bbox)."""
    pass


class NotFoundError(MeshQueryError):
    code = ErrorCode.NOT_FOUND


class ProofRejected(StepMeshError):
    """
    A proof failed one of the ordered validation checks.

    `triangle` is the stored Triangle the proof targeted, when the check
    that failed had read one; callers use it to report the server's state.
    """

    def __init__(self, code: ErrorCode, message: str = "", triangle=None):
        super().__init__(message or code.value, code=code)
        self.triangle = triangle


class StoreError(StepMeshError):
    code = ErrorCode.INTERNAL_ERROR


class StoreUnavailableError(StoreError):
    """Store call did not complete within its timeout."""
    pass


class ConcurrentUpdateError(StoreError):
    """Conditional update lost the race: the triangle changed since it was read."""
    pass


class NonceConflictError(StoreError):
    """The (account, nonce) pair already exists in the unique index."""
    code = ErrorCode.NONCE_REPLAY
