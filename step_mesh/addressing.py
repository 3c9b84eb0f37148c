# step_mesh/addressing.py
"""
ADDRESSING CODEC: STEP-TRI-v1 Triangle Identifiers
==================================================

PURPOSE:
--------
Every triangle in the mesh, from the 20 base faces down to the ~2.2×10¹³
level-21 leaves, has exactly one identifier:

    TriangleId(face, level, path)

    face   0..19          which base icosahedron face
    level  1..21          subdivision depth (1 = base face)
    path   tuple of 0..3  child choice at each subdivision, len = level - 1

WIRE FORMAT:
------------
    STEP-TRI-v1:<face-letter><level>-<path, 20 digits zero-padded>-<checksum>

    STEP-TRI-v1:H5-01320000000000000000-XXX
                │└┬┘ └──────┬─────────┘ └┬┘
                │ level     path       checksum
                face 7 ('A' + 7)

The checksum is the first 15 bits of SHA-256(payload), where payload is the
text between the scheme and the last dash, rendered as 3 base-32 characters
(RFC 4648 alphabet, most significant digit first). The address text is the
durable cross-system identifier, so this format must never vary.

USAGE:
------
    tid = TriangleId(face=7, level=5, path=(0, 1, 3, 2))
    text = encode(tid)
    assert decode(text) == tid
    parent_of(tid)      # TriangleId(7, 4, (0, 1, 3))
    children_of(tid)    # 4 ids with path + (0,), ..., + (3,)
"""

import hashlib
import numbers
import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .errors import BadChecksumError, BadFormatError


SCHEME = "STEP-TRI-v1"
MIN_LEVEL = 1
MAX_LEVEL = 21
N_FACES = 20
PATH_WIDTH = MAX_LEVEL - 1  # 20 digits always written

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
CHECKSUM_LENGTH = 3

# Approximate side length of a level-1 face on Earth, meters
BASE_SIDE_LENGTH_M = 8_000_000

_ADDRESS_RE = re.compile(r"^([A-T])([0-9]{1,2})-([0-3]{%d})-([A-Z2-7]{%d})$" % (PATH_WIDTH, CHECKSUM_LENGTH))


def _as_int(name: str, value) -> int:
    # Integral covers numpy integers; bool is excluded explicitly
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise BadFormatError(f"Invalid {name}: {value!r}. Must be an integer.")
    return int(value)


@dataclass(frozen=True)
class TriangleId:
    """
    Immutable identifier of one mesh triangle.

    Two ids are equal iff face, level and path are equal. The path is stored
    as a tuple so ids are hashable and can key dicts and sets.

    Raises:
    -------
    BadFormatError
        If any field is not an integer, is out of range, or len(path) != level - 1
    """
    face: int
    level: int
    path: Tuple[int, ...] = ()

    def __post_init__(self):
        try:
            digits = tuple(self.path)
        except TypeError as e:
            raise BadFormatError(f"Invalid path: {self.path!r}. Must be a sequence of digits.") from e
        path = tuple(_as_int("path digit", d) for d in digits)
        object.__setattr__(self, "path", path)
        object.__setattr__(self, "face", _as_int("face", self.face))
        object.__setattr__(self, "level", _as_int("level", self.level))

        if self.face < 0 or self.face >= N_FACES:
            raise BadFormatError(f"Invalid face: {self.face}. Must be 0-19.")
        if self.level < MIN_LEVEL or self.level > MAX_LEVEL:
            raise BadFormatError(f"Invalid level: {self.level}. Must be 1-21.")
        if len(path) != self.level - 1:
            raise BadFormatError(
                f"Path length mismatch: level={self.level} requires path length="
                f"{self.level - 1}, got {len(path)}"
            )
        for digit in path:
            if digit < 0 or digit > 3:
                raise BadFormatError(f"Invalid path digit: {digit}. Must be 0-3.")

    def __str__(self) -> str:
        return encode(self)


def root_id(face: int) -> TriangleId:
    """Level-1 id of a base face."""
    return TriangleId(face=face, level=1, path=())


def compute_checksum(payload: str) -> str:
    """
    3-character base-32 checksum of an address payload.

    SHA-256 → first 15 bits → 3 base-32 digits (32³ = 32768 values).
    """
    digest = hashlib.sha256(payload.encode("utf-8")).digest()
    value = (digest[0] << 7) | (digest[1] >> 1)

    chars = []
    for _ in range(CHECKSUM_LENGTH):
        chars.append(BASE32_ALPHABET[value % 32])
        value //= 32
    return "".join(reversed(chars))


def _payload(tid: TriangleId) -> str:
    face_char = chr(ord("A") + tid.face)
    path_str = "".join(str(d) for d in tid.path).ljust(PATH_WIDTH, "0")
    return f"{face_char}{tid.level}-{path_str}"


def encode(tid: TriangleId) -> str:
    """Serialize a TriangleId to its STEP-TRI-v1 address."""
    payload = _payload(tid)
    return f"{SCHEME}:{payload}-{compute_checksum(payload)}"


def decode(text: str) -> TriangleId:
    """
    Parse a STEP-TRI-v1 address.

    The checksum is verified before any parsed field is trusted, and the
    address must be canonical: a text that does not re-encode to itself is
    rejected rather than repaired.

    Raises:
    -------
    BadFormatError
        Wrong scheme, wrong shape, out-of-range fields, non-zero padding
    BadChecksumError
        Well-formed address whose checksum does not match
    """
    if not isinstance(text, str):
        raise BadFormatError(f"Triangle address must be a string, got {type(text).__name__}")

    prefix = SCHEME + ":"
    if not text.startswith(prefix):
        raise BadFormatError(f"Invalid triangle address: missing {SCHEME} prefix")

    body = text[len(prefix):]
    parts = body.split("-")
    if len(parts) != 3:
        raise BadFormatError("Invalid triangle address: expected 3 dash-separated parts")

    face_level, path_str, provided = parts
    expected = compute_checksum(f"{face_level}-{path_str}")
    if provided != expected:
        raise BadChecksumError(f"Checksum mismatch: expected {expected}, got {provided}")

    match = _ADDRESS_RE.match(body)
    if match is None:
        raise BadFormatError(f"Invalid triangle address: {text!r}")

    face_char, level_str, path_str, _ = match.groups()
    if level_str.startswith("0"):
        raise BadFormatError(f"Invalid level: {level_str!r} (leading zero)")

    level = int(level_str)
    if level < MIN_LEVEL or level > MAX_LEVEL:
        raise BadFormatError(f"Invalid level: {level}. Must be 1-21.")

    meaningful, padding = path_str[:level - 1], path_str[level - 1:]
    if padding.strip("0"):
        raise BadFormatError(f"Non-zero path padding beyond level {level}: {padding!r}")

    return TriangleId(
        face=ord(face_char) - ord("A"),
        level=level,
        path=tuple(int(c) for c in meaningful),
    )


def parent_of(tid: TriangleId) -> TriangleId:
    """Drop the last path digit. Level-1 faces have no parent."""
    if tid.level == MIN_LEVEL:
        raise BadFormatError("Level 1 triangles have no parent")
    return TriangleId(face=tid.face, level=tid.level - 1, path=tid.path[:-1])


def children_of(tid: TriangleId) -> List[TriangleId]:
    """The four child ids, in child-index order 0..3."""
    if tid.level == MAX_LEVEL:
        raise BadFormatError("Level 21 triangles cannot subdivide (max depth)")
    return [
        TriangleId(face=tid.face, level=tid.level + 1, path=tid.path + (i,))
        for i in range(4)
    ]


def ancestors_of(tid: TriangleId) -> List[TriangleId]:
    """All ancestors from the level-1 face down to the direct parent."""
    return [
        TriangleId(face=tid.face, level=lvl, path=tid.path[:lvl - 1])
        for lvl in range(MIN_LEVEL, tid.level)
    ]


def path_to_int(path: Iterable[int]) -> int:
    """Pack path digits 2 bits each, first digit most significant."""
    value = 0
    for digit in path:
        value = (value << 2) | int(digit)
    return value


def int_to_path(value: int, length: int) -> Tuple[int, ...]:
    """Inverse of path_to_int for a known path length."""
    digits = []
    for _ in range(length):
        digits.append(value & 3)
        value >>= 2
    return tuple(reversed(digits))


def _check_level(level: int) -> None:
    if level < MIN_LEVEL or level > MAX_LEVEL:
        raise BadFormatError(f"Invalid level: {level}. Must be 1-21.")


def triangle_count_at_level(level: int) -> int:
    """20 × 4^(level-1)."""
    _check_level(level)
    return N_FACES * 4 ** (level - 1)


def estimate_side_length_m(level: int) -> float:
    """
    Approximate triangle side length on Earth at a level.

    8000 km / 2^(level-1): ~8000 km at level 1, ~15.6 km at level 10,
    ~7.6 m at level 21.
    """
    _check_level(level)
    return BASE_SIDE_LENGTH_M / 2 ** (level - 1)
