# step_mesh/kernel/vector.py
"""
VECTOR3: Points on the Unit Sphere
==================================

PURPOSE:
--------
Every vertex in the mesh is a point on the unit sphere. This module holds the
value type for such points and the handful of operations the rest of the
package is built on:

    normalize            project any non-zero vector onto the sphere
    geodesic_midpoint    great-circle midpoint of two sphere points
    triple_product       (a × b) · c, the sign test behind containment
    latlon_to_vector     geographic degrees -> Cartesian
    vector_to_latlon     Cartesian -> geographic degrees
    angular_distance     central angle in radians
    haversine_m          surface distance in meters between two lat/lon pairs

COORDINATE CONVENTION:
----------------------
    lat = asin(z)         (-90 South Pole .. +90 North Pole)
    lon = atan2(y, x)     (-180 .. +180, measured from +X toward +Y)

GEODESIC VS CHORD MIDPOINT:
---------------------------
The straight-line (chord) midpoint (a + b) / 2 lies INSIDE the sphere.
Projecting it back out gives the great-circle midpoint. Using the chord
midpoint directly as a vertex is a correctness bug: the vertex would not be
on the sphere and child triangles would drift from their parents.
"""

import math
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from ..errors import DegenerateVectorError


EARTH_RADIUS_M = 6_371_000.0

# Anything shorter than this cannot be normalized reliably
_MIN_NORM = 1e-15


@dataclass(frozen=True)
class Vector3:
    """
    A point on the unit sphere.

    Construction normalizes the coordinates, so every Vector3 satisfies
    x² + y² + z² = 1 within floating-point tolerance.

    Examples:
    ---------
    >>> v = Vector3(0.0, 0.0, 2.0)
    >>> v.z
    1.0
    >>> Vector3(1.0, 1.0, 0.0).norm()
    1.0
    """
    x: float
    y: float
    z: float

    def __post_init__(self):
        n = math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)
        if not math.isfinite(n) or n < _MIN_NORM:
            raise DegenerateVectorError(
                f"Cannot normalize vector ({self.x}, {self.y}, {self.z}): zero or non-finite length"
            )
        # frozen dataclass: bypass __setattr__ to store the normalized values
        object.__setattr__(self, "x", float(self.x / n))
        object.__setattr__(self, "y", float(self.y / n))
        object.__setattr__(self, "z", float(self.z / n))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def norm(self) -> float:
        return float(np.linalg.norm(self.as_array()))


VectorLike = Union[Vector3, Sequence[float], np.ndarray]


def _as_array(v: VectorLike) -> np.ndarray:
    if isinstance(v, Vector3):
        return v.as_array()
    arr = np.asarray(v, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-component vector, got shape {arr.shape}")
    return arr


def normalize(v: VectorLike) -> Vector3:
    """
    Scale a vector to unit length.

    Raises:
    -------
    DegenerateVectorError
        If v is the zero vector (never the case for valid mesh vertices).
    """
    arr = _as_array(v)
    return Vector3(arr[0], arr[1], arr[2])


def dot(a: VectorLike, b: VectorLike) -> float:
    return float(np.dot(_as_array(a), _as_array(b)))


def cross(a: VectorLike, b: VectorLike) -> np.ndarray:
    return np.cross(_as_array(a), _as_array(b))


def triple_product(a: VectorLike, b: VectorLike, c: VectorLike) -> float:
    """(a × b) · c, positive when c lies left of the great circle a→b."""
    return float(np.dot(np.cross(_as_array(a), _as_array(b)), _as_array(c)))


def chord_midpoint(a: VectorLike, b: VectorLike) -> np.ndarray:
    """Straight-line midpoint. Lies inside the sphere; never a mesh vertex."""
    return (_as_array(a) + _as_array(b)) / 2.0


def geodesic_midpoint(a: VectorLike, b: VectorLike) -> Vector3:
    """
    Great-circle midpoint of two sphere points: average, then normalize.

    Antipodal inputs have no unique midpoint and raise DegenerateVectorError.
    """
    return normalize(chord_midpoint(a, b))


def latlon_to_vector(lat: float, lon: float) -> Vector3:
    """Convert latitude/longitude in degrees to a unit vector."""
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    cos_lat = math.cos(lat_rad)
    return Vector3(
        cos_lat * math.cos(lon_rad),
        cos_lat * math.sin(lon_rad),
        math.sin(lat_rad),
    )


def vector_to_latlon(v: VectorLike) -> Tuple[float, float]:
    """
    Convert a sphere point to (lat, lon) in degrees.

    Returns:
    --------
    Tuple[float, float]
        (lat, lon). Polygons are emitted as (lon, lat).
    """
    arr = _as_array(v)
    z = max(-1.0, min(1.0, float(arr[2])))
    lat = math.degrees(math.asin(z))
    lon = math.degrees(math.atan2(float(arr[1]), float(arr[0])))
    return lat, lon


def angular_distance(a: VectorLike, b: VectorLike) -> float:
    """Central angle between two sphere points in radians."""
    c = max(-1.0, min(1.0, dot(normalize(a), normalize(b))))
    return math.acos(c)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle surface distance in meters (spherical Earth)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c
