# step_mesh/kernel - Spherical geometry core
"""
KERNEL: THE GEOMETRY FOUNDATION
===============================

Everything else in step_mesh (icosahedron, addressing, subdivision, lookup,
proof geometry checks) is built on the small set of unit-sphere operations
in this package:

- Vector3 and normalize()
- geodesic_midpoint() (great-circle, not chord)
- triple_product() and is_point_in_spherical_triangle()
- lat/lon conversions and great-circle distances
"""

from .vector import (
    EARTH_RADIUS_M,
    Vector3,
    normalize,
    dot,
    cross,
    triple_product,
    chord_midpoint,
    geodesic_midpoint,
    latlon_to_vector,
    vector_to_latlon,
    angular_distance,
    haversine_m,
)
from .containment import is_point_in_spherical_triangle

__all__ = [
    'EARTH_RADIUS_M',
    'Vector3',
    'normalize',
    'dot',
    'cross',
    'triple_product',
    'chord_midpoint',
    'geodesic_midpoint',
    'latlon_to_vector',
    'vector_to_latlon',
    'angular_distance',
    'haversine_m',
    'is_point_in_spherical_triangle',
]
