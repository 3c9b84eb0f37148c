# step_mesh/subdivision.py
r"""
SUBDIVISION: From TriangleId to Geometry
========================================

PURPOSE:
--------
Nothing below level 1 is ever stored as geometry. A triangle's vertices are
recomputed on demand by replaying its path from the base face:

    face 7, path (0, 1, 3, 2)

    face 7 ──subdivide──> child 0 ──subdivide──> child 1 ──> child 3 ──> child 2

Each subdivision splits a triangle at its three geodesic edge midpoints:

                 v0
                 /\
                /T0\
          m20  /____\  m01
              /\ T3 /\
             /T2\  /T1\
            /____\/____\
          v2     m12     v1

    T0 = (v0,  m01, m20)
    T1 = (m01, v1,  m12)
    T2 = (m20, m12, v2)
    T3 = (m01, m12, m20)     center

The child order and each child's vertex order are part of the addressing
contract and never change.

UNITS:
------
    polygon / centroid    degrees, (lon, lat) order
    area                  square meters on a 6,371 km sphere
    perimeter             meters
"""

import math
from typing import List, Sequence, Tuple

import numpy as np

from .addressing import TriangleId
from .icosahedron import face_vertices
from .kernel.vector import (
    EARTH_RADIUS_M,
    Vector3,
    angular_distance,
    geodesic_midpoint,
    normalize,
    vector_to_latlon,
)

Triangle3 = Tuple[Vector3, Vector3, Vector3]
LonLat = Tuple[float, float]


def subdivide(v0: Vector3, v1: Vector3, v2: Vector3) -> List[Triangle3]:
    """
    Split a spherical triangle into its 4 children.

    Parameters:
    -----------
    v0, v1, v2 : Vector3
        Parent vertices, in the parent's own vertex order

    Returns:
    --------
    List[Triangle3]
        [T0, T1, T2, T3] as documented in the module docstring
    """
    m01 = geodesic_midpoint(v0, v1)
    m12 = geodesic_midpoint(v1, v2)
    m20 = geodesic_midpoint(v2, v0)

    return [
        (v0, m01, m20),
        (m01, v1, m12),
        (m20, m12, v2),
        (m01, m12, m20),
    ]


def vertices_of(tid: TriangleId) -> Triangle3:
    """Replay the path from the base face; O(level) midpoint computations."""
    v0, v1, v2 = face_vertices(tid.face)
    for child in tid.path:
        v0, v1, v2 = subdivide(v0, v1, v2)[child]
    return v0, v1, v2


def polygon_of(tid: TriangleId) -> List[LonLat]:
    """
    The triangle's 3 vertices as (lon, lat) degree pairs.

    The ring is open (3 points). Callers that need a closed GeoJSON ring
    append the first point themselves.
    """
    polygon = []
    for v in vertices_of(tid):
        lat, lon = vector_to_latlon(v)
        polygon.append((lon, lat))
    return polygon


def centroid_vector(vertices: Sequence[Vector3]) -> Vector3:
    mean = np.mean([v.as_array() for v in vertices], axis=0)
    return normalize(mean)


def centroid_vector_of(tid: TriangleId) -> Vector3:
    return centroid_vector(vertices_of(tid))


def centroid_of(tid: TriangleId) -> LonLat:
    """Normalized mean of the three vertices, as (lon, lat)."""
    lat, lon = vector_to_latlon(centroid_vector_of(tid))
    return lon, lat


def _edge_angles(vertices: Triangle3) -> Tuple[float, float, float]:
    v0, v1, v2 = vertices
    return (
        angular_distance(v1, v2),
        angular_distance(v0, v2),
        angular_distance(v0, v1),
    )


def spherical_excess(v0: Vector3, v1: Vector3, v2: Vector3) -> float:
    """
    Spherical excess E of a triangle on the unit sphere (L'Huilier).

        s = (a + b + c) / 2
        tan(E/4) = sqrt(tan(s/2) tan((s-a)/2) tan((s-b)/2) tan((s-c)/2))
    """
    a, b, c = _edge_angles((v0, v1, v2))
    s = (a + b + c) / 2
    product = (math.tan(s / 2)
               * math.tan((s - a) / 2)
               * math.tan((s - b) / 2)
               * math.tan((s - c) / 2))
    # Rounding can push a degenerate triangle slightly negative
    return 4 * math.atan(math.sqrt(max(product, 0.0)))


def area_m2(tid: TriangleId) -> float:
    """Surface area in square meters."""
    return EARTH_RADIUS_M ** 2 * spherical_excess(*vertices_of(tid))


def perimeter_m(tid: TriangleId) -> float:
    """Sum of the three great-circle edge lengths in meters."""
    return EARTH_RADIUS_M * sum(_edge_angles(vertices_of(tid)))


def crosses_antimeridian(polygon: Sequence[LonLat]) -> bool:
    """
    True if any edge of a (lon, lat) ring jumps more than 180° in longitude.

    Such polygons need splitting before planar map rendering.
    """
    n = len(polygon)
    for i in range(n):
        lon1 = polygon[i][0]
        lon2 = polygon[(i + 1) % n][0]
        if abs(lon2 - lon1) > 180:
            return True
    return False
