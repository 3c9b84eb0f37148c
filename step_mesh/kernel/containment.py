# step_mesh/kernel/containment.py
"""Spherical point-in-triangle test using great-circle half-spaces."""

import numpy as np

from .vector import VectorLike, _as_array

# Boundary tolerance as an angle in radians (~6 µm on Earth); points on an
# edge count as inside
EDGE_EPSILON = 1e-12


def is_point_in_spherical_triangle(
    p: VectorLike,
    v0: VectorLike,
    v1: VectorLike,
    v2: VectorLike,
    eps: float = EDGE_EPSILON,
) -> bool:
    """
    Test whether p lies inside the spherical triangle (v0, v1, v2).

    Each edge defines a great circle through the origin. The scalar triple
    product of the edge endpoints with a test point tells which side of that
    circle the point is on. The point is inside iff, for all three edges, it
    is on the same side as the opposite vertex.

    The edge normal is scaled to unit length before the test, so the
    tolerance is an angular distance to the great circle and means the same
    thing for a level-1 face as for a 7 m level-21 leaf.

    Because the reference sign comes from the triangle's own third vertex,
    the result does not depend on winding order.

    Args:
        p: Test point on the unit sphere
        v0, v1, v2: Triangle vertices on the unit sphere
        eps: Boundary tolerance in radians

    Returns:
        True if p is inside or on the boundary
    """
    p = _as_array(p)
    a0, a1, a2 = _as_array(v0), _as_array(v1), _as_array(v2)

    for a, b, opposite in ((a0, a1, a2), (a1, a2, a0), (a2, a0, a1)):
        normal = np.cross(a, b)
        length = np.linalg.norm(normal)
        if length == 0.0:
            return False
        normal = normal / length
        side_point = float(np.dot(normal, p))
        side_ref = float(np.dot(normal, opposite))
        if side_ref < 0:
            side_point = -side_point
        if side_point < -eps:
            return False
    return True
