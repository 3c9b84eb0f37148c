# step_mesh/icosahedron.py
"""
ICOSAHEDRON BASE: The 20 Level-1 Faces
======================================

A regular icosahedron has 12 vertices, 30 edges and 20 triangular faces.
Its vertices are the corners of three mutually orthogonal golden rectangles
(sides 1 : φ), each corner then pushed out onto the unit sphere.

    Rectangle in XY:  (±1, ±φ, 0)
    Rectangle in YZ:  (0, ±1, ±φ)
    Rectangle in XZ:  (±φ, 0, ±1)

The 20 faces are the level-1 triangles of the mesh. Face index f (0..19) is
the `face` field of every TriangleId below it, and the vertex ORDER of each
face is part of the addressing contract: subdivision child 0 is always the
corner at the face's first vertex, and so on. Do not reorder this table.

Faces are wound counter-clockwise as seen from outside the sphere.
"""

import math
from typing import Tuple

from .errors import BadFormatError
from .kernel.vector import Vector3


PHI = (1 + math.sqrt(5)) / 2

N_FACES = 20

ICOSAHEDRON_VERTICES: Tuple[Vector3, ...] = (
    # Rectangle in XY plane
    Vector3(-1.0, PHI, 0.0),
    Vector3(1.0, PHI, 0.0),
    Vector3(-1.0, -PHI, 0.0),
    Vector3(1.0, -PHI, 0.0),
    # Rectangle in YZ plane
    Vector3(0.0, -1.0, PHI),
    Vector3(0.0, 1.0, PHI),
    Vector3(0.0, -1.0, -PHI),
    Vector3(0.0, 1.0, -PHI),
    # Rectangle in XZ plane
    Vector3(PHI, 0.0, -1.0),
    Vector3(PHI, 0.0, 1.0),
    Vector3(-PHI, 0.0, -1.0),
    Vector3(-PHI, 0.0, 1.0),
)

ICOSAHEDRON_FACES: Tuple[Tuple[int, int, int], ...] = (
    # 5 faces around vertex 0
    (0, 11, 5),
    (0, 5, 1),
    (0, 1, 7),
    (0, 7, 10),
    (0, 10, 11),
    # Upper band
    (1, 5, 9),
    (5, 11, 4),
    (11, 10, 2),
    (10, 7, 6),
    (7, 1, 8),
    # Lower band
    (3, 9, 4),
    (3, 4, 2),
    (3, 2, 6),
    (3, 6, 8),
    (3, 8, 9),
    # 5 faces around vertex 3
    (4, 9, 5),
    (2, 4, 11),
    (6, 2, 10),
    (8, 6, 7),
    (9, 8, 1),
)


def face_vertices(face: int) -> Tuple[Vector3, Vector3, Vector3]:
    """
    Return the three vertices of a base face, in table order.

    Raises:
    -------
    BadFormatError
        If face is outside 0..19
    """
    if not isinstance(face, int) or face < 0 or face >= N_FACES:
        raise BadFormatError(f"Invalid face index: {face}. Must be 0-19.")
    i, j, k = ICOSAHEDRON_FACES[face]
    return ICOSAHEDRON_VERTICES[i], ICOSAHEDRON_VERTICES[j], ICOSAHEDRON_VERTICES[k]
