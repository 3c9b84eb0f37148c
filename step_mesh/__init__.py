# step_mesh - Icosahedral geodesic mesh and proof-of-location validation
"""
STEP MESH: A Global Triangular Spatial Index
============================================

This package provides:
- A deterministic icosahedral mesh over Earth, 20 faces subdivided to 21 levels
- Stable, checksummed text addresses for every triangle (STEP-TRI-v1)
- Point, bounding-box and nearest-neighbour lookup without materializing the mesh
- A signed proof-of-location pipeline that turns accepted proofs into clicks,
  rewards and triangle subdivision

ARCHITECTURE:
-------------
    kernel/             Unit-sphere primitives (Vector3, midpoints, containment)
    icosahedron.py      The 12 vertices and 20 base faces
    addressing.py       TriangleId and the STEP-TRI-v1 codec
    subdivision.py      Path replay: polygon, centroid, area, perimeter
    lookup.py           Point → triangle, bbox search, nearest triangles

    validator/          Proof pipeline (schema, signature, heuristics, scoring)
    state/              Triangle models, store contract, click lifecycle

    service.py          Query + submission facade
    sync.py             Client-side local command log
    config.py           MeshConfig (env-overridable defaults)
    errors.py           ErrorCode taxonomy + exceptions
    logging_config.py   setup_logging()
"""

from .addressing import TriangleId, decode, encode
from .config import CONFIG, MeshConfig
from .errors import ErrorCode, StepMeshError
from .lookup import find_triangle_containing_point
from .service import MeshService, SubmissionResult

__version__ = "0.1.0"

__all__ = [
    'TriangleId',
    'encode',
    'decode',
    'find_triangle_containing_point',
    'MeshConfig',
    'CONFIG',
    'ErrorCode',
    'StepMeshError',
    'MeshService',
    'SubmissionResult',
]
