# step_mesh/lookup.py
"""
LOOKUP: Point → Triangle, Box → Triangles
=========================================

PURPOSE:
--------
Answer spatial questions without materializing the mesh. All three queries
walk the subdivision tree from the 20 base faces, computing geometry only
for the triangles on the path being explored.

    find_triangle_containing_point   one root-to-leaf descent, O(max_level)
    triangles_in_bbox                pruned depth-first walk, explicit stack
    nearest_triangles                containing triangle + siblings by distance

EDGE POINTS:
------------
A point exactly on a shared edge or vertex is inside more than one triangle
(the containment test is inclusive). The nearest centroid breaks the tie, so
the answer is still deterministic. If floating-point error leaves a point in
no child at all, the descent stops at the current depth and returns the
deepest triangle known to contain it.
"""

import logging
import math
from typing import List, Sequence, Tuple

from .addressing import MAX_LEVEL, MIN_LEVEL, N_FACES, TriangleId, children_of, parent_of, root_id
from .errors import InvalidQueryError
from .kernel.containment import is_point_in_spherical_triangle
from .icosahedron import face_vertices
from .kernel.vector import Vector3, angular_distance, latlon_to_vector, vector_to_latlon
from .subdivision import centroid_vector, centroid_vector_of, subdivide

logger = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]  # (west, south, east, north)

DEFAULT_MAX_RESULTS = 10_000

# Slack on the cap-vs-box test, radians
_CAP_EPSILON = 1e-12


def _validate_point(lat: float, lon: float) -> None:
    if not (isinstance(lat, (int, float)) and math.isfinite(lat)) or lat < -90 or lat > 90:
        raise InvalidQueryError(f"Invalid latitude: {lat}. Must be -90 to +90.")
    if not (isinstance(lon, (int, float)) and math.isfinite(lon)) or lon < -180 or lon > 180:
        raise InvalidQueryError(f"Invalid longitude: {lon}. Must be -180 to +180.")


def _validate_level(level: int) -> None:
    if not isinstance(level, int) or isinstance(level, bool) or level < MIN_LEVEL or level > MAX_LEVEL:
        raise InvalidQueryError(f"Invalid level: {level}. Must be 1-21.")


def _closest(point: Vector3, candidates: Sequence[Tuple[TriangleId, Tuple[Vector3, Vector3, Vector3]]]):
    return min(candidates, key=lambda c: angular_distance(point, centroid_vector(c[1])))


def find_triangle_containing_point(lat: float, lon: float, max_level: int) -> TriangleId:
    """
    Find the triangle at max_level that contains (lat, lon).

    Parameters:
    -----------
    lat, lon : float
        Degrees; lat in [-90, 90], lon in [-180, 180]
    max_level : int
        Target depth, 1..21

    Returns:
    --------
    TriangleId
        At max_level, or shallower only if floating-point error left the
        point in none of the 4 children at some depth

    Raises:
    -------
    InvalidQueryError
        If any argument is out of range
    """
    _validate_point(lat, lon)
    _validate_level(max_level)

    point = latlon_to_vector(lat, lon)

    # Level 1: all 20 faces
    faces = [(root_id(f), face_vertices(f)) for f in range(N_FACES)]
    matches = [c for c in faces if is_point_in_spherical_triangle(point, *c[1])]
    if not matches:
        logger.debug("Point (%s, %s) matched no base face; using nearest centroid", lat, lon)
        matches = faces
    current, verts = _closest(point, matches) if len(matches) > 1 else matches[0]

    # Descend one level per iteration
    while current.level < max_level:
        candidates = list(zip(children_of(current), subdivide(*verts)))
        matches = [c for c in candidates if is_point_in_spherical_triangle(point, *c[1])]
        if not matches:
            logger.debug("Point (%s, %s) in no child of %s; stopping at level %d",
                         lat, lon, current, current.level)
            break
        current, verts = _closest(point, matches) if len(matches) > 1 else matches[0]

    return current


# =============================================================================
# BOUNDING BOX SEARCH
# =============================================================================

def _validate_bbox(bbox: BBox) -> None:
    if len(bbox) != 4:
        raise InvalidQueryError("Bounding box must be (west, south, east, north)")
    west, south, east, north = bbox
    for lon in (west, east):
        if not math.isfinite(lon) or lon < -180 or lon > 180:
            raise InvalidQueryError("Invalid longitude in bbox. Must be -180 to +180.")
    for lat in (south, north):
        if not math.isfinite(lat) or lat < -90 or lat > 90:
            raise InvalidQueryError("Invalid latitude in bbox. Must be -90 to +90.")
    if south > north:
        raise InvalidQueryError(f"Invalid bbox: south ({south}) > north ({north}).")


def _lon_in_range(lon: float, west: float, east: float) -> bool:
    if west <= east:
        return west <= lon <= east
    # Box wraps across the antimeridian
    return lon >= west or lon <= east


def _cos_distance(phi_p: float, lam_p: float, phi: float, lam: float) -> float:
    return (math.sin(phi_p) * math.sin(phi)
            + math.cos(phi_p) * math.cos(phi) * math.cos(lam - lam_p))


def _distance_to_bbox(lat: float, lon: float, bbox: BBox) -> float:
    """
    Angular distance (radians) from a point to a lat/lon box; 0 if inside.

    The nearest point lies on one of the four box edges. Along a meridian
    edge cos(d) is A·sin(φ) + B·cos(φ), maximized at φ* = atan2(A, B); along a
    parallel edge it is maximized at the longitude closest to the point.
    Each edge therefore has at most three candidates.
    """
    west, south, east, north = bbox
    if south <= lat <= north and _lon_in_range(lon, west, east):
        return 0.0

    phi_p, lam_p = math.radians(lat), math.radians(lon)
    s, n = math.radians(south), math.radians(north)
    w, e = math.radians(west), math.radians(east)

    best = -1.0
    for lam in (w, e):
        d_lam = lam - lam_p
        phi_star = math.atan2(math.sin(phi_p), math.cos(phi_p) * math.cos(d_lam))
        candidates = [s, n]
        if s <= phi_star <= n:
            candidates.append(phi_star)
        for phi in candidates:
            best = max(best, _cos_distance(phi_p, lam_p, phi, lam))

    for phi in (s, n):
        candidates = [w, e]
        if _lon_in_range(lon, west, east):
            candidates.append(lam_p)
        for lam in candidates:
            best = max(best, _cos_distance(phi_p, lam_p, phi, lam))

    return math.acos(max(-1.0, min(1.0, best)))


def _bounding_cap(verts) -> Tuple[Vector3, float]:
    center = centroid_vector(verts)
    radius = max(angular_distance(center, v) for v in verts)
    return center, radius


def triangles_in_bbox(bbox: BBox, level: int, max_results: int = DEFAULT_MAX_RESULTS) -> List[TriangleId]:
    """
    All triangles at `level` whose bounding cap reaches the box.

    The walk keeps an explicit stack of (id, vertices) and prunes any
    subtree whose bounding cap (centroid + max vertex distance) does not
    reach the box. The result is a superset of the triangles that actually
    overlap the box, never a subset. Order is depth-first by face then path.

    Parameters:
    -----------
    bbox : (west, south, east, north)
        Degrees. west > east means the box wraps the antimeridian.
    level : int
        Target level, 1..21
    max_results : int
        Stop after this many triangles

    Raises:
    -------
    InvalidQueryError
        Bad bbox, level or max_results
    """
    _validate_bbox(bbox)
    _validate_level(level)
    if not isinstance(max_results, int) or max_results < 1:
        raise InvalidQueryError(f"max_results must be a positive integer, got {max_results}")

    results: List[TriangleId] = []
    stack = [(root_id(f), face_vertices(f)) for f in reversed(range(N_FACES))]

    while stack and len(results) < max_results:
        tid, verts = stack.pop()

        center, radius = _bounding_cap(verts)
        c_lat, c_lon = vector_to_latlon(center)
        if _distance_to_bbox(c_lat, c_lon, bbox) > radius + _CAP_EPSILON:
            continue

        if tid.level == level:
            results.append(tid)
            continue

        children = list(zip(children_of(tid), subdivide(*verts)))
        stack.extend(reversed(children))

    if len(results) >= max_results:
        logger.info("Bounding box search truncated at %d results (level %d)", max_results, level)
    return results


# =============================================================================
# NEAREST
# =============================================================================

def nearest_triangles(lat: float, lon: float, level: int, count: int = 10) -> List[TriangleId]:
    """
    Containing triangle and its siblings, nearest centroid first.

    At level 1 the candidates are all 20 faces.
    """
    if not isinstance(count, int) or count < 1:
        raise InvalidQueryError(f"count must be a positive integer, got {count}")

    center = find_triangle_containing_point(lat, lon, level)
    if center.level == MIN_LEVEL:
        candidates = [root_id(f) for f in range(N_FACES)]
    else:
        candidates = children_of(parent_of(center))

    point = latlon_to_vector(lat, lon)
    ranked = sorted(candidates, key=lambda t: angular_distance(point, centroid_vector_of(t)))
    return ranked[:count]
