# step_mesh/service.py
"""
MESH SERVICE: Query and Submission Surface
==========================================

PURPOSE:
--------
One object that a transport layer (HTTP handler, RPC server, CLI) can wrap
without knowing anything about the geometry or the pipeline underneath.

    Queries (raise MeshQueryError subclasses)
        triangle_at(lat, lon, level)     containing triangle + polygon + centroid
        polygon(triangle_id)             3 × [lon, lat]
        info(triangle_id)                geometry + materialized state
        children(triangle_id)            4 ids, only once SUBDIVIDED
        parent(triangle_id)              id with last path digit removed
        search(bbox, level, max_results) ids whose bounding cap reaches bbox
        nearest(lat, lon, level, count)  containing triangle + siblings
        stats(level=None)                mesh-wide counters
        balance(account)                 credited total

    Submission (never raises; returns SubmissionResult)
        submit_proof(payload, signature)

Triangle ids are accepted as STEP-TRI-v1 address strings or TriangleId
values and always returned as address strings.

USAGE:
------
    service = MeshService()
    service.triangle_at(37.7749, -122.4194, level=10)
    result = service.submit_proof(payload_dict, signature_hex)
    if not result.ok:
        print(result.code, result.message)
"""

import logging
import math
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel

from .addressing import (
    MIN_LEVEL,
    TriangleId,
    children_of,
    decode,
    encode,
    estimate_side_length_m,
    parent_of,
    triangle_count_at_level,
)
from .config import CONFIG, MeshConfig
from .errors import (
    AddressError,
    ErrorCode,
    InvalidQueryError,
    NotFoundError,
    ProofRejected,
    StepMeshError,
)
from .kernel.vector import EARTH_RADIUS_M
from .lookup import DEFAULT_MAX_RESULTS, find_triangle_containing_point, nearest_triangles, triangles_in_bbox
from .state.lifecycle import TriangleLifecycle, utc_now
from .state.models import TriangleState
from .state.store import InMemoryStore, MeshStore
from .subdivision import area_m2, centroid_of, crosses_antimeridian, perimeter_m, polygon_of
from .validator.cell_tower import CellResolver
from .validator.pipeline import ProofPipeline

logger = logging.getLogger(__name__)

TriangleRef = Union[str, TriangleId]


class SubmissionResult(BaseModel):
    """Outcome of submit_proof, accepted or not."""
    ok: bool
    code: Optional[ErrorCode] = None
    message: Optional[str] = None
    triangle_id: Optional[str] = None
    reward: Optional[Decimal] = None
    new_clicks: Optional[int] = None
    balance: Optional[Decimal] = None
    confidence: Optional[int] = None
    confidence_level: Optional[str] = None
    subdivided: bool = False
    exhausted: bool = False
    # Server state of the triangle after the call. Also set on rejections
    # that read a stored triangle, with new_clicks holding its click count.
    state: Optional[str] = None


def _rejected(code: ErrorCode, message: str, triangle=None) -> SubmissionResult:
    if triangle is None:
        return SubmissionResult(ok=False, code=code, message=message)
    return SubmissionResult(
        ok=False,
        code=code,
        message=message,
        triangle_id=triangle.address,
        new_clicks=triangle.clicks,
        state=triangle.state.value,
    )


class MeshService:
    """
    Facade over lookup, pipeline, lifecycle and store.

    Parameters:
    -----------
    store : MeshStore, optional
        Defaults to an InMemoryStore with config.store_timeout_s
    config : MeshConfig, optional
        Defaults to the module-level CONFIG
    cell_resolver : CellResolver, optional
        Tower lookup for the v2 cell-tower signal
    clock : callable, optional
        Returns the current aware UTC datetime
    """

    def __init__(
        self,
        store: Optional[MeshStore] = None,
        config: Optional[MeshConfig] = None,
        cell_resolver: Optional[CellResolver] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or CONFIG
        self.store = store if store is not None else InMemoryStore(timeout_s=self.config.store_timeout_s)
        self.clock = clock
        self.pipeline = ProofPipeline(self.store, self.config, cell_resolver=cell_resolver)
        self.lifecycle = TriangleLifecycle(self.store, self.config, self.pipeline, clock=clock)

    # =========================================================================
    # QUERIES
    # =========================================================================

    @staticmethod
    def _resolve(ref: TriangleRef) -> TriangleId:
        if isinstance(ref, TriangleId):
            return ref
        try:
            return decode(ref)
        except AddressError as e:
            raise InvalidQueryError(e.message, code=e.code) from e

    def _check_level(self, level: int) -> None:
        if not isinstance(level, int) or isinstance(level, bool) or not MIN_LEVEL <= level <= self.config.max_level:
            raise InvalidQueryError(f"Invalid level: {level}. Must be 1-{self.config.max_level}.")

    def triangle_at(self, lat: float, lon: float, level: int) -> Dict[str, Any]:
        self._check_level(level)
        tid = find_triangle_containing_point(lat, lon, level)
        return {
            "triangle_id": encode(tid),
            "face": tid.face,
            "level": tid.level,
            "path": list(tid.path),
            "polygon": [list(p) for p in polygon_of(tid)],
            "centroid": list(centroid_of(tid)),
            "estimated_side_length_m": estimate_side_length_m(tid.level),
        }

    def polygon(self, triangle_id: TriangleRef) -> List[List[float]]:
        return [list(p) for p in polygon_of(self._resolve(triangle_id))]

    def info(self, triangle_id: TriangleRef) -> Dict[str, Any]:
        """
        Geometry plus materialized state. Unreferenced triangles report a fresh
        ACTIVE state; `mineable` says whether a proof could target it now.
        """
        tid = self._resolve(triangle_id)
        polygon = polygon_of(tid)
        stored = self.store.get_triangle(tid)

        result = {
            "triangle_id": encode(tid),
            "face": tid.face,
            "level": tid.level,
            "path": list(tid.path),
            "polygon": [list(p) for p in polygon],
            "centroid": list(centroid_of(tid)),
            "area_m2": area_m2(tid),
            "perimeter_m": perimeter_m(tid),
            "estimated_side_length_m": estimate_side_length_m(tid.level),
            "crosses_antimeridian": crosses_antimeridian(polygon),
            "parent": encode(parent_of(tid)) if tid.level > MIN_LEVEL else None,
            "materialized": stored is not None,
            "state": TriangleState.ACTIVE.value,
            "clicks": 0,
            "children": [],
            "moratorium_ends_at": None,
            "last_click_at": None,
        }
        if stored is not None:
            data = stored.to_dict()
            for key in ("state", "clicks", "children", "moratorium_ends_at", "last_click_at"):
                result[key] = data[key]
            result["mineable"] = stored.is_active
        elif tid.level == MIN_LEVEL:
            result["mineable"] = True
        else:
            parent = self.store.get_triangle(parent_of(tid))
            result["mineable"] = parent is not None and parent.state == TriangleState.SUBDIVIDED
        return result

    def children(self, triangle_id: TriangleRef) -> List[str]:
        tid = self._resolve(triangle_id)
        stored = self.store.get_triangle(tid)
        if stored is None or stored.state != TriangleState.SUBDIVIDED:
            raise NotFoundError(f"Triangle {encode(tid)} has not subdivided")
        return [encode(c) for c in children_of(tid)]

    def parent(self, triangle_id: TriangleRef) -> str:
        tid = self._resolve(triangle_id)
        if tid.level == MIN_LEVEL:
            raise NotFoundError(f"Triangle {encode(tid)} is a base face and has no parent")
        return encode(parent_of(tid))

    def search(self, bbox, level: int, max_results: int = DEFAULT_MAX_RESULTS) -> List[str]:
        self._check_level(level)
        return [encode(t) for t in triangles_in_bbox(tuple(bbox), level, max_results)]

    def nearest(self, lat: float, lon: float, level: int, count: int = 10) -> List[Dict[str, Any]]:
        self._check_level(level)
        return [
            {"triangle_id": encode(t), "centroid": list(centroid_of(t))}
            for t in nearest_triangles(lat, lon, level, count)
        ]

    def stats(self, level: Optional[int] = None) -> Dict[str, Any]:
        """
        Counters over materialized triangles.

        With `level`, also the theoretical size of that level of the mesh.
        """
        triangles = self.store.triangles()
        if level is not None:
            self._check_level(level)
            triangles = [t for t in triangles if t.id.level == level]

        by_state = Counter(t.state.value for t in triangles)
        result = {
            "materialized": len(triangles),
            "active": by_state.get(TriangleState.ACTIVE.value, 0),
            "subdivided": by_state.get(TriangleState.SUBDIVIDED.value, 0),
            "exhausted": by_state.get(TriangleState.EXHAUSTED.value, 0),
            "total_clicks": sum(t.clicks for t in triangles),
            "by_level": dict(sorted(Counter(t.id.level for t in triangles).items())),
            "max_level": self.config.max_level,
        }
        if level is not None:
            count = triangle_count_at_level(level)
            result.update({
                "level": level,
                "triangle_count": count,
                "estimated_side_length_m": estimate_side_length_m(level),
                "average_area_m2": 4 * math.pi * EARTH_RADIUS_M ** 2 / count,
            })
        return result

    def balance(self, account: str) -> Decimal:
        return self.store.balance(account)

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit_proof(self, payload: Any, signature: Any) -> SubmissionResult:
        """
        Validate a signed proof and, if it passes, commit its click.

        Every failure is reported in the result; nothing is raised. A result
        with code INTERNAL_ERROR changed nothing and may be resubmitted.
        """
        try:
            verified = self.pipeline.precheck(payload, signature, self.clock())
            outcome = self.lifecycle.apply(verified)
        except ProofRejected as e:
            logger.warning("Proof rejected: %s %s", e.code.value, e.message)
            return _rejected(e.code, e.message, e.triangle)
        except StepMeshError as e:
            logger.error("Proof could not be committed: %s", e.message)
            return _rejected(ErrorCode.INTERNAL_ERROR, e.message or type(e).__name__)

        return SubmissionResult(
            ok=True,
            triangle_id=outcome.triangle.address,
            reward=outcome.reward,
            new_clicks=outcome.triangle.clicks,
            balance=outcome.balance,
            confidence=outcome.confidence.total,
            confidence_level=outcome.confidence.level,
            subdivided=outcome.subdivided,
            exhausted=outcome.exhausted,
            state=outcome.triangle.state.value,
        )
