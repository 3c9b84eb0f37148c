# step_mesh/validator/cell_tower.py
"""
Cell-tower consistency: is the GPS fix near the serving cell?

Tower positions come from a caller-supplied resolver (an offline cell
database, a cache in front of a lookup service, a test double). The scorer
itself never touches the network.

    GPS-to-tower distance   points
    ---------------------   ------
    <= 10 km                  7
    <= 25 km                  5
    <= 50 km                  3
    >  50 km                  0
    + 1 per neighbor cell, up to 3

Capped at 10, passes at 6.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..kernel.vector import haversine_m
from .payload import CellTowerData


@dataclass(frozen=True)
class CellLocation:
    lat: float
    lon: float
    accuracy_m: float = 1000.0


CellKey = Tuple[int, int, int]  # (mcc, mnc, cell_id)
CellResolver = Callable[[CellTowerData], Optional[CellLocation]]


class StaticCellResolver:
    """Resolver backed by a fixed {(mcc, mnc, cell_id): CellLocation} table."""

    def __init__(self, towers: Optional[Dict[CellKey, CellLocation]] = None):
        self.towers = dict(towers or {})

    def add(self, mcc: int, mnc: int, cell_id: int, location: CellLocation) -> None:
        self.towers[(mcc, mnc, cell_id)] = location

    def __call__(self, cell: CellTowerData) -> Optional[CellLocation]:
        return self.towers.get((cell.mcc, cell.mnc, cell.cell_id))


@dataclass(frozen=True)
class CellTowerConfig:
    excellent_distance_km: float = 10.0
    good_distance_km: float = 25.0
    max_distance_km: float = 50.0
    min_score: int = 6
    max_score: int = 10


DEFAULT_CELL_TOWER_CONFIG = CellTowerConfig()


@dataclass
class CellTowerResult:
    score: int = 0
    passed: bool = False
    cell_location: Optional[CellLocation] = None
    distance_km: Optional[float] = None
    issues: List[str] = field(default_factory=list)


def score_cell_tower(
    cell: Optional[CellTowerData],
    lat: float,
    lon: float,
    resolver: Optional[CellResolver],
    config: CellTowerConfig = DEFAULT_CELL_TOWER_CONFIG,
) -> CellTowerResult:
    """Score agreement between the GPS fix and the serving cell's position."""
    result = CellTowerResult()

    if cell is None:
        result.issues.append("Cell tower data not available")
        return result
    if cell.mcc is None or cell.mnc is None or cell.cell_id is None:
        result.issues.append("Incomplete cell tower data (missing MCC, MNC, or CellID)")
        return result
    if resolver is None:
        result.issues.append("No cell tower resolver configured")
        return result

    location = resolver(cell)
    if location is None:
        result.issues.append(
            f"Cell tower not found (MCC: {cell.mcc}, MNC: {cell.mnc}, CellID: {cell.cell_id})"
        )
        return result

    result.cell_location = location
    result.distance_km = haversine_m(lat, lon, location.lat, location.lon) / 1000.0

    if result.distance_km > config.max_distance_km:
        result.issues.append(
            f"GPS location too far from cell tower: {result.distance_km:.1f} km "
            f"(maximum {config.max_distance_km:g} km)"
        )
    elif result.distance_km <= config.excellent_distance_km:
        result.score += 7
    elif result.distance_km <= config.good_distance_km:
        result.score += 5
    else:
        result.score += 3

    result.score += min(len(cell.neighbors), 3)

    result.score = min(result.score, config.max_score)
    result.passed = result.score >= config.min_score
    return result
