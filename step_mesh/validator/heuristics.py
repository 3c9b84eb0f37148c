# step_mesh/validator/heuristics.py
"""Physical-plausibility checks: GPS accuracy, speed, time locks."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..config import MeshConfig
from ..errors import ErrorCode, ProofRejected
from ..kernel.vector import haversine_m
from ..state.models import ProofRecord, Triangle


@dataclass(frozen=True)
class SpeedCheck:
    """Movement since the account's previous accepted proof."""
    distance_m: float
    elapsed_s: float
    speed_mps: float  # inf when the account moved with no time elapsed


def check_gps_accuracy(accuracy: float, config: MeshConfig) -> None:
    """
    Reject fixes whose claimed accuracy radius is zero or too large.

    An accuracy of exactly 0 m is never reported by real receivers.
    """
    if accuracy <= 0 or accuracy > config.gps_max_accuracy_m:
        raise ProofRejected(
            ErrorCode.LOW_GPS_ACCURACY,
            f"GPS accuracy {accuracy} m outside (0, {config.gps_max_accuracy_m}] m",
        )


def measure_speed(previous: Optional[ProofRecord], lat: float, lon: float,
                  timestamp: datetime) -> Optional[SpeedCheck]:
    """None for an account's first proof."""
    if previous is None:
        return None

    distance = haversine_m(previous.lat, previous.lon, lat, lon)
    elapsed = (timestamp - previous.timestamp).total_seconds()

    if elapsed > 0:
        speed = distance / elapsed
    elif distance > 0:
        speed = math.inf
    else:
        speed = 0.0
    return SpeedCheck(distance_m=distance, elapsed_s=elapsed, speed_mps=speed)


def check_speed(previous: Optional[ProofRecord], lat: float, lon: float,
                timestamp: datetime, config: MeshConfig) -> Optional[SpeedCheck]:
    """
    Reject physically impossible movement.

    Speed = great-circle distance / elapsed time between proof timestamps.
    """
    measured = measure_speed(previous, lat, lon, timestamp)
    if measured is not None and measured.speed_mps > config.speed_limit_mps:
        raise ProofRejected(
            ErrorCode.TOO_FAST,
            f"Implied speed {measured.speed_mps:.1f} m/s exceeds "
            f"{config.speed_limit_mps} m/s ({measured.distance_m:.0f} m in {measured.elapsed_s:.1f} s)",
        )
    return measured


def inter_click_delay_s(clicks: int, config: MeshConfig) -> float:
    """
    Minimum wait after the latest click on a triangle with `clicks` clicks.

        delay(c) = min(cap, base · growth^(c-1)),  c >= 1
        delay(0) = 0

    With the defaults (5 s, ×1.5, 3 h cap) the cap is reached at click 20.
    """
    if clicks < 1:
        return 0.0
    try:
        delay = config.inter_click_base_s * config.inter_click_growth ** (clicks - 1)
    except OverflowError:
        return float(config.inter_click_cap_s)
    return min(float(config.inter_click_cap_s), delay)


def check_triangle_time_locks(triangle: Triangle, now: datetime, config: MeshConfig) -> None:
    """Moratorium after creation by subdivision, then the inter-click delay."""
    if triangle.moratorium_ends_at is not None and now < triangle.moratorium_ends_at:
        raise ProofRejected(
            ErrorCode.MORATORIUM,
            f"Triangle {triangle.address} is under moratorium until "
            f"{triangle.moratorium_ends_at.isoformat()}",
        )

    if triangle.last_click_at is not None:
        ready_at = triangle.last_click_at + timedelta(seconds=inter_click_delay_s(triangle.clicks, config))
        if now < ready_at:
            raise ProofRejected(
                ErrorCode.MORATORIUM,
                f"Triangle {triangle.address} accepts its next click at {ready_at.isoformat()}",
            )


def check_account_interval(previous: Optional[ProofRecord], timestamp: datetime,
                           config: MeshConfig) -> None:
    """Per-account minimum spacing between accepted proofs (0 disables)."""
    if previous is None or config.account_min_interval_s <= 0:
        return
    elapsed = (timestamp - previous.timestamp).total_seconds()
    if elapsed < config.account_min_interval_s:
        raise ProofRejected(
            ErrorCode.MORATORIUM,
            f"Proofs from one account must be {config.account_min_interval_s:g} s apart "
            f"({elapsed:.1f} s since the last accepted proof)",
        )
