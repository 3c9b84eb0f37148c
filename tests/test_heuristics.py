# File: tests/test_heuristics.py
"""
Test the physical-plausibility checks: GPS accuracy, speed gate,
moratorium and inter-click delay.
"""

import math
from datetime import timedelta

import pytest

from conftest import T0
from step_mesh.addressing import TriangleId
from step_mesh.config import MeshConfig
from step_mesh.errors import ErrorCode, ProofRejected
from step_mesh.state.models import ProofRecord, Triangle
from step_mesh.validator.heuristics import (
    check_account_interval,
    check_gps_accuracy,
    check_speed,
    check_triangle_time_locks,
    inter_click_delay_s,
    measure_speed,
)

CONFIG = MeshConfig()


@pytest.mark.parametrize("accuracy", [0.1, 10.0, 50.0])
def test_gps_accuracy_accepted(accuracy):
    check_gps_accuracy(accuracy, CONFIG)


@pytest.mark.parametrize("accuracy", [0.0, -1.0, 50.01, 500.0])
def test_gps_accuracy_rejected(accuracy):
    with pytest.raises(ProofRejected) as exc_info:
        check_gps_accuracy(accuracy, CONFIG)
    assert exc_info.value.code == ErrorCode.LOW_GPS_ACCURACY


class TestSpeedGate:

    def test_first_proof_has_no_speed(self):
        assert check_speed(None, 10.0, 10.0, T0, CONFIG) is None

    def test_walking_is_accepted(self):
        previous = ProofRecord(account="0xa", lat=0.0, lon=0.0, timestamp=T0)
        # ~111 m in 60 s
        result = check_speed(previous, 0.001, 0.0, T0 + timedelta(seconds=60), CONFIG)
        assert result.speed_mps == pytest.approx(111.19 / 60, rel=1e-3)

    def test_driving_is_rejected(self):
        """
        WHAT IS THIS TEST?
        ==================
        10 km in one second is ~36,000 km/h. The speed gate must reject it
        with TOO_FAST.
        """
        previous = ProofRecord(account="0xa", lat=0.0, lon=0.0, timestamp=T0)
        with pytest.raises(ProofRejected) as exc_info:
            check_speed(previous, 0.0, 0.0899, T0 + timedelta(seconds=1), CONFIG)
        assert exc_info.value.code == ErrorCode.TOO_FAST

    def test_zero_elapsed_time(self):
        previous = ProofRecord(account="0xa", lat=0.0, lon=0.0, timestamp=T0)

        moved = measure_speed(previous, 0.0, 0.001, T0)
        assert math.isinf(moved.speed_mps)
        with pytest.raises(ProofRejected):
            check_speed(previous, 0.0, 0.001, T0, CONFIG)

        stayed = measure_speed(previous, 0.0, 0.0, T0)
        assert stayed.speed_mps == 0.0

    def test_earlier_timestamp_with_movement(self):
        previous = ProofRecord(account="0xa", lat=0.0, lon=0.0, timestamp=T0)
        with pytest.raises(ProofRejected) as exc_info:
            check_speed(previous, 0.0, 0.001, T0 - timedelta(seconds=30), CONFIG)
        assert exc_info.value.code == ErrorCode.TOO_FAST


def test_inter_click_delay_schedule():
    """
    WHAT IS THIS TEST?
    ==================
    delay(c) = min(cap, base * growth^(c-1)). With 5 s, x1.5 and a 3 h cap:
    5, 7.5, 11.25, ... reaching the cap at click 20.
    """
    assert inter_click_delay_s(0, CONFIG) == 0.0
    assert inter_click_delay_s(1, CONFIG) == pytest.approx(5.0)
    assert inter_click_delay_s(2, CONFIG) == pytest.approx(7.5)
    assert inter_click_delay_s(3, CONFIG) == pytest.approx(11.25)
    assert inter_click_delay_s(19, CONFIG) < 3 * 3600
    assert inter_click_delay_s(20, CONFIG) == 3 * 3600
    assert inter_click_delay_s(5000, CONFIG) == 3 * 3600


class TestTimeLocks:

    def setup_method(self):
        self.tid = TriangleId(face=2, level=3, path=(1, 1))

    def test_moratorium_blocks_until_it_ends(self):
        triangle = Triangle.create(self.tid, T0, moratorium_ends_at=T0 + timedelta(hours=168))

        with pytest.raises(ProofRejected) as exc_info:
            check_triangle_time_locks(triangle, T0 + timedelta(hours=167), CONFIG)
        assert exc_info.value.code == ErrorCode.MORATORIUM

        check_triangle_time_locks(triangle, T0 + timedelta(hours=168), CONFIG)

    def test_new_triangle_is_immediately_mineable(self):
        triangle = Triangle.create(self.tid, T0)
        check_triangle_time_locks(triangle, T0, CONFIG)

    def test_inter_click_delay_enforced(self):
        triangle = Triangle.create(self.tid, T0)
        clicked = Triangle(
            id=triangle.id,
            polygon=triangle.polygon,
            clicks=2,
            created_at=T0,
            moratorium_ends_at=T0,
            last_click_at=T0,
            version=2,
        )
        with pytest.raises(ProofRejected) as exc_info:
            check_triangle_time_locks(clicked, T0 + timedelta(seconds=7), CONFIG)
        assert exc_info.value.code == ErrorCode.MORATORIUM

        check_triangle_time_locks(clicked, T0 + timedelta(seconds=7.5), CONFIG)


def test_account_interval():
    previous = ProofRecord(account="0xa", lat=0.0, lon=0.0, timestamp=T0)

    with pytest.raises(ProofRejected) as exc_info:
        check_account_interval(previous, T0 + timedelta(seconds=9), CONFIG)
    assert exc_info.value.code == ErrorCode.MORATORIUM

    check_account_interval(previous, T0 + timedelta(seconds=10), CONFIG)
    check_account_interval(None, T0, CONFIG)
    check_account_interval(previous, T0, MeshConfig(account_min_interval_s=0))
