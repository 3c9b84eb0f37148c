# File: tests/test_config.py
"""
Test MeshConfig defaults, validation, environment overrides and the
logging setup helper.
"""

import logging
from decimal import Decimal

import pytest

from step_mesh.config import CONFIG, MeshConfig
from step_mesh.logging_config import NAMESPACE, setup_logging


def test_defaults():
    assert CONFIG.gps_max_accuracy_m == 50.0
    assert CONFIG.speed_limit_mps == 15.0
    assert CONFIG.click_threshold == 11
    assert CONFIG.max_level == 21
    assert CONFIG.moratorium_duration_s == 168 * 3600
    assert CONFIG.reward_schedule_clicks == 28
    assert CONFIG.completion_bonus == Decimal("1")
    assert CONFIG.min_confidence is None

    with pytest.raises(Exception):  # dataclass.FrozenInstanceError
        CONFIG.click_threshold = 3


@pytest.mark.parametrize("kwargs", [
    dict(click_threshold=0),
    dict(max_level=0),
    dict(max_level=22),
    dict(commit_attempts=0),
    dict(min_confidence=101),
])
def test_validation(kwargs):
    with pytest.raises(ValueError):
        MeshConfig(**kwargs)


def test_completion_bonus_coerced_to_decimal():
    assert MeshConfig(completion_bonus=2).completion_bonus == Decimal("2")


def test_from_env(monkeypatch):
    monkeypatch.setenv("STEP_CLICK_THRESHOLD", "7")
    monkeypatch.setenv("STEP_SPEED_LIMIT_MPS", "25.5")
    monkeypatch.setenv("STEP_COMPLETION_BONUS", "0.75")
    monkeypatch.setenv("STEP_EXPECTED_APP_ID", "org.example.app")
    monkeypatch.setenv("STEP_MIN_CONFIDENCE", "")

    config = MeshConfig.from_env()

    assert config.click_threshold == 7
    assert config.speed_limit_mps == 25.5
    assert config.completion_bonus == Decimal("0.75")
    assert config.expected_app_id == "org.example.app"
    assert config.min_confidence is None
    assert config.max_level == 21


def test_from_env_min_confidence(monkeypatch):
    monkeypatch.setenv("MESH_MIN_CONFIDENCE", "70")
    assert MeshConfig.from_env(prefix="MESH_").min_confidence == 70


def test_setup_logging(tmp_path):
    log_file = tmp_path / "mesh.log"
    try:
        logger = setup_logging(logging.DEBUG, log_file=str(log_file))
        logger = setup_logging(logging.DEBUG, log_file=str(log_file))

        assert logger.name == NAMESPACE
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2

        logging.getLogger("step_mesh.lookup").info("hello from lookup")
        for handler in logger.handlers:
            handler.flush()
        assert "step_mesh.lookup - INFO - hello from lookup" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(logging.getLogger(NAMESPACE).handlers):
            handler.close()
        logging.getLogger(NAMESPACE).handlers.clear()
        logging.getLogger(NAMESPACE).setLevel(logging.NOTSET)
