# step_mesh/config.py
"""
Mesh and validator configuration and defaults.

Defaults are the production values. Override per process with STEP_*
environment variables (a .env file in the working directory is honored),
or construct MeshConfig directly in tests.
"""

import os
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class MeshConfig:
    """Validator thresholds, lifecycle constants and store limits."""

    # Proof heuristics
    gps_max_accuracy_m: float = 50.0
    speed_limit_mps: float = 15.0
    account_min_interval_s: float = 10.0  # 0 disables
    clock_skew_s: float = 120.0

    # Triangle lifecycle
    click_threshold: int = 11
    max_level: int = 21
    moratorium_duration_s: float = 168 * 3600.0  # 1 week
    inter_click_base_s: float = 5.0
    inter_click_growth: float = 1.5
    inter_click_cap_s: float = 3 * 3600.0

    # Rewards
    reward_schedule_clicks: int = 28
    completion_bonus: Decimal = Decimal("1")

    # Concurrency / store
    commit_attempts: int = 5
    store_timeout_s: float = 5.0

    # Confidence: None keeps the score advisory
    min_confidence: Optional[int] = None

    # Attestation
    expected_app_id: str = "com.step.mobile"

    def __post_init__(self):
        if self.click_threshold < 1:
            raise ValueError(f"click_threshold must be >= 1, got {self.click_threshold}")
        if not 1 <= self.max_level <= 21:
            raise ValueError(f"max_level must be 1-21, got {self.max_level}")
        if self.commit_attempts < 1:
            raise ValueError(f"commit_attempts must be >= 1, got {self.commit_attempts}")
        if self.min_confidence is not None and not 0 <= self.min_confidence <= 100:
            raise ValueError(f"min_confidence must be 0-100, got {self.min_confidence}")
        if not isinstance(self.completion_bonus, Decimal):
            object.__setattr__(self, "completion_bonus", Decimal(str(self.completion_bonus)))

    @classmethod
    def from_env(cls, prefix: str = "STEP_") -> "MeshConfig":
        """
        Build a config from environment variables.

        Each field maps to PREFIX + FIELD_NAME.upper(), e.g. STEP_CLICK_THRESHOLD.
        Unset variables keep their defaults. STEP_MIN_CONFIDENCE="" means advisory.
        """
        load_dotenv()

        overrides = {}
        for f in fields(cls):
            raw = os.getenv(prefix + f.name.upper())
            if raw is None:
                continue
            default = f.default
            if f.name == "min_confidence":
                overrides[f.name] = int(raw) if raw.strip() else None
            elif isinstance(default, bool):
                overrides[f.name] = raw.strip().lower() in ("1", "true", "yes")
            elif isinstance(default, int):
                overrides[f.name] = int(raw)
            elif isinstance(default, float):
                overrides[f.name] = float(raw)
            elif isinstance(default, Decimal):
                overrides[f.name] = Decimal(raw)
            else:
                overrides[f.name] = raw
        return cls(**overrides)


# Global config instance
CONFIG = MeshConfig()
