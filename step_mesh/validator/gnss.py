# step_mesh/validator/gnss.py
"""
GNSS RAW-SIGNAL PLAUSIBILITY
============================

Spoofing rigs typically broadcast a handful of GPS-only satellites at a
single, strong, uniform carrier-to-noise density (C/N0). A real receiver
sees several constellations at assorted strengths. The scorer awards up to
15 points:

    Check                              Full   Partial
    ---------------------------------  ----   ----------------------------
    satellite count >= 4                 3    floor(n / 4 * 3)
    constellations >= 2                  3    1
    average C/N0 in [20, 50] dB-Hz       3    1 if above 50, 0 if below 20
    C/N0 variance >= 10                  3    0
    <= 3 satellites share a rounded C/N0 3    0
    bonus: >=8 sats & >=3 constellations +2
           >=6 sats & >=2 constellations +1

The total is capped at 15 and passes at 10.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .payload import GnssData


@dataclass(frozen=True)
class GnssConfig:
    min_satellites: int = 4
    min_constellations: int = 2
    min_cn0: float = 20.0
    max_cn0: float = 50.0
    min_cn0_variance: float = 10.0
    max_uniform_satellites: int = 3
    min_score: int = 10
    max_score: int = 15


DEFAULT_GNSS_CONFIG = GnssConfig()


@dataclass
class GnssResult:
    score: int = 0
    passed: bool = False
    satellite_count: int = 0
    constellations: List[str] = field(default_factory=list)
    avg_cn0: float = 0.0
    cn0_variance: float = 0.0
    issues: List[str] = field(default_factory=list)


def score_gnss(gnss: Optional[GnssData], config: GnssConfig = DEFAULT_GNSS_CONFIG) -> GnssResult:
    """
    Score raw satellite measurements.

    Args:
        gnss: The payload's gnss block, or None
        config: Thresholds

    Returns:
        GnssResult with score 0..15 and the issues found
    """
    result = GnssResult()

    if gnss is None or not gnss.raw_available:
        result.issues.append("GNSS raw data not available")
        return result
    if not gnss.satellites:
        result.issues.append("No satellite measurements available")
        return result

    satellites = gnss.satellites
    n = len(satellites)
    result.satellite_count = n

    # 1. Satellite count
    if n < config.min_satellites:
        result.issues.append(f"Too few satellites: {n} (minimum {config.min_satellites})")
        result.score += int(np.floor(n / config.min_satellites * 3))
    else:
        result.score += 3

    # 2. Constellation diversity
    result.constellations = sorted({s.constellation.upper() for s in satellites})
    if len(result.constellations) < config.min_constellations:
        result.issues.append(
            f"Single constellation only: {', '.join(result.constellations)} "
            f"(expected {config.min_constellations}+)"
        )
        result.score += 1
    else:
        result.score += 3

    cn0 = np.array([s.cn0 for s in satellites], dtype=float)

    # 3. Signal strength range
    result.avg_cn0 = float(cn0.mean())
    if result.avg_cn0 < config.min_cn0:
        result.issues.append(f"C/N0 too low: {result.avg_cn0:.1f} dB-Hz (minimum {config.min_cn0:g})")
    elif result.avg_cn0 > config.max_cn0:
        result.issues.append(f"C/N0 too high: {result.avg_cn0:.1f} dB-Hz (maximum {config.max_cn0:g})")
        result.score += 1
    else:
        result.score += 3

    # 4. Signal variance (population)
    result.cn0_variance = float(cn0.var())
    if result.cn0_variance < config.min_cn0_variance:
        result.issues.append(
            f"C/N0 variance too low: {result.cn0_variance:.2f} "
            f"(minimum {config.min_cn0_variance:g}), signals too uniform"
        )
    else:
        result.score += 3

    # 5. Identical signal strengths
    _, counts = np.unique(np.floor(cn0 + 0.5), return_counts=True)
    max_uniform = int(counts.max())
    if max_uniform > config.max_uniform_satellites:
        result.issues.append(
            f"Too many satellites with identical C/N0: {max_uniform} "
            f"(maximum {config.max_uniform_satellites})"
        )
    else:
        result.score += 3

    # Bonus for a rich sky
    if n >= 8 and len(result.constellations) >= 3:
        result.score += 2
    elif n >= 6 and len(result.constellations) >= 2:
        result.score += 1

    result.score = min(result.score, config.max_score)
    result.passed = result.score >= config.min_score
    return result
