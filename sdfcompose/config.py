"""Tunable constants for composition and extraction.

Defaults live in module constants; :meth:`Settings.from_env` lets a host
application override them through ``SDFCOMPOSE_*`` environment variables.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Tuple

# Smallest determinant magnitude treated as invertible.
EPSILON: float = sys.float_info.epsilon

# Default R-function smoothness exponent.
DEFAULT_SMOOTHNESS: float = 8.0

# Zero-crossing normalisation: sample window half-size, samples per axis,
# margin pushed past zero, and the flat-field threshold.
NORMALIZE_HALF_WIDTH: float = 5.0
NORMALIZE_SAMPLES: int = 11
NORMALIZE_MARGIN: float = 0.1
FLAT_RANGE_THRESHOLD: float = 0.1
FLAT_SCALE_BOOST: float = 10.0

# Constant subtracted from composite fields so interiors read negative.
INTERIOR_BIAS: float = 0.5

# Escalating marching-squares resolutions tried before giving up.
ESCALATION_RESOLUTIONS: Tuple[int, ...] = (150, 250, 350)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    """Bundle of tunables handed to :class:`~sdfcompose.composition.CompositeNode`."""

    epsilon: float = EPSILON
    default_smoothness: float = DEFAULT_SMOOTHNESS
    normalize_half_width: float = NORMALIZE_HALF_WIDTH
    normalize_samples: int = NORMALIZE_SAMPLES
    normalize_margin: float = NORMALIZE_MARGIN
    flat_range_threshold: float = FLAT_RANGE_THRESHOLD
    flat_scale_boost: float = FLAT_SCALE_BOOST
    interior_bias: float = INTERIOR_BIAS
    escalation_resolutions: Tuple[int, ...] = field(default=ESCALATION_RESOLUTIONS)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings, letting ``SDFCOMPOSE_*`` variables override defaults.

        ``SDFCOMPOSE_RESOLUTIONS`` is a comma-separated list of integers.
        """
        raw_res = os.getenv("SDFCOMPOSE_RESOLUTIONS", "")
        resolutions = (
            tuple(int(r) for r in raw_res.split(",") if r.strip())
            if raw_res.strip()
            else ESCALATION_RESOLUTIONS
        )
        return cls(
            default_smoothness=_env_float("SDFCOMPOSE_SMOOTHNESS", DEFAULT_SMOOTHNESS),
            normalize_half_width=_env_float("SDFCOMPOSE_NORMALIZE_HALF_WIDTH", NORMALIZE_HALF_WIDTH),
            normalize_samples=_env_int("SDFCOMPOSE_NORMALIZE_SAMPLES", NORMALIZE_SAMPLES),
            interior_bias=_env_float("SDFCOMPOSE_INTERIOR_BIAS", INTERIOR_BIAS),
            escalation_resolutions=resolutions,
        )


DEFAULT_SETTINGS = Settings()
