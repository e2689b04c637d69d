"""Scoring package — report health score calculation."""

from .engine import compute_health, rating_for, RATING_THRESHOLDS
from .models import HealthScore

__all__ = [
    "compute_health",
    "rating_for",
    "RATING_THRESHOLDS",
    "HealthScore",
]
