"""
schedule_engines.recommendation -- Decision DTOs shared by leveling and compression.

Responsibility:
    Defines the immutable accept/review/reject verdict that trade-off
    analyses attach to their results.

Architecture position:
    Engines -- pure frozen DTOs, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RecommendationStatus(str, Enum):
    ACCEPT = "accept"
    REVIEW = "review"
    REJECT = "reject"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Recommendation:
    """Verdict with a human-readable reason and a confidence level."""

    status: RecommendationStatus
    message: str
    confidence: Confidence

    @property
    def is_accepted(self) -> bool:
        return self.status == RecommendationStatus.ACCEPT
