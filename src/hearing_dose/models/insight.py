"""
Insight Models
==============

Predictive insight produced on every dose update.

Insights are transient: they are recomputed from the current dose and the
last 30 minutes of samples and are never persisted.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class InsightKind(str, Enum):
    """
    Insight classification.

    Attributes:
        SAFE: Comfortably below the limit
        RECOVERING: Elevated dose, but listening has become gentler
        WARNING: Approaching the limit
        DANGER: Limit reached or imminent
        INACTIVE: No listening in the recent window (overrides all bands)
    """

    SAFE = "safe"
    RECOVERING = "recovering"
    WARNING = "warning"
    DANGER = "danger"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class BurnRateAnalysis:
    """
    Intermediate burn-rate computation.

    Attributes:
        instantaneous_rate_per_hour: Dose%/h from the recent window (0 if idle)
        effective_rate_per_hour: Rate used for prediction (recent or typical)
        eta_seconds: Seconds until the limit, None if not predictable
        is_actively_listening: At least one sample inside the recent window
    """

    instantaneous_rate_per_hour: float
    effective_rate_per_hour: float
    eta_seconds: Optional[float]
    is_actively_listening: bool


class Insight(BaseModel):
    """
    Predictive insight for the insight-card collaborator.

    Attributes:
        kind: Classification band
        message: Human-readable summary
        eta_to_limit: Seconds until the limit is reached, if predictable
        estimated_limit_time: Wall-clock time the limit will be reached
        burn_rate_per_hour: Effective dose% accumulated per hour
        is_actively_listening: Whether a sample fell inside the recent window
    """

    kind: InsightKind = Field(..., description="Classification band")
    message: str = Field(..., description="Human-readable summary")
    eta_to_limit: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Seconds until the daily limit is reached",
    )
    estimated_limit_time: Optional[datetime] = Field(default=None)
    burn_rate_per_hour: float = Field(default=0.0, ge=0.0)
    is_actively_listening: bool = Field(default=False)
    dose_percent: float = Field(default=0.0, ge=0.0)
    generated_at: Optional[datetime] = Field(default=None)
