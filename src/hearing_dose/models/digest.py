"""
Digest Models
=============

Weekly summary over stored daily dose records.
"""

from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class WeeklyDigest(BaseModel):
    """
    One Monday-to-Sunday week of listening.

    Attributes:
        week_start: Monday of the week
        week_end: Sunday of the week
        average_dose_percent: Mean daily dose over days with data
        previous_week_average_percent: Same mean for the week before, if any
        days_over_limit: Days at or above the daily limit
        current_streak: Most recent consecutive recorded days under the limit
        best_streak: Longest run of recorded days under the limit
    """

    week_start: date
    week_end: date
    average_dose_percent: float = Field(..., ge=0.0)
    previous_week_average_percent: Optional[float] = Field(default=None, ge=0.0)
    total_listening_seconds: float = Field(default=0.0, ge=0.0)
    days_with_data: int = Field(..., ge=1)
    days_over_limit: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    loudest_day: date
    loudest_day_dose_percent: float = Field(..., ge=0.0)
    quietest_day: date
    quietest_day_dose_percent: float = Field(..., ge=0.0)
    average_level_db: Optional[float] = Field(default=None)
    daily_limit_percent: int = Field(default=100, ge=1)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def change_from_previous_week(self) -> Optional[float]:
        """Percentage-point change of the average dose, None without a previous week."""
        if self.previous_week_average_percent is None:
            return None
        return self.average_dose_percent - self.previous_week_average_percent
