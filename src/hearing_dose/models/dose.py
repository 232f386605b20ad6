"""
Dose Models
===========

Exchange-rate models, dose results, and the per-day dose aggregate.

Core Concepts:
    - ExchangeRateModel: dB step that doubles the energy rate (3 or 5 dB)
    - ExposureStatus: Coarse status bands for display collaborators
    - DoseResult: Output of one pure dose computation
    - DailyDoseRecord: Persisted per-day aggregate, recomputed from samples

Dose Formula:
    allowable(L) = 8h * 2^((85 - L) / q)
    dose%        = sum(duration_i / allowable(L_i)) * 100
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


CRITERION_LEVEL_DB = 85.0
CRITERION_DURATION_HOURS = 8.0


class ExchangeRateModel(str, Enum):
    """
    Noise dose standard.

    Attributes:
        NIOSH: NIOSH/WHO recommendation, 3 dB exchange rate
        OSHA: OSHA action-level style, 5 dB exchange rate (more lenient)
    """

    NIOSH = "niosh"
    OSHA = "osha"

    @property
    def exchange_rate(self) -> float:
        """dB increase that doubles the accumulated energy rate."""
        return 3.0 if self is ExchangeRateModel.NIOSH else 5.0

    @property
    def criterion_level(self) -> float:
        """Level at which the criterion duration yields exactly 100%."""
        return CRITERION_LEVEL_DB

    @property
    def criterion_seconds(self) -> float:
        """Criterion exposure duration in seconds."""
        return CRITERION_DURATION_HOURS * 3600.0

    @property
    def display_name(self) -> str:
        if self is ExchangeRateModel.NIOSH:
            return "NIOSH/WHO (Recommended)"
        return "OSHA (Less Conservative)"


class ExposureStatus(str, Enum):
    """
    Safety status derived from the daily dose percentage.

    Bands:
        SAFE: < 50%
        MODERATE: 50-80%
        HIGH: 80-100%
        DANGEROUS: >= 100%
    """

    SAFE = "safe"
    MODERATE = "moderate"
    HIGH = "high"
    DANGEROUS = "dangerous"

    @classmethod
    def from_dose(cls, dose_percent: float) -> "ExposureStatus":
        if dose_percent < 50:
            return cls.SAFE
        if dose_percent < 80:
            return cls.MODERATE
        if dose_percent < 100:
            return cls.HIGH
        return cls.DANGEROUS

    @property
    def description(self) -> str:
        return {
            ExposureStatus.SAFE: "Your hearing exposure is within safe limits",
            ExposureStatus.MODERATE: "Approaching recommended daily limit",
            ExposureStatus.HIGH: "Near daily limit - consider reducing volume",
            ExposureStatus.DANGEROUS: "Exceeded safe daily limit - lower volume immediately",
        }[self]


@dataclass(frozen=True, slots=True)
class DoseResult:
    """
    Result of a pure dose computation over a sample set.

    Attributes:
        dose_percent: Cumulative dose (may exceed 100)
        total_exposure_seconds: Sum of sampled durations
        average_level_db: Duration-weighted mean level, None if no exposure
        peak_level_db: Highest sampled level, None if no exposure
        time_above_secondary_seconds: Time at or above the secondary level
        time_above_high_seconds: Time at or above the high level
        sample_count: Number of samples that contributed
    """

    dose_percent: float
    total_exposure_seconds: float
    average_level_db: Optional[float]
    peak_level_db: Optional[float]
    time_above_secondary_seconds: float
    time_above_high_seconds: float
    sample_count: int = 0

    @classmethod
    def empty(cls) -> "DoseResult":
        return cls(
            dose_percent=0.0,
            total_exposure_seconds=0.0,
            average_level_db=None,
            peak_level_db=None,
            time_above_secondary_seconds=0.0,
            time_above_high_seconds=0.0,
            sample_count=0,
        )

    @property
    def status(self) -> ExposureStatus:
        return ExposureStatus.from_dose(self.dose_percent)


class DailyDoseRecord(BaseModel):
    """
    Cumulative dose aggregate for one calendar day.

    Always fully recomputed from the day's sample set; never patched by
    deltas. Written only by the sample ingestor.
    """

    year: int = Field(..., ge=1)
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)

    dose_percent: float = Field(default=0.0, ge=0.0, description="Cumulative dose (can exceed 100)")
    total_exposure_seconds: float = Field(default=0.0, ge=0.0)
    average_level_db: Optional[float] = Field(default=None, description="Duration-weighted mean level")
    peak_level_db: Optional[float] = Field(default=None)
    time_above_secondary_seconds: float = Field(default=0.0, ge=0.0, description="Seconds >= 85 dB")
    time_above_high_seconds: float = Field(default=0.0, ge=0.0, description="Seconds >= 90 dB")
    sample_count: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def calendar_date(self) -> date:
        return date(self.year, self.month, self.day)

    @property
    def status(self) -> ExposureStatus:
        return ExposureStatus.from_dose(self.dose_percent)

    @classmethod
    def from_result(
        cls,
        day: date,
        result: DoseResult,
        updated_at: Optional[datetime] = None,
    ) -> "DailyDoseRecord":
        """Build the record for `day` from a dose computation."""
        return cls(
            year=day.year,
            month=day.month,
            day=day.day,
            dose_percent=result.dose_percent,
            total_exposure_seconds=result.total_exposure_seconds,
            average_level_db=result.average_level_db,
            peak_level_db=result.peak_level_db,
            time_above_secondary_seconds=result.time_above_secondary_seconds,
            time_above_high_seconds=result.time_above_high_seconds,
            sample_count=result.sample_count,
            last_updated=updated_at or datetime.now(timezone.utc),
        )
