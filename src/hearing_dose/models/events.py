"""
Pipeline Events
===============

Values handed between pipeline stages and to outbound collaborators.

These are plain immutable records. Delivery (platform notifications,
widgets) is the collaborators' concern; the engine only decides.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import FrozenSet, Optional

from hearing_dose.models.sample import ExposureSample


@dataclass(frozen=True, slots=True)
class IngestResult:
    """
    Outcome of one ingestion batch.

    Attributes:
        inserted_count: New samples persisted
        duplicate_count: Samples skipped because their id was already known
        rejected_count: Malformed samples skipped
        affected_days: Calendar days whose dose was recomputed
        includes_today: Whether new samples landed on today (drives notifications)
        latest_sample: Most recent newly inserted sample (by end time)
    """

    inserted_count: int = 0
    duplicate_count: int = 0
    rejected_count: int = 0
    affected_days: FrozenSet[date] = field(default_factory=frozenset)
    includes_today: bool = False
    latest_sample: Optional[ExposureSample] = None

    def to_dict(self) -> dict:
        return {
            "inserted_count": self.inserted_count,
            "duplicate_count": self.duplicate_count,
            "rejected_count": self.rejected_count,
            "affected_days": sorted(d.isoformat() for d in self.affected_days),
            "includes_today": self.includes_today,
        }


@dataclass(frozen=True, slots=True)
class ThresholdEvent:
    """A dose threshold fired for the notification-delivery collaborator."""

    threshold: int
    dose_percent: float
    fired_at: datetime

    @property
    def title(self) -> str:
        if self.threshold >= 100:
            return "Daily Limit Reached"
        if self.threshold >= 80:
            return "Approaching Limit"
        if self.threshold >= 50:
            return "Halfway There"
        return "Listening Update"


@dataclass(frozen=True, slots=True)
class ActionableEvent:
    """
    Context-rich alert with remaining time and a volume suggestion.

    Attributes:
        trigger: "limit_reached" or "eta_warning"
        dose_percent: Current dose
        remaining_seconds: Safe time left at the current level
        current_level_db: Latest measured level, if known
        suggested_level_db: Level that stretches the budget, if useful
    """

    trigger: str
    dose_percent: float
    remaining_seconds: float
    current_level_db: Optional[float]
    suggested_level_db: Optional[float]
    fired_at: datetime


@dataclass(frozen=True, slots=True)
class VolumeSuggestionEvent:
    """
    "Lower volume by N dB" suggestion.

    Attributes:
        current_level_db: Latest measured level
        suggested_level_db: Level that lasts the suggestion horizon
        additional_seconds: Extra safe time gained by lowering the level
    """

    current_level_db: float
    suggested_level_db: float
    additional_seconds: float
    dose_percent: float
    fired_at: datetime

    @property
    def level_drop_db(self) -> float:
        return self.current_level_db - self.suggested_level_db
