"""
Data Models
===========

Data models for the hearing dose engine.

This module re-exports all data models for convenient access.

Models:
    Sample:
        - ExposureSample: Canonical timestamped sound-level sample

    Dose:
        - ExchangeRateModel: NIOSH (3 dB) or OSHA (5 dB)
        - ExposureStatus: safe / moderate / high / dangerous bands
        - DoseResult: Pure dose computation output
        - DailyDoseRecord: Persisted per-day aggregate

    Insight:
        - InsightKind, Insight, BurnRateAnalysis

    Events:
        - IngestResult, ThresholdEvent, ActionableEvent, VolumeSuggestionEvent

    Session:
        - SessionState, SessionEndReason, LiveSessionSnapshot

    Digest:
        - WeeklyDigest
"""

from hearing_dose.models.sample import ExposureSample
from hearing_dose.models.dose import (
    DailyDoseRecord,
    DoseResult,
    ExchangeRateModel,
    ExposureStatus,
)
from hearing_dose.models.insight import BurnRateAnalysis, Insight, InsightKind
from hearing_dose.models.events import (
    ActionableEvent,
    IngestResult,
    ThresholdEvent,
    VolumeSuggestionEvent,
)
from hearing_dose.models.session import (
    LiveSessionSnapshot,
    SessionEndReason,
    SessionState,
)
from hearing_dose.models.digest import WeeklyDigest

__all__ = [
    # Sample
    "ExposureSample",
    # Dose
    "ExchangeRateModel",
    "ExposureStatus",
    "DoseResult",
    "DailyDoseRecord",
    # Insight
    "InsightKind",
    "Insight",
    "BurnRateAnalysis",
    # Events
    "IngestResult",
    "ThresholdEvent",
    "ActionableEvent",
    "VolumeSuggestionEvent",
    # Session
    "SessionState",
    "SessionEndReason",
    "LiveSessionSnapshot",
    # Digest
    "WeeklyDigest",
]
