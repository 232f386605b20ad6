"""
Session Models
==============

Listening session state and live-presence snapshots.

Core Concepts:
    - SessionState: The single active-or-absent session record
    - SessionEndReason: Why a session ended
    - LiveSessionSnapshot: Payload for live-presence and glance widgets

Transitions:
    IDLE → ACTIVE:  sample arrives while connected (or manual start)
    ACTIVE → ACTIVE: sample arrives (refresh, timer reset)
    ACTIVE → IDLE:  device disconnect, inactivity timeout, or manual end
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from hearing_dose.models.dose import ExposureStatus


class SessionEndReason(str, Enum):
    """Reason an active session ended."""

    DEVICE_DISCONNECTED = "device_disconnected"
    INACTIVITY_TIMEOUT = "inactivity_timeout"
    MANUAL = "manual"


class SessionState(BaseModel):
    """
    Live listening session record.

    Attributes:
        is_active: Whether a session is currently open
        started_at: When the current session opened
        last_sample_at: When the last sample arrived during the session
        last_dose_percent: Last known dose, held across store read failures
        end_reason: Why the previous session ended
    """

    is_active: bool = Field(default=False)
    started_at: Optional[datetime] = Field(default=None)
    last_sample_at: Optional[datetime] = Field(default=None)
    last_dose_percent: float = Field(default=0.0, ge=0.0)
    end_reason: Optional[SessionEndReason] = Field(default=None)

    def duration_seconds(self, now: datetime) -> float:
        if not self.is_active or self.started_at is None:
            return 0.0
        return max(0.0, (now - self.started_at).total_seconds())


class LiveSessionSnapshot(BaseModel):
    """
    Live session payload for the live-presence display collaborator.

    Attributes:
        dose_percent: Today's dose
        remaining_minutes: Safe minutes left at the reference level
        status: Exposure status band, or None once the session ended
        is_break_time: Session has run past the break interval
        is_active: False for the terminal "session ended" snapshot
    """

    dose_percent: float = Field(..., ge=0.0)
    remaining_minutes: Optional[int] = Field(default=None, ge=0)
    status: Optional[ExposureStatus] = Field(default=None)
    is_break_time: bool = Field(default=False)
    is_active: bool = Field(default=True)
    daily_limit_percent: int = Field(default=100, ge=1)
    session_started_at: Optional[datetime] = Field(default=None)
    updated_at: datetime
    end_reason: Optional[SessionEndReason] = Field(default=None)

    @property
    def remaining_budget_percent(self) -> float:
        return max(0.0, self.daily_limit_percent - self.dose_percent)
