"""
Session Lifecycle Coordinator
=============================

State machine over {Idle, Active} for "the user is wearing a connected
listening device and generating samples".

Transitions:
    Idle   -> Active:  sample arrives while the device is connected
                       (or manual_start)
    Active -> Active:  sample arrives (dose refreshed, inactivity timer reset)
    Active -> Idle:    device disconnect (immediate), inactivity timeout,
                       or manual_end

Connection alone never starts a session; a device can report as connected
before any audio is measured.

Live Snapshots:
    Every start and refresh publishes a LiveSessionSnapshot with the safe
    minutes left at a moderate reference level (display only, not dose
    accounting). Every exit publishes a terminal snapshot.

Failure Policy:
    A store read failure during refresh keeps the last known dose and is
    logged. Only disconnect or inactivity ends a session.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from hearing_dose.dose.calculator import DoseCalculator
from hearing_dose.errors import StoreError
from hearing_dose.models.dose import ExposureStatus
from hearing_dose.models.session import LiveSessionSnapshot, SessionEndReason, SessionState
from hearing_dose.scheduling.clock import Clock
from hearing_dose.scheduling.scheduler import ScheduledTask, Scheduler


logger = logging.getLogger(__name__)


DoseProvider = Callable[[], float]
SnapshotPublisher = Callable[[LiveSessionSnapshot], None]


class SessionCoordinator:
    """
    Sole driver of session transitions.

    Attributes:
        state: Current SessionState (replaced, never mutated in place)
        is_connected: Last device-connection signal

    Example:
        coordinator = SessionCoordinator(scheduler, clock, calculator, read_dose)
        coordinator.on_connection_changed(True)
        coordinator.on_sample_arrived()      # Idle -> Active
        scheduler.advance(301)               # Active -> Idle (timeout)
    """

    def __init__(
        self,
        scheduler: Scheduler,
        clock: Clock,
        calculator: DoseCalculator,
        dose_provider: DoseProvider,
        publisher: Optional[SnapshotPublisher] = None,
        inactivity_timeout_seconds: float = 300.0,
        reference_level_db: float = 80.0,
        daily_limit_percent: int = 100,
        break_interval_seconds: float = 3600.0,
    ) -> None:
        if inactivity_timeout_seconds <= 0:
            raise ValueError("inactivity_timeout_seconds must be positive")

        self.scheduler = scheduler
        self.clock = clock
        self.calculator = calculator
        self.dose_provider = dose_provider
        self.publisher = publisher
        self.inactivity_timeout_seconds = inactivity_timeout_seconds
        self.reference_level_db = reference_level_db
        self.daily_limit_percent = daily_limit_percent
        self.break_interval_seconds = break_interval_seconds

        self.state = SessionState()
        self.is_connected = False
        self._timer: Optional[ScheduledTask] = None

        self.sessions_started = 0
        self.store_read_failures = 0

        logger.info(
            f"SessionCoordinator initialized: "
            f"inactivity={inactivity_timeout_seconds:.0f}s, "
            f"reference={reference_level_db:.0f}dB"
        )

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    # =========================================================================
    # Inputs
    # =========================================================================

    def on_connection_changed(self, connected: bool) -> None:
        """Device-connection edge. Disconnect ends an active session."""
        if connected == self.is_connected:
            return
        self.is_connected = connected
        logger.info(f"Device {'connected' if connected else 'disconnected'}")

        if not connected and self.state.is_active:
            self._end(SessionEndReason.DEVICE_DISCONNECTED)

    def on_sample_arrived(
        self,
        at: Optional[datetime] = None,
        dose_percent: Optional[float] = None,
    ) -> None:
        """
        New sample arrival.

        Args:
            at: Sample timestamp (defaults to now)
            dose_percent: Freshly computed dose; read from the store if None
        """
        at = at or self.clock.now()

        if self.state.is_active:
            self.state = self.state.model_copy(update={"last_sample_at": at})
            self._restart_timer()
            self._publish_active(dose_percent)
            return

        if not self.is_connected:
            logger.debug("Sample arrived while disconnected, not starting a session")
            return

        self._start(at, dose_percent)

    def manual_start(self, dose_percent: Optional[float] = None) -> None:
        """Start a session without waiting for a sample."""
        if self.state.is_active:
            return
        self._start(None, dose_percent)

    def manual_end(self) -> None:
        if self.state.is_active:
            self._end(SessionEndReason.MANUAL)

    def refresh(self, dose_percent: Optional[float] = None) -> None:
        """Re-publish the live snapshot (e.g. from the periodic poll)."""
        if self.state.is_active:
            self._publish_active(dose_percent)

    def stop(self) -> None:
        """Cancel the inactivity timer without changing state."""
        self._cancel_timer()

    # =========================================================================
    # Transitions
    # =========================================================================

    def _start(self, at: Optional[datetime], dose_percent: Optional[float]) -> None:
        now = self.clock.now()
        self.state = SessionState(
            is_active=True,
            started_at=now,
            last_sample_at=at,
            last_dose_percent=self.state.last_dose_percent,
        )
        self.sessions_started += 1
        self._restart_timer()
        logger.info(f"Listening session started at {now.isoformat()}")
        self._publish_active(dose_percent)

    def _end(self, reason: SessionEndReason) -> None:
        self._cancel_timer()
        now = self.clock.now()
        duration = self.state.duration_seconds(now)

        self.state = self.state.model_copy(update={"is_active": False, "end_reason": reason})
        logger.info(f"Listening session ended ({reason.value}) after {duration:.0f}s")

        self._publish(LiveSessionSnapshot(
            dose_percent=self.state.last_dose_percent,
            remaining_minutes=None,
            status=None,
            is_break_time=False,
            is_active=False,
            daily_limit_percent=self.daily_limit_percent,
            session_started_at=self.state.started_at,
            updated_at=now,
            end_reason=reason,
        ))

    def _on_inactivity_timeout(self) -> None:
        self._timer = None
        if self.state.is_active:
            logger.info(f"No samples for {self.inactivity_timeout_seconds:.0f}s")
            self._end(SessionEndReason.INACTIVITY_TIMEOUT)

    # =========================================================================
    # Timer
    # =========================================================================

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._timer = self.scheduler.schedule(
            self.inactivity_timeout_seconds, self._on_inactivity_timeout
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # =========================================================================
    # Snapshots
    # =========================================================================

    def _current_dose(self, dose_percent: Optional[float]) -> float:
        if dose_percent is not None:
            return dose_percent
        try:
            return self.dose_provider()
        except StoreError as e:
            self.store_read_failures += 1
            logger.warning(f"Dose read failed, keeping last known value: {e}")
            return self.state.last_dose_percent

    def build_snapshot(self, dose_percent: float) -> LiveSessionSnapshot:
        now = self.clock.now()
        remaining = self.calculator.remaining_safe_time(
            dose_percent, self.reference_level_db, self.daily_limit_percent
        )
        relative_dose = dose_percent * 100.0 / self.daily_limit_percent
        return LiveSessionSnapshot(
            dose_percent=dose_percent,
            remaining_minutes=int(remaining // 60),
            status=ExposureStatus.from_dose(relative_dose),
            is_break_time=self.state.duration_seconds(now) >= self.break_interval_seconds,
            is_active=True,
            daily_limit_percent=self.daily_limit_percent,
            session_started_at=self.state.started_at,
            updated_at=now,
        )

    def _publish_active(self, dose_percent: Optional[float]) -> None:
        dose = self._current_dose(dose_percent)
        self.state = self.state.model_copy(update={"last_dose_percent": dose})
        self._publish(self.build_snapshot(dose))

    def _publish(self, snapshot: LiveSessionSnapshot) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher(snapshot)
        except Exception:
            logger.exception("Live session publisher failed")

    def get_metrics(self) -> dict:
        return {
            "is_active": self.state.is_active,
            "is_connected": self.is_connected,
            "sessions_started": self.sessions_started,
            "store_read_failures": self.store_read_failures,
            "last_dose_percent": self.state.last_dose_percent,
        }
