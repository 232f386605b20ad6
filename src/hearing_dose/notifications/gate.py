"""
Notification Threshold Gate
===========================

Decides whether a dose update produces a notification.

Per key state machine:
    Armed   --(dose >= threshold)-->   Cooling   (fires, records now)
    Cooling --(cooldown elapsed)-->    Armed     (no event)

Threshold Check:
    Enabled thresholds are scanned highest first and only the highest
    crossed one is considered. If it is Cooling nothing fires, even if a
    lower threshold is Armed. Thresholds scale with the daily limit: with a
    90% limit, the 80 threshold fires at 72% dose.

Other Gates:
    - Actionable alert ("actionable" key): limit reached, or ETA inside
      the warning window while actively listening
    - Volume suggestion ("volume_suggestion" key): current level is loud
      and a lower level would stretch the remaining budget
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from hearing_dose.dose.calculator import DoseCalculator
from hearing_dose.models.events import ActionableEvent, ThresholdEvent, VolumeSuggestionEvent
from hearing_dose.models.insight import Insight
from hearing_dose.notifications.ledger import (
    ACTIONABLE_KEY,
    VOLUME_SUGGESTION_KEY,
    CooldownLedger,
)
from hearing_dose.scheduling.clock import Clock, SystemClock


logger = logging.getLogger(__name__)


# A suggested level must be at least this far below the current level
MIN_USEFUL_LEVEL_DROP_DB = 1.0


class NotificationGate:
    """
    Cooldown-gated notification decisions.

    Example:
        gate = NotificationGate(CooldownLedger(), DoseCalculator())
        event = gate.check_and_notify(82.0, [50, 80, 100], cooldown_seconds=3600)
        if event:
            deliver(event.title, event.dose_percent)
    """

    def __init__(
        self,
        ledger: CooldownLedger,
        calculator: DoseCalculator,
        clock: Optional[Clock] = None,
        actionable_cooldown_seconds: float = 600.0,
        volume_cooldown_seconds: float = 1800.0,
        eta_warning_seconds: float = 1800.0,
        volume_alert_threshold_db: float = 85.0,
        suggestion_horizon_seconds: float = 7200.0,
    ) -> None:
        self.ledger = ledger
        self.calculator = calculator
        self.clock = clock or SystemClock()
        self.actionable_cooldown_seconds = actionable_cooldown_seconds
        self.volume_cooldown_seconds = volume_cooldown_seconds
        self.eta_warning_seconds = eta_warning_seconds
        self.volume_alert_threshold_db = volume_alert_threshold_db
        self.suggestion_horizon_seconds = suggestion_horizon_seconds

        self.events_fired = 0
        self.events_suppressed = 0

    # =========================================================================
    # Threshold notifications
    # =========================================================================

    def check_and_notify(
        self,
        dose_percent: float,
        enabled_thresholds: Iterable[int],
        cooldown_seconds: float,
        now: Optional[datetime] = None,
        daily_limit_percent: float = 100.0,
    ) -> Optional[ThresholdEvent]:
        """
        Fire at most one threshold event for this dose update.

        Args:
            dose_percent: Today's dose
            enabled_thresholds: Threshold percents of the daily limit
            cooldown_seconds: Minimum time between two firings of one key
            now: Evaluation time (defaults to the clock)
            daily_limit_percent: User daily limit (100 = standard)

        Returns:
            ThresholdEvent if the highest crossed threshold was Armed
        """
        now = now or self.clock.now()
        self.ledger.cleanup(now, cooldown_seconds, self._class_cooldowns())

        for threshold in sorted({int(t) for t in enabled_thresholds if t > 0}, reverse=True):
            effective = threshold * daily_limit_percent / 100.0
            if dose_percent < effective:
                continue

            key = str(threshold)
            if self.ledger.is_cooling(key, now, cooldown_seconds):
                self.events_suppressed += 1
                logger.debug(f"Threshold {threshold}% crossed but cooling, suppressed")
                return None

            self.ledger.mark(key, now)
            self.events_fired += 1
            logger.info(
                f"Threshold {threshold}% fired at dose {dose_percent:.1f}% "
                f"(limit {daily_limit_percent:.0f}%)"
            )
            return ThresholdEvent(threshold=threshold, dose_percent=dose_percent, fired_at=now)

        return None

    # =========================================================================
    # Actionable alerts
    # =========================================================================

    def check_actionable(
        self,
        dose_percent: float,
        insight: Insight,
        current_level_db: Optional[float] = None,
        now: Optional[datetime] = None,
        daily_limit_percent: float = 100.0,
    ) -> Optional[ActionableEvent]:
        """
        Fire a context-rich alert when the limit is reached or imminent.

        Only fires while actively listening.
        """
        now = now or self.clock.now()
        if not insight.is_actively_listening:
            return None

        if dose_percent >= daily_limit_percent:
            trigger = "limit_reached"
        elif insight.eta_to_limit is not None and insight.eta_to_limit <= self.eta_warning_seconds:
            trigger = "eta_warning"
        else:
            return None

        if self.ledger.is_cooling(ACTIONABLE_KEY, now, self.actionable_cooldown_seconds):
            self.events_suppressed += 1
            return None

        if current_level_db is not None:
            remaining = self.calculator.remaining_safe_time(
                dose_percent, current_level_db, daily_limit_percent
            )
        else:
            remaining = insight.eta_to_limit or 0.0

        suggested = None
        if current_level_db is not None:
            suggested = self.suggest_level(dose_percent, current_level_db, daily_limit_percent)

        self.ledger.mark(ACTIONABLE_KEY, now)
        self.events_fired += 1
        logger.info(f"Actionable alert ({trigger}) at dose {dose_percent:.1f}%")

        return ActionableEvent(
            trigger=trigger,
            dose_percent=dose_percent,
            remaining_seconds=remaining,
            current_level_db=current_level_db,
            suggested_level_db=suggested,
            fired_at=now,
        )

    # =========================================================================
    # Volume suggestions
    # =========================================================================

    def suggest_level(
        self,
        dose_percent: float,
        current_level_db: float,
        daily_limit_percent: float = 100.0,
    ) -> Optional[float]:
        """
        Level that makes the remaining budget last the suggestion horizon.

        Returns:
            The level, or None if no budget is left or the drop would be
            negligible
        """
        level = self.calculator.safe_level_for_remaining_time(
            dose_percent, self.suggestion_horizon_seconds, daily_limit_percent
        )
        if level <= 0.0 or level > current_level_db - MIN_USEFUL_LEVEL_DROP_DB:
            return None
        return level

    def check_volume_suggestion(
        self,
        dose_percent: float,
        current_level_db: Optional[float],
        now: Optional[datetime] = None,
        daily_limit_percent: float = 100.0,
    ) -> Optional[VolumeSuggestionEvent]:
        """Suggest a lower volume when listening loud with budget left."""
        now = now or self.clock.now()
        if current_level_db is None or current_level_db < self.volume_alert_threshold_db:
            return None
        if dose_percent >= daily_limit_percent:
            return None

        suggested = self.suggest_level(dose_percent, current_level_db, daily_limit_percent)
        if suggested is None:
            return None

        if self.ledger.is_cooling(VOLUME_SUGGESTION_KEY, now, self.volume_cooldown_seconds):
            self.events_suppressed += 1
            return None

        at_current = self.calculator.remaining_safe_time(
            dose_percent, current_level_db, daily_limit_percent
        )
        at_suggested = self.calculator.remaining_safe_time(
            dose_percent, suggested, daily_limit_percent
        )

        self.ledger.mark(VOLUME_SUGGESTION_KEY, now)
        self.events_fired += 1
        logger.info(
            f"Volume suggestion: {current_level_db:.0f} dB -> {suggested:.0f} dB "
            f"at dose {dose_percent:.1f}%"
        )

        return VolumeSuggestionEvent(
            current_level_db=current_level_db,
            suggested_level_db=suggested,
            additional_seconds=max(at_suggested - at_current, 0.0),
            dose_percent=dose_percent,
            fired_at=now,
        )

    def _class_cooldowns(self) -> dict:
        # Reserved keys age out against their own cooldowns, not the threshold one
        return {
            ACTIONABLE_KEY: self.actionable_cooldown_seconds,
            VOLUME_SUGGESTION_KEY: self.volume_cooldown_seconds,
        }

    def reset(self) -> None:
        """Re-arm every key."""
        self.ledger.reset()
        logger.info("Notification cooldowns reset")

    def get_metrics(self) -> dict:
        return {
            "events_fired": self.events_fired,
            "events_suppressed": self.events_suppressed,
            "ledger": self.ledger.to_dict(),
        }
