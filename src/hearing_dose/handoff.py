"""
Widget Handoff Store
====================

Shared key-value file read by the glance widget and live-presence display.

Today Summary Keys:
    widget_dosePercent      Today's dose
    widget_remainingTime    Safe seconds left at today's average level
                            (reference level when nothing was measured)
    widget_listeningTime    Today's sampled listening seconds
    widget_lastUpdate       ISO timestamp of the write

Live Session Keys:
    live_isActive, live_dosePercent, live_remainingMinutes, live_status,
    live_isBreakTime, live_updatedAt

The whole map is rewritten atomically on every update.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from hearing_dose.dose.calculator import DoseCalculator
from hearing_dose.models.dose import DailyDoseRecord
from hearing_dose.models.session import LiveSessionSnapshot
from hearing_dose.notifications.ledger import atomic_write_json


logger = logging.getLogger(__name__)


class HandoffStore:
    """
    JSON-file key-value store.

    Example:
        handoff = HandoffStore("state/widget.json")
        handoff.publish_today(record, calculator, now)
        handoff.get("widget_dosePercent")
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Handoff store unreadable, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def update(self, values: Dict[str, Any]) -> None:
        with self._lock:
            self._values.update(values)
            snapshot = dict(self._values)
        if self.path is not None:
            atomic_write_json(self.path, snapshot)

    def clear(self) -> None:
        with self._lock:
            self._values = {}
        if self.path is not None:
            atomic_write_json(self.path, {})

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def publish_today(
        self,
        record: DailyDoseRecord,
        calculator: DoseCalculator,
        now: datetime,
        reference_level_db: float = 80.0,
        daily_limit_percent: float = 100.0,
    ) -> None:
        level = record.average_level_db if record.average_level_db is not None else reference_level_db
        self.update({
            "widget_dosePercent": record.dose_percent,
            "widget_remainingTime": calculator.remaining_safe_time(
                record.dose_percent, level, daily_limit_percent
            ),
            "widget_listeningTime": record.total_exposure_seconds,
            "widget_lastUpdate": now.isoformat(),
        })

    def publish_live(self, snapshot: LiveSessionSnapshot) -> None:
        self.update({
            "live_isActive": snapshot.is_active,
            "live_dosePercent": snapshot.dose_percent,
            "live_remainingMinutes": snapshot.remaining_minutes,
            "live_status": snapshot.status.value if snapshot.status else None,
            "live_isBreakTime": snapshot.is_break_time,
            "live_updatedAt": snapshot.updated_at.isoformat(),
        })
