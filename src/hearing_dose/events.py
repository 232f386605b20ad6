"""
Engine Events
=============

Outbound signals emitted by ExposureEngine.

Every signal is sent with the engine instance as sender and the payload as
the `event` keyword. Receivers should connect with `sender=engine` so that
several engines (e.g. parallel tests) do not see each other's events.

    from hearing_dose import events

    def on_threshold(sender, event):
        deliver(event.title, event.dose_percent)

    events.threshold_crossed.connect(on_threshold, sender=engine)

Signals and payloads:
    dose_updated            DailyDoseRecord (today only)
    insight_generated       Insight
    threshold_crossed       ThresholdEvent
    actionable_triggered    ActionableEvent
    volume_suggested        VolumeSuggestionEvent
    live_session_updated    LiveSessionSnapshot
"""

import logging
from typing import Any

from blinker import NamedSignal


logger = logging.getLogger(__name__)


EVENT_DOSE_UPDATED = "dose_updated"
EVENT_INSIGHT_GENERATED = "insight_generated"
EVENT_THRESHOLD_CROSSED = "threshold_crossed"
EVENT_ACTIONABLE_TRIGGERED = "actionable_triggered"
EVENT_VOLUME_SUGGESTED = "volume_suggested"
EVENT_LIVE_SESSION_UPDATED = "live_session_updated"


dose_updated = NamedSignal(EVENT_DOSE_UPDATED)
insight_generated = NamedSignal(EVENT_INSIGHT_GENERATED)
threshold_crossed = NamedSignal(EVENT_THRESHOLD_CROSSED)
actionable_triggered = NamedSignal(EVENT_ACTIONABLE_TRIGGERED)
volume_suggested = NamedSignal(EVENT_VOLUME_SUGGESTED)
live_session_updated = NamedSignal(EVENT_LIVE_SESSION_UPDATED)


def emit(signal: NamedSignal, sender: Any, event: Any) -> int:
    """
    Send `event` to every receiver of `signal` for `sender`.

    A failing receiver is logged and does not stop delivery to the others.

    Returns:
        Number of receivers that failed
    """
    failures = 0
    for receiver in signal.receivers_for(sender):
        try:
            receiver(sender, event=event)
        except Exception:
            failures += 1
            logger.exception(f"Receiver of '{signal.name}' failed")
    return failures
