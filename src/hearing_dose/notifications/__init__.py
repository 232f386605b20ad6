"""
Notifications Module
====================

Cooldown-gated notification decisions.

Components:
    - CooldownLedger: persisted key -> last fired time
    - NotificationGate: threshold, actionable and volume-suggestion gates
"""

from hearing_dose.notifications.gate import NotificationGate
from hearing_dose.notifications.ledger import (
    ACTIONABLE_KEY,
    VOLUME_SUGGESTION_KEY,
    CooldownLedger,
    JsonLedgerBackend,
    MemoryLedgerBackend,
    atomic_write_json,
)


__all__ = [
    "NotificationGate",
    "CooldownLedger",
    "JsonLedgerBackend",
    "MemoryLedgerBackend",
    "ACTIONABLE_KEY",
    "VOLUME_SUGGESTION_KEY",
    "atomic_write_json",
]
