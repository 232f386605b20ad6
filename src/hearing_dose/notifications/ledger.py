"""
Cooldown Ledger
===============

Persistent map of notification key -> last fired time.

Keys:
    - Threshold percent as a string: "50", "80", "100"
    - Reserved class keys: "actionable", "volume_suggestion"

A key is Cooling while now - last_fired_at < cooldown, Armed otherwise.
There is no explicit re-arm event; a key re-arms when its cooldown elapses.

Persistence:
    JsonLedgerBackend writes the whole map atomically (temp file + replace),
    so cooldowns survive a relaunch and a crash never leaves a torn file.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Union

from hearing_dose.errors import StoreError


logger = logging.getLogger(__name__)


ACTIONABLE_KEY = "actionable"
VOLUME_SUGGESTION_KEY = "volume_suggestion"


class LedgerBackend(Protocol):
    def load(self) -> Dict[str, datetime]:
        ...

    def save(self, entries: Dict[str, datetime]) -> None:
        ...


class MemoryLedgerBackend:
    """Non-persistent backend."""

    def __init__(self) -> None:
        self._entries: Dict[str, datetime] = {}

    def load(self) -> Dict[str, datetime]:
        return dict(self._entries)

    def save(self, entries: Dict[str, datetime]) -> None:
        self._entries = dict(entries)


class JsonLedgerBackend:
    """
    JSON file backend.

    File format:
        {"50": "2026-10-16T09:12:00+00:00", "actionable": "..."}
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Dict[str, datetime]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cooldown ledger unreadable, starting empty: {self.path} ({e})")
            return {}

        entries: Dict[str, datetime] = {}
        for key, value in raw.items():
            try:
                entries[str(key)] = datetime.fromisoformat(value)
            except (TypeError, ValueError):
                logger.warning(f"Dropping invalid ledger entry {key!r}={value!r}")
        return entries

    def save(self, entries: Dict[str, datetime]) -> None:
        payload = {key: when.isoformat() for key, when in entries.items()}
        atomic_write_json(self.path, payload)


def atomic_write_json(path: Path, payload: dict) -> None:
    """
    Write JSON to `path` via a temp file in the same directory.

    Raises:
        StoreError: If the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        raise StoreError(f"Cannot write {path}: {e}") from e


class CooldownLedger:
    """
    Cooldown state for every notification key.

    Owned by the notification gate; nothing else writes it.

    Example:
        ledger = CooldownLedger(JsonLedgerBackend("state/cooldowns.json"))
        if not ledger.is_cooling("80", now, 3600):
            ledger.mark("80", now)
    """

    def __init__(self, backend: Optional[LedgerBackend] = None) -> None:
        self.backend = backend or MemoryLedgerBackend()
        self._lock = threading.Lock()
        self._entries: Dict[str, datetime] = self.backend.load()

        if self._entries:
            logger.info(f"Cooldown ledger loaded with {len(self._entries)} entr(ies)")

    def last_fired(self, key: str) -> Optional[datetime]:
        with self._lock:
            return self._entries.get(key)

    def is_cooling(self, key: str, now: datetime, cooldown_seconds: float) -> bool:
        last = self.last_fired(key)
        if last is None:
            return False
        return (now - last).total_seconds() < cooldown_seconds

    def mark(self, key: str, now: datetime) -> None:
        """Record that `key` fired at `now` and persist."""
        with self._lock:
            self._entries[key] = now
            snapshot = dict(self._entries)
        self.backend.save(snapshot)

    def cleanup(
        self,
        now: datetime,
        cooldown_seconds: float,
        key_cooldowns: Optional[Mapping[str, float]] = None,
    ) -> int:
        """
        Drop entries older than twice their cooldown.

        Args:
            now: Evaluation time
            cooldown_seconds: Cooldown of every key not in `key_cooldowns`
            key_cooldowns: Per-key cooldowns (e.g. the reserved class keys)

        Returns:
            Number of entries removed
        """
        key_cooldowns = key_cooldowns or {}
        with self._lock:
            stale = [
                key
                for key, when in self._entries.items()
                if (now - when).total_seconds() > 2 * key_cooldowns.get(key, cooldown_seconds)
            ]
            for key in stale:
                del self._entries[key]
            snapshot = dict(self._entries)

        if stale:
            self.backend.save(snapshot)
            logger.debug(f"Cooldown ledger cleanup removed {len(stale)} entr(ies)")
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
        self.backend.save({})

    def to_dict(self) -> Dict[str, str]:
        with self._lock:
            return {key: when.isoformat() for key, when in self._entries.items()}
