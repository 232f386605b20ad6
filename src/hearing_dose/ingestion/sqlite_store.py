"""
SQLite Sample Store
===================

SampleStore backed by a single SQLite file.

Tables:
    samples:      one row per external id (start/end as ISO text + epoch)
    daily_doses:  one row per calendar day (ISO date key)
    sync_state:   key/value, holds the incremental sync watermark

The connection is opened lazily, cached, and configured for WAL journaling.
Every sqlite3.Error is re-raised as StoreError.
"""

import logging
import sqlite3
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

from hearing_dose.errors import StoreError
from hearing_dose.models.dose import DailyDoseRecord
from hearing_dose.models.sample import ExposureSample


logger = logging.getLogger(__name__)


SCHEMA = (
    """CREATE TABLE IF NOT EXISTS samples (
        external_id TEXT PRIMARY KEY,
        start_iso TEXT NOT NULL,
        end_iso TEXT NOT NULL,
        start_ts REAL NOT NULL,
        level_db REAL NOT NULL,
        source_device TEXT
    )""",
    "CREATE INDEX IF NOT EXISTS idx_samples_start ON samples(start_ts)",
    """CREATE TABLE IF NOT EXISTS daily_doses (
        day TEXT PRIMARY KEY,
        record_json TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS sync_state (
        key TEXT PRIMARY KEY,
        value TEXT
    )""",
)

WATERMARK_KEY = "watermark"


class SqliteSampleStore:
    """
    SQLite SampleStore with a cached connection.

    Example:
        store = SqliteSampleStore("data/hearing.db")
        store.add_samples(samples)
        store.close()
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_tables()

    def _get_conn(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                try:
                    self._conn = sqlite3.connect(
                        str(self.db_path), timeout=10.0, check_same_thread=False
                    )
                    self._conn.row_factory = sqlite3.Row
                    self._conn.execute("PRAGMA journal_mode=WAL;")
                    self._conn.execute("PRAGMA busy_timeout=5000;")
                    self._conn.execute("PRAGMA synchronous=NORMAL;")
                except sqlite3.Error as e:
                    self._conn = None
                    raise StoreError(f"Cannot open sample store {self.db_path}: {e}") from e
            return self._conn

    def _init_tables(self) -> None:
        with self._lock:
            conn = self._get_conn()
            try:
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Cannot initialize sample store: {e}") from e
        logger.debug(f"Sample store ready at {self.db_path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # =========================================================================
    # Samples
    # =========================================================================

    def known_ids(self, external_ids: Iterable[str]) -> Set[str]:
        ids = list(external_ids)
        if not ids:
            return set()

        known: Set[str] = set()
        with self._lock:
            conn = self._get_conn()
            try:
                # Chunked to stay below SQLite's bound-parameter limit
                for i in range(0, len(ids), 500):
                    chunk = ids[i:i + 500]
                    placeholders = ", ".join("?" for _ in chunk)
                    rows = conn.execute(
                        f"SELECT external_id FROM samples WHERE external_id IN ({placeholders})",
                        chunk,
                    ).fetchall()
                    known.update(row["external_id"] for row in rows)
            except sqlite3.Error as e:
                raise StoreError(f"known_ids failed: {e}") from e
        return known

    def add_samples(self, samples: Iterable[ExposureSample]) -> None:
        rows = [
            (
                s.external_id,
                s.start.isoformat(),
                s.end.isoformat(),
                s.start.timestamp(),
                s.level_db,
                s.source_device,
            )
            for s in samples
        ]
        if not rows:
            return

        with self._lock:
            conn = self._get_conn()
            try:
                conn.executemany(
                    "INSERT OR IGNORE INTO samples "
                    "(external_id, start_iso, end_iso, start_ts, level_db, source_device) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    rows,
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"add_samples failed: {e}") from e

    def samples_between(self, start: datetime, end: datetime) -> List[ExposureSample]:
        return self._select_samples(
            "SELECT * FROM samples WHERE start_ts >= ? AND start_ts < ? ORDER BY start_ts",
            (start.timestamp(), end.timestamp()),
        )

    def all_samples(self) -> List[ExposureSample]:
        return self._select_samples("SELECT * FROM samples ORDER BY start_ts", ())

    def sample_count(self) -> int:
        with self._lock:
            try:
                row = self._get_conn().execute("SELECT COUNT(*) AS n FROM samples").fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"sample_count failed: {e}") from e
        return int(row["n"])

    def _select_samples(self, query: str, params: tuple) -> List[ExposureSample]:
        with self._lock:
            try:
                rows = self._get_conn().execute(query, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Sample query failed: {e}") from e

        return [
            ExposureSample(
                external_id=row["external_id"],
                start=datetime.fromisoformat(row["start_iso"]),
                end=datetime.fromisoformat(row["end_iso"]),
                level_db=row["level_db"],
                source_device=row["source_device"],
            )
            for row in rows
        ]

    # =========================================================================
    # Daily records
    # =========================================================================

    def get_daily_record(self, day: date) -> Optional[DailyDoseRecord]:
        with self._lock:
            try:
                row = self._get_conn().execute(
                    "SELECT record_json FROM daily_doses WHERE day = ?",
                    (day.isoformat(),),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"get_daily_record failed: {e}") from e

        if row is None:
            return None
        return DailyDoseRecord.model_validate_json(row["record_json"])

    def upsert_daily_record(self, record: DailyDoseRecord) -> None:
        with self._lock:
            conn = self._get_conn()
            try:
                conn.execute(
                    "INSERT INTO daily_doses (day, record_json) VALUES (?, ?) "
                    "ON CONFLICT(day) DO UPDATE SET record_json = excluded.record_json",
                    (record.calendar_date.isoformat(), record.model_dump_json()),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"upsert_daily_record failed: {e}") from e

    def daily_records_between(self, first: date, last: date) -> List[DailyDoseRecord]:
        with self._lock:
            try:
                rows = self._get_conn().execute(
                    "SELECT record_json FROM daily_doses WHERE day >= ? AND day <= ? ORDER BY day",
                    (first.isoformat(), last.isoformat()),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"daily_records_between failed: {e}") from e

        return [DailyDoseRecord.model_validate_json(row["record_json"]) for row in rows]

    # =========================================================================
    # Sync state
    # =========================================================================

    def get_watermark(self) -> Optional[datetime]:
        with self._lock:
            try:
                row = self._get_conn().execute(
                    "SELECT value FROM sync_state WHERE key = ?", (WATERMARK_KEY,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"get_watermark failed: {e}") from e

        if row is None or row["value"] is None:
            return None
        return datetime.fromisoformat(row["value"])

    def set_watermark(self, watermark: datetime) -> None:
        if watermark.tzinfo is None:
            watermark = watermark.replace(tzinfo=timezone.utc)
        with self._lock:
            conn = self._get_conn()
            try:
                conn.execute(
                    "INSERT INTO sync_state (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (WATERMARK_KEY, watermark.isoformat()),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"set_watermark failed: {e}") from e

    def clear(self) -> None:
        with self._lock:
            conn = self._get_conn()
            try:
                conn.execute("DELETE FROM samples")
                conn.execute("DELETE FROM daily_doses")
                conn.execute("DELETE FROM sync_state")
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"clear failed: {e}") from e
        logger.info(f"Sample store cleared: {self.db_path}")
