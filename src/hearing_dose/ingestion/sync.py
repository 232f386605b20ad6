"""
Incremental Sync
================

Pulls samples from the external source and funnels them through the
ingestor.

Modes:
    - full_sync: re-fetch a trailing window (default 30 days)
    - incremental_sync: fetch only samples ending after the watermark
    - reset_and_resync: clear the store, then full sync

Design Rules:
    - Only one sync runs at a time; overlapping requests are skipped
    - Source failures propagate and leave stored data untouched
    - The watermark only advances after a successful ingest
"""

import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional

from hearing_dose.ingestion.ingestor import SampleIngestor
from hearing_dose.ingestion.source import RawSample, SampleSource
from hearing_dose.ingestion.store import SampleStore
from hearing_dose.models.events import IngestResult
from hearing_dose.scheduling.clock import Clock, SystemClock


logger = logging.getLogger(__name__)


class SyncService:
    """
    Full and incremental sync against a SampleSource.

    Example:
        sync = SyncService(source, ingestor, store)
        result = await sync.incremental_sync()
        if result is not None and result.includes_today:
            ...
    """

    def __init__(
        self,
        source: SampleSource,
        ingestor: SampleIngestor,
        store: SampleStore,
        clock: Optional[Clock] = None,
        full_sync_days: int = 30,
    ) -> None:
        if full_sync_days < 1:
            raise ValueError("full_sync_days must be >= 1")

        self.source = source
        self.ingestor = ingestor
        self.store = store
        self.clock = clock or SystemClock()
        self.full_sync_days = full_sync_days

        self._syncing = False
        self.sync_count = 0
        self.skipped_count = 0
        self.failure_count = 0
        self.last_sync_at: Optional[datetime] = None

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    async def full_sync(self, days: Optional[int] = None) -> Optional[IngestResult]:
        """
        Re-fetch the trailing window and ingest it.

        Returns:
            IngestResult, or None if another sync was already running
        """
        days = days or self.full_sync_days
        if not self._begin("full"):
            return None
        try:
            now = self.clock.now()
            start = now - timedelta(days=days)
            logger.info(f"Full sync: fetching {days} day(s) since {start.isoformat()}")
            raw = await self._fetch(self.source.fetch_window(start, now))
            return self._ingest(raw)
        finally:
            self._syncing = False

    async def incremental_sync(self) -> Optional[IngestResult]:
        """
        Fetch samples since the stored watermark and ingest them.

        Falls back to a full sync when no watermark exists yet.

        Returns:
            IngestResult, or None if another sync was already running
        """
        watermark = self.store.get_watermark()
        if watermark is None:
            logger.info("No sync watermark yet, running full sync")
            return await self.full_sync()

        if not self._begin("incremental"):
            return None
        try:
            raw = await self._fetch(self.source.fetch_since(watermark))
            return self._ingest(raw)
        finally:
            self._syncing = False

    async def reset_and_resync(self, days: Optional[int] = None) -> Optional[IngestResult]:
        """Delete every stored sample and record, then run a full sync."""
        if self._syncing:
            logger.info("Sync in progress, skipping reset")
            self.skipped_count += 1
            return None
        self.store.clear()
        logger.warning("All stored exposure data cleared, resyncing")
        return await self.full_sync(days)

    # =========================================================================
    # Internals
    # =========================================================================

    def _begin(self, mode: str) -> bool:
        if self._syncing:
            self.skipped_count += 1
            logger.info(f"Sync already in progress, skipping {mode} sync")
            return False
        self._syncing = True
        return True

    async def _fetch(self, fetch) -> List[RawSample]:
        started = time.perf_counter()
        try:
            raw = await fetch
        except Exception as e:
            self.failure_count += 1
            logger.error(f"Sample source fetch failed: {e}")
            raise
        logger.debug(
            f"Fetched {len(raw)} raw sample(s) in {(time.perf_counter() - started) * 1000:.0f}ms"
        )
        return raw

    def _ingest(self, raw: List[RawSample]) -> IngestResult:
        result = self.ingestor.ingest(raw)

        if result.latest_sample is not None:
            previous = self.store.get_watermark()
            candidate = result.latest_sample.end
            if previous is None or candidate > previous:
                self.store.set_watermark(candidate)

        self.sync_count += 1
        self.last_sync_at = self.clock.now()
        return result

    def get_metrics(self) -> dict:
        return {
            "is_syncing": self._syncing,
            "sync_count": self.sync_count,
            "skipped_count": self.skipped_count,
            "failure_count": self.failure_count,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
        }
