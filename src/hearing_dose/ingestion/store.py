"""
Sample Store
============

Persistence interface for samples, daily dose records and the sync
watermark, plus the in-memory reference implementation.

The engine never assumes a storage technology. Any object satisfying the
SampleStore protocol can be injected; implementations must raise StoreError
on read/write failure.

Write Ownership:
    - Samples, daily records, watermark: written only by the ingestion
      and sync layer
    - Everything else only reads
"""

import logging
import threading
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Protocol, Set

from hearing_dose.models.dose import DailyDoseRecord
from hearing_dose.models.sample import ExposureSample


logger = logging.getLogger(__name__)


class SampleStore(Protocol):
    """Storage for samples, per-day dose records and the sync watermark."""

    def known_ids(self, external_ids: Iterable[str]) -> Set[str]:
        """Subset of `external_ids` already stored."""
        ...

    def add_samples(self, samples: Iterable[ExposureSample]) -> None:
        ...

    def samples_between(self, start: datetime, end: datetime) -> List[ExposureSample]:
        """Samples whose start lies in [start, end), ordered by start."""
        ...

    def all_samples(self) -> List[ExposureSample]:
        ...

    def sample_count(self) -> int:
        ...

    def get_daily_record(self, day: date) -> Optional[DailyDoseRecord]:
        ...

    def upsert_daily_record(self, record: DailyDoseRecord) -> None:
        ...

    def daily_records_between(self, first: date, last: date) -> List[DailyDoseRecord]:
        """Records for days in [first, last], ordered by day."""
        ...

    def get_watermark(self) -> Optional[datetime]:
        ...

    def set_watermark(self, watermark: datetime) -> None:
        ...

    def clear(self) -> None:
        """Delete all samples, records and the watermark."""
        ...


class InMemorySampleStore:
    """
    Thread-safe in-memory SampleStore.

    Used by tests and by the `replay` command.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: Dict[str, ExposureSample] = {}
        self._records: Dict[date, DailyDoseRecord] = {}
        self._watermark: Optional[datetime] = None

    def known_ids(self, external_ids: Iterable[str]) -> Set[str]:
        with self._lock:
            return {i for i in external_ids if i in self._samples}

    def add_samples(self, samples: Iterable[ExposureSample]) -> None:
        with self._lock:
            for sample in samples:
                self._samples.setdefault(sample.external_id, sample)

    def samples_between(self, start: datetime, end: datetime) -> List[ExposureSample]:
        with self._lock:
            selected = [s for s in self._samples.values() if start <= s.start < end]
        return sorted(selected, key=lambda s: s.start)

    def all_samples(self) -> List[ExposureSample]:
        with self._lock:
            return sorted(self._samples.values(), key=lambda s: s.start)

    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    def get_daily_record(self, day: date) -> Optional[DailyDoseRecord]:
        with self._lock:
            return self._records.get(day)

    def upsert_daily_record(self, record: DailyDoseRecord) -> None:
        with self._lock:
            self._records[record.calendar_date] = record

    def daily_records_between(self, first: date, last: date) -> List[DailyDoseRecord]:
        with self._lock:
            return [self._records[d] for d in sorted(self._records) if first <= d <= last]

    def get_watermark(self) -> Optional[datetime]:
        return self._watermark

    def set_watermark(self, watermark: datetime) -> None:
        self._watermark = watermark

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
            self._records.clear()
            self._watermark = None
        logger.info("In-memory store cleared")
