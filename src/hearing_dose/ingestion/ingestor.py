"""
Sample Ingestor
===============

Deduplicates incoming samples, persists the new ones, and recomputes the
daily dose record of every affected calendar day.

Processing Steps:
    1. Coerce each raw item to an ExposureSample (malformed: logged, skipped)
    2. Drop ids repeated inside the batch or already known to the store
    3. Persist the new samples
    4. Recompute each affected day from its complete sample set

Design Rules:
    - Idempotent: re-ingesting a batch inserts nothing and changes no dose
    - Records are always recomputed from the full day, never patched
    - Store failures propagate as StoreError
"""

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Set, Tuple

from hearing_dose.dose.calculator import DoseCalculator
from hearing_dose.errors import InputError
from hearing_dose.ingestion.source import RawSample
from hearing_dose.ingestion.store import SampleStore
from hearing_dose.models.dose import DailyDoseRecord
from hearing_dose.models.events import IngestResult
from hearing_dose.models.sample import ExposureSample
from hearing_dose.scheduling.clock import Clock, SystemClock


logger = logging.getLogger(__name__)


class IngestorMetrics:
    """Metrics for SampleIngestor observability."""

    __slots__ = (
        "batches",
        "inserted",
        "duplicates",
        "rejected",
        "days_recomputed",
    )

    def __init__(self) -> None:
        self.batches: int = 0
        self.inserted: int = 0
        self.duplicates: int = 0
        self.rejected: int = 0
        self.days_recomputed: int = 0

    def to_dict(self) -> dict:
        return {
            "batches": self.batches,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
            "days_recomputed": self.days_recomputed,
        }


class SampleIngestor:
    """
    Sole writer of samples and daily dose records.

    Attributes:
        store: Sample store
        calculator: Dose calculator for the active exchange-rate model
        tz: Timezone that defines calendar days (None = system local)

    Example:
        ingestor = SampleIngestor(store, DoseCalculator())
        result = ingestor.ingest(batch)
        if result.includes_today:
            ...
    """

    def __init__(
        self,
        store: SampleStore,
        calculator: DoseCalculator,
        clock: Optional[Clock] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.store = store
        self.calculator = calculator
        self.clock = clock or SystemClock()
        self.tz = tz
        self.metrics = IngestorMetrics()

    # =========================================================================
    # Calendar helpers
    # =========================================================================

    def today(self, now: Optional[datetime] = None) -> date:
        now = now or self.clock.now()
        return now.astimezone(self.tz).date()

    def day_bounds(self, day: date) -> Tuple[datetime, datetime]:
        """[start, end) of a calendar day in the accounting timezone."""
        next_day = day + timedelta(days=1)
        if self.tz is None:
            return (
                datetime.combine(day, time.min).astimezone(),
                datetime.combine(next_day, time.min).astimezone(),
            )
        return (
            datetime.combine(day, time.min, tzinfo=self.tz),
            datetime.combine(next_day, time.min, tzinfo=self.tz),
        )

    def samples_for_day(self, day: date) -> List[ExposureSample]:
        start, end = self.day_bounds(day)
        return self.store.samples_between(start, end)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest(self, raw_samples: Iterable[RawSample]) -> IngestResult:
        """
        Fold a batch of samples into the store.

        Args:
            raw_samples: ExposureSample instances or canonical mappings

        Returns:
            IngestResult describing what changed

        Raises:
            StoreError: If the store cannot be read or written
        """
        now = self.clock.now()

        accepted: List[ExposureSample] = []
        seen: Set[str] = set()
        rejected = 0
        duplicates = 0

        for raw in raw_samples:
            try:
                sample = _coerce(raw)
            except InputError as e:
                rejected += 1
                logger.warning(f"Rejected malformed sample: {e}")
                continue

            if sample.external_id in seen:
                duplicates += 1
                continue
            seen.add(sample.external_id)
            accepted.append(sample)

        known = self.store.known_ids(s.external_id for s in accepted)
        new_samples = [s for s in accepted if s.external_id not in known]
        duplicates += len(accepted) - len(new_samples)

        if new_samples:
            self.store.add_samples(new_samples)

        # Days of redelivered samples are recomputed too; a retried batch rewrites
        # a record whose earlier write failed
        affected = {s.day(self.tz) for s in accepted}
        new_days = {s.day(self.tz) for s in new_samples}
        self.recompute_days(affected, now)

        latest = max(new_samples, key=lambda s: s.end) if new_samples else None

        self.metrics.batches += 1
        self.metrics.inserted += len(new_samples)
        self.metrics.duplicates += duplicates
        self.metrics.rejected += rejected

        result = IngestResult(
            inserted_count=len(new_samples),
            duplicate_count=duplicates,
            rejected_count=rejected,
            affected_days=frozenset(affected),
            includes_today=self.today(now) in new_days,
            latest_sample=latest,
        )

        if new_samples or rejected:
            logger.info(
                f"Ingested batch: {result.inserted_count} new, "
                f"{result.duplicate_count} duplicate, {result.rejected_count} rejected, "
                f"{len(affected)} day(s) recomputed"
            )
        else:
            logger.debug(f"Ingested batch: {duplicates} duplicate(s), nothing new")

        return result

    # =========================================================================
    # Recomputation
    # =========================================================================

    def recompute_day(self, day: date, now: Optional[datetime] = None) -> DailyDoseRecord:
        """Recompute and persist one day's record from its full sample set."""
        result = self.calculator.calculate_daily_dose(self.samples_for_day(day))
        record = DailyDoseRecord.from_result(day, result, updated_at=now or self.clock.now())
        self.store.upsert_daily_record(record)
        self.metrics.days_recomputed += 1
        return record

    def recompute_days(
        self,
        days: Iterable[date],
        now: Optional[datetime] = None,
    ) -> Dict[date, DailyDoseRecord]:
        now = now or self.clock.now()
        return {day: self.recompute_day(day, now) for day in sorted(days)}

    def recompute_all(self, now: Optional[datetime] = None) -> Dict[date, DailyDoseRecord]:
        """Recompute every day that has samples (e.g. after a model change)."""
        days = {s.day(self.tz) for s in self.store.all_samples()}
        records = self.recompute_days(days, now)
        logger.info(
            f"Recomputed {len(records)} day(s) under {self.calculator.model.display_name}"
        )
        return records

    def get_metrics(self) -> dict:
        return self.metrics.to_dict()


def _coerce(raw: RawSample) -> ExposureSample:
    if isinstance(raw, ExposureSample):
        raw.validate()
        return raw
    if not hasattr(raw, "get"):
        raise InputError(f"Unsupported sample type: {type(raw).__name__}")
    return ExposureSample.from_dict(raw)
