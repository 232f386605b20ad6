"""
Exposure Engine
===============

Composition root that wires ingestion, dose, notifications and session
lifecycle into one ordered pipeline.

Pipeline (per ingested batch that touches today):
    1. SampleIngestor persists new samples and recomputes affected days
    2. Today's DailyDoseRecord is read once
    3. InsightGenerator builds the insight from that same dose
    4. NotificationGate evaluates thresholds, then actionable and volume gates
    5. SessionCoordinator refreshes the live session with that same dose
    6. Outbound signals are emitted (see hearing_dose.events)

Batches that only touch past days are persisted and recomputed but never
notify. Every component is constructed here and injected; there are no
module-level instances.

Example:
    engine = ExposureEngine.from_settings(load_config())
    engine.set_device_connected(True)
    result = engine.ingest(batch)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from hearing_dose import events
from hearing_dose.config import Settings
from hearing_dose.dose.calculator import DoseCalculator
from hearing_dose.dose.digest import DigestGenerator
from hearing_dose.dose.insight import InsightGenerator
from hearing_dose.errors import DoseEngineError, StoreError
from hearing_dose.handoff import HandoffStore
from hearing_dose.ingestion.ingestor import SampleIngestor
from hearing_dose.ingestion.source import JsonFileSampleSource, RawSample, SampleSource
from hearing_dose.ingestion.sqlite_store import SqliteSampleStore
from hearing_dose.ingestion.store import InMemorySampleStore, SampleStore
from hearing_dose.ingestion.sync import SyncService
from hearing_dose.models.digest import WeeklyDigest
from hearing_dose.models.dose import DailyDoseRecord, DoseResult, ExchangeRateModel
from hearing_dose.models.events import IngestResult
from hearing_dose.models.insight import Insight
from hearing_dose.models.sample import ExposureSample
from hearing_dose.models.session import LiveSessionSnapshot
from hearing_dose.notifications.gate import NotificationGate
from hearing_dose.notifications.ledger import CooldownLedger, JsonLedgerBackend
from hearing_dose.scheduling.clock import Clock, SystemClock
from hearing_dose.scheduling.scheduler import AsyncioScheduler, PeriodicTask, Scheduler
from hearing_dose.session.coordinator import SessionCoordinator


logger = logging.getLogger(__name__)


# Optional text-generation collaborator: returns a replacement message or None
InsightEnricher = Callable[[Insight], Optional[str]]


class EngineMetrics:
    """Metrics for ExposureEngine observability."""

    __slots__ = (
        "pipeline_runs",
        "refreshes_skipped",
        "refresh_failures",
        "receiver_failures",
        "enrichment_failures",
    )

    def __init__(self) -> None:
        self.pipeline_runs: int = 0
        self.refreshes_skipped: int = 0
        self.refresh_failures: int = 0
        self.receiver_failures: int = 0
        self.enrichment_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "pipeline_runs": self.pipeline_runs,
            "refreshes_skipped": self.refreshes_skipped,
            "refresh_failures": self.refresh_failures,
            "receiver_failures": self.receiver_failures,
            "enrichment_failures": self.enrichment_failures,
        }


class ExposureEngine:
    """
    Exposure dose and session engine.

    Attributes:
        settings: Active configuration
        store: Sample store (shared by ingestion and readers)
        calculator: Dose calculator for the active model
        ingestor: Sole writer of samples and daily records
        insights: Insight generator
        gate: Notification gate (sole writer of the cooldown ledger)
        coordinator: Session coordinator (sole writer of session state)
        sync: SyncService, or None when no source is configured
        handoff: Widget handoff store
        digests: Weekly digest generator (read-only)
    """

    def __init__(
        self,
        store: SampleStore,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        ledger: Optional[CooldownLedger] = None,
        handoff: Optional[HandoffStore] = None,
        source: Optional[SampleSource] = None,
        enricher: Optional[InsightEnricher] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self.store = store
        self.handoff = handoff or HandoffStore()
        self.enricher = enricher

        dose_cfg = self.settings.dose
        notify_cfg = self.settings.notifications
        session_cfg = self.settings.session
        insight_cfg = self.settings.insight

        self.calculator = self._build_calculator(dose_cfg.model)

        self.ingestor = SampleIngestor(
            store, self.calculator, clock=self.clock, tz=dose_cfg.resolve_tz()
        )
        self.insights = InsightGenerator(
            self.calculator,
            recent_window_seconds=insight_cfg.recent_window_minutes * 60,
            eta_danger_seconds=insight_cfg.eta_danger_minutes * 60,
            limit_percent=session_cfg.daily_limit_percent,
        )
        self.gate = NotificationGate(
            ledger or CooldownLedger(),
            self.calculator,
            clock=self.clock,
            actionable_cooldown_seconds=notify_cfg.actionable_cooldown_seconds,
            volume_cooldown_seconds=notify_cfg.volume_cooldown_seconds,
            eta_warning_seconds=notify_cfg.eta_warning_minutes * 60,
            volume_alert_threshold_db=notify_cfg.volume_alert_threshold_db,
            suggestion_horizon_seconds=notify_cfg.suggestion_horizon_minutes * 60,
        )
        self.coordinator = SessionCoordinator(
            self.scheduler,
            self.clock,
            self.calculator,
            dose_provider=self._read_today_dose,
            publisher=self._on_live_snapshot,
            inactivity_timeout_seconds=session_cfg.inactivity_timeout_seconds,
            reference_level_db=session_cfg.reference_level_db,
            daily_limit_percent=session_cfg.daily_limit_percent,
            break_interval_seconds=session_cfg.break_interval_minutes * 60,
        )
        self.digests = DigestGenerator(store, daily_limit_percent=session_cfg.daily_limit_percent)
        self.sync: Optional[SyncService] = None
        if source is not None:
            self.sync = SyncService(
                source,
                self.ingestor,
                store,
                clock=self.clock,
                full_sync_days=self.settings.sync.full_sync_days,
            )

        self._refresh_task = PeriodicTask(
            self.scheduler,
            self.settings.sync.refresh_interval_seconds,
            self.refresh,
            name="dose-refresh",
        )
        self._refreshing = False
        self._last_level_db: Optional[float] = None
        self._current_insight: Optional[Insight] = None
        self.metrics = EngineMetrics()

        logger.info(
            f"ExposureEngine initialized: model={dose_cfg.model.value}, "
            f"thresholds={notify_cfg.thresholds}, "
            f"daily_limit={session_cfg.daily_limit_percent}%"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        source: Optional[SampleSource] = None,
        enricher: Optional[InsightEnricher] = None,
    ) -> "ExposureEngine":
        """Build an engine with the stores named in the settings."""
        if settings.storage.backend == "sqlite":
            store: SampleStore = SqliteSampleStore(settings.storage.sqlite_path)
        else:
            store = InMemorySampleStore()

        ledger_path = settings.notifications.ledger_path
        ledger = CooldownLedger(JsonLedgerBackend(ledger_path) if ledger_path else None)

        if source is None and settings.sync.source_path:
            source = JsonFileSampleSource(settings.sync.source_path)

        return cls(
            store,
            settings=settings,
            clock=clock,
            scheduler=scheduler,
            ledger=ledger,
            handoff=HandoffStore(settings.storage.handoff_path),
            source=source,
            enricher=enricher,
        )

    def _build_calculator(self, model: ExchangeRateModel) -> DoseCalculator:
        return DoseCalculator(
            model,
            secondary_threshold_db=self.settings.dose.secondary_threshold_db,
            high_threshold_db=self.settings.dose.high_threshold_db,
        )

    # =========================================================================
    # Inbound
    # =========================================================================

    def ingest(self, raw_samples: Iterable[RawSample]) -> IngestResult:
        """
        Ingest a batch and run the pipeline if today was touched.

        Raises:
            StoreError: If the store cannot be read or written
        """
        result = self.ingestor.ingest(raw_samples)
        self._after_ingest(result)
        return result

    def set_device_connected(self, connected: bool) -> None:
        self.coordinator.on_connection_changed(connected)

    async def sync_incremental(self) -> Optional[IngestResult]:
        """Incremental sync from the source, then the pipeline."""
        result = await self._require_sync().incremental_sync()
        if result is not None:
            self._after_ingest(result)
        return result

    async def sync_full(self, days: Optional[int] = None) -> Optional[IngestResult]:
        result = await self._require_sync().full_sync(days)
        if result is not None:
            self._after_ingest(result)
        return result

    async def reset_and_resync(self) -> Optional[IngestResult]:
        """Clear all stored data and cooldowns, then full sync."""
        sync = self._require_sync()
        self.gate.reset()
        self.handoff.clear()
        result = await sync.reset_and_resync()
        if result is not None:
            self._after_ingest(result)
        return result

    def _require_sync(self) -> SyncService:
        if self.sync is None:
            raise DoseEngineError("No sample source configured")
        return self.sync

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _after_ingest(self, result: IngestResult) -> None:
        if not result.includes_today:
            if result.inserted_count:
                logger.debug("Batch touched only past days, no notifications")
            return

        latest = result.latest_sample
        if latest is not None:
            self._last_level_db = latest.level_db
        self._run_pipeline(sample_at=self._live_arrival(latest))

    def _live_arrival(self, latest: Optional[ExposureSample]) -> Optional[datetime]:
        """End of the latest sample if it is recent enough to count as listening now."""
        if latest is None:
            return None
        age = (self.clock.now() - latest.end).total_seconds()
        if age > self.settings.session.inactivity_timeout_seconds:
            logger.debug(f"Latest sample is {age:.0f}s old, not treated as a live arrival")
            return None
        return latest.end

    def refresh(self) -> Optional[DailyDoseRecord]:
        """
        Recompute today's view and re-evaluate gates without new samples.

        Skipped (returns None) while another refresh is in flight.
        """
        return self._run_pipeline(sample_at=None)

    def _run_pipeline(self, sample_at: Optional[datetime]) -> Optional[DailyDoseRecord]:
        if self._refreshing:
            self.metrics.refreshes_skipped += 1
            logger.debug("Refresh already in progress, skipping")
            return None

        self._refreshing = True
        try:
            return self._process_today(sample_at)
        finally:
            self._refreshing = False

    def _process_today(self, sample_at: Optional[datetime]) -> DailyDoseRecord:
        now = self.clock.now()
        record = self.today_record(now)
        dose = record.dose_percent

        insight = self._build_insight(dose, now)
        self._current_insight = insight

        self._publish_today(record, now)
        self._emit(events.dose_updated, record)
        self._emit(events.insight_generated, insight)

        self._evaluate_gates(dose, insight, now)

        if sample_at is not None:
            self.coordinator.on_sample_arrived(at=sample_at, dose_percent=dose)
        else:
            self.coordinator.refresh(dose_percent=dose)

        self.metrics.pipeline_runs += 1
        return record

    def _build_insight(self, dose: float, now: datetime) -> Insight:
        window = timedelta(seconds=self.insights.recent_window_seconds)
        recent = self.store.samples_between(now - 2 * window, now + timedelta(seconds=1))

        today = self.ingestor.today(now)
        history_days = self.settings.insight.history_days
        history = self.store.daily_records_between(
            today - timedelta(days=history_days), today - timedelta(days=1)
        )
        typical = InsightGenerator.typical_burn_rate(history)

        insight = self.insights.generate_insight(dose, recent, now, typical)
        return self._enrich(insight)

    def _enrich(self, insight: Insight) -> Insight:
        if self.enricher is None:
            return insight
        try:
            message = self.enricher(insight)
        except Exception:
            self.metrics.enrichment_failures += 1
            logger.exception("Insight enrichment failed, using plain insight")
            return insight
        if message:
            return insight.model_copy(update={"message": message})
        return insight

    def _evaluate_gates(self, dose: float, insight: Insight, now: datetime) -> None:
        cfg = self.settings.notifications
        limit = self.settings.session.daily_limit_percent

        if cfg.enabled:
            threshold_event = self.gate.check_and_notify(
                dose, cfg.thresholds, cfg.cooldown_seconds, now, limit
            )
            if threshold_event is not None:
                self._emit(events.threshold_crossed, threshold_event)

        level = self._last_level_db if insight.is_actively_listening else None

        if cfg.actionable_enabled:
            actionable = self.gate.check_actionable(dose, insight, level, now, limit)
            if actionable is not None:
                self._emit(events.actionable_triggered, actionable)

        if cfg.volume_suggestions_enabled:
            suggestion = self.gate.check_volume_suggestion(dose, level, now, limit)
            if suggestion is not None:
                self._emit(events.volume_suggested, suggestion)

    def _publish_today(self, record: DailyDoseRecord, now: datetime) -> None:
        try:
            self.handoff.publish_today(
                record,
                self.calculator,
                now,
                reference_level_db=self.settings.session.reference_level_db,
                daily_limit_percent=self.settings.session.daily_limit_percent,
            )
        except StoreError as e:
            logger.warning(f"Widget handoff write failed: {e}")

    def _on_live_snapshot(self, snapshot: LiveSessionSnapshot) -> None:
        try:
            self.handoff.publish_live(snapshot)
        except StoreError as e:
            logger.warning(f"Live session handoff write failed: {e}")
        self._emit(events.live_session_updated, snapshot)

    def _emit(self, signal, event) -> None:
        self.metrics.receiver_failures += events.emit(signal, self, event)

    # =========================================================================
    # Queries
    # =========================================================================

    def today_record(self, now: Optional[datetime] = None) -> DailyDoseRecord:
        """Today's stored record, or an empty one if nothing was measured."""
        now = now or self.clock.now()
        today = self.ingestor.today(now)
        record = self.store.get_daily_record(today)
        if record is None:
            record = DailyDoseRecord.from_result(today, DoseResult.empty(), updated_at=now)
        return record

    def _read_today_dose(self) -> float:
        return self.today_record().dose_percent

    @property
    def current_insight(self) -> Optional[Insight]:
        return self._current_insight

    def weekly_digest(self, week_start: Optional[date] = None) -> Optional[WeeklyDigest]:
        """Digest of the week containing `week_start`, or of the last completed week."""
        now = self.clock.now()
        return self.digests.generate_weekly_digest(self.ingestor.today(now), now, week_start)

    # =========================================================================
    # Control
    # =========================================================================

    def start_periodic_refresh(self) -> None:
        self._refresh_task.start()

    def stop_periodic_refresh(self) -> None:
        """Stop the background refresh; no refresh fires after this returns."""
        self._refresh_task.stop()

    def set_dose_model(self, model: ExchangeRateModel) -> None:
        """Switch exchange-rate model and recompute every stored day."""
        if model == self.settings.dose.model:
            return

        dose_cfg = self.settings.dose.model_copy(update={"model": model})
        self.settings = self.settings.model_copy(update={"dose": dose_cfg})
        self.calculator = self._build_calculator(model)

        self.ingestor.calculator = self.calculator
        self.insights.calculator = self.calculator
        self.gate.calculator = self.calculator
        self.coordinator.calculator = self.calculator

        logger.info(f"Dose model switched to {model.display_name}")
        self.ingestor.recompute_all()
        self.refresh()

    def clear_all_data(self) -> None:
        """Delete every sample, daily record, cooldown and handoff value."""
        self.store.clear()
        self.gate.reset()
        self.handoff.clear()
        self._current_insight = None
        self._last_level_db = None
        logger.warning("All exposure data cleared")

    def shutdown(self) -> None:
        """Stop timers and release the store."""
        self.stop_periodic_refresh()
        self.coordinator.stop()
        close = getattr(self.store, "close", None)
        if close is not None:
            close()
        logger.info("ExposureEngine shut down")

    def get_metrics(self) -> dict:
        return {
            "engine": self.metrics.to_dict(),
            "calculator": self.calculator.get_metrics(),
            "ingestor": self.ingestor.get_metrics(),
            "gate": self.gate.get_metrics(),
            "session": self.coordinator.get_metrics(),
            "refresh": self._refresh_task.get_metrics(),
            "sync": self.sync.get_metrics() if self.sync else None,
        }
