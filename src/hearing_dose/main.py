"""
Hearing Dose Engine CLI
=======================

Command-line entry point.

Commands:
    replay FILE   Ingest a JSON sample file and print today's summary,
                  every recomputed day, last week's digest, and the events
                  that fired
    run           Poll the configured sample source, keep the periodic
                  dose refresh running, and log every outbound event

Example:
    hearing-dose replay samples.json --now 2026-10-16T18:00:00+00:00
    hearing-dose run --config config.yaml --poll 30
"""

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import List, Optional

from hearing_dose import __version__, events
from hearing_dose.config import Settings, load_config, setup_logging
from hearing_dose.engine import ExposureEngine
from hearing_dose.errors import DoseEngineError
from hearing_dose.ingestion.source import JsonFileSampleSource
from hearing_dose.models.dose import ExchangeRateModel
from hearing_dose.models.sample import parse_timestamp
from hearing_dose.scheduling.clock import ManualClock
from hearing_dose.scheduling.scheduler import ManualScheduler


logger = logging.getLogger(__name__)


OUTBOUND_SIGNALS = (
    events.threshold_crossed,
    events.actionable_triggered,
    events.volume_suggested,
    events.live_session_updated,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hearing-dose",
        description="Exposure dose and listening session engine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument(
        "--strict-config",
        action="store_true",
        help="Fail on invalid configuration instead of using defaults",
    )
    parser.add_argument(
        "--model",
        choices=[m.value for m in ExchangeRateModel],
        default=None,
        help="Override the exchange-rate model",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Ingest a JSON sample file and print a summary")
    replay.add_argument("file", help="JSON file with canonical samples")
    replay.add_argument(
        "--now",
        default=None,
        help="Evaluation time (ISO-8601); defaults to the current time",
    )
    replay.add_argument(
        "--connected",
        action="store_true",
        help="Treat the listening device as connected (opens a session)",
    )

    run = sub.add_parser("run", help="Poll the sample source and refresh continuously")
    run.add_argument(
        "--poll",
        type=float,
        default=60.0,
        help="Seconds between incremental syncs",
    )
    run.add_argument(
        "--source",
        default=None,
        help="JSON sample file to poll (overrides sync.source_path)",
    )

    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    settings = load_config(args.config, strict=args.strict_config)
    if args.model:
        dose_cfg = settings.dose.model_copy(update={"model": ExchangeRateModel(args.model)})
        settings = settings.model_copy(update={"dose": dose_cfg})
    return settings


# =============================================================================
# replay
# =============================================================================

def replay(args: argparse.Namespace, settings: Settings) -> int:
    now = parse_timestamp(args.now) if args.now else datetime.now(timezone.utc)
    clock = ManualClock(now)
    scheduler = ManualScheduler(clock)
    engine = ExposureEngine.from_settings(settings, clock=clock, scheduler=scheduler)

    fired: List[dict] = []

    def collect(sender, event):
        fired.append({"type": type(event).__name__, "event": _describe(event)})

    for sig in OUTBOUND_SIGNALS:
        sig.connect(collect, sender=engine)

    raw = asyncio.run(JsonFileSampleSource(args.file).fetch_since(None))
    engine.set_device_connected(args.connected)
    result = engine.ingest(raw)

    records = [
        engine.store.get_daily_record(day).model_dump(mode="json")
        for day in sorted(result.affected_days)
    ]
    insight = engine.current_insight
    digest = engine.weekly_digest()

    summary = {
        "model": engine.settings.dose.model.value,
        "ingest": result.to_dict(),
        "today": engine.today_record(now).model_dump(mode="json"),
        "insight": insight.model_dump(mode="json") if insight else None,
        "days": records,
        "weekly_digest": digest.model_dump(mode="json") if digest else None,
        "events": fired,
    }
    print(json.dumps(summary, indent=2))

    engine.shutdown()
    return 0


def _describe(event) -> dict:
    if hasattr(event, "model_dump"):
        return event.model_dump(mode="json")
    return {
        key: (value.isoformat() if isinstance(value, datetime) else value)
        for key, value in ((slot, getattr(event, slot)) for slot in event.__slots__)
    }


# =============================================================================
# run
# =============================================================================

async def run(args: argparse.Namespace, settings: Settings) -> int:
    source = JsonFileSampleSource(args.source) if args.source else None
    engine = ExposureEngine.from_settings(settings, source=source)
    if engine.sync is None:
        logger.error("No sample source configured (use --source or sync.source_path)")
        return 2

    def log_event(sender, event):
        logger.info(f"{type(event).__name__}: {_describe(event)}")

    for sig in OUTBOUND_SIGNALS:
        sig.connect(log_event, sender=engine)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    engine.set_device_connected(True)
    engine.start_periodic_refresh()
    logger.info(f"Polling every {args.poll:.0f}s, press Ctrl+C to stop")

    try:
        while not stop_event.is_set():
            try:
                await engine.sync_incremental()
            except DoseEngineError as e:
                logger.error(f"Sync failed, retrying next poll: {e}")
            except (OSError, ValueError) as e:
                logger.error(f"Sample source unavailable, retrying next poll: {e}")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=args.poll)
    finally:
        engine.shutdown()

    logger.info(f"Stopped. Metrics: {engine.get_metrics()}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args)
    except DoseEngineError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    setup_logging(settings)

    try:
        if args.command == "replay":
            return replay(args, settings)
        return asyncio.run(run(args, settings))
    except DoseEngineError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted")
