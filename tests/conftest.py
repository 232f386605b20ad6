"""
Test Configuration
==================

Pytest fixtures and test configuration for the hearing dose engine.
"""

from datetime import datetime, timedelta, timezone

import pytest

from hearing_dose.config import Settings
from hearing_dose.dose.calculator import DoseCalculator
from hearing_dose.engine import ExposureEngine
from hearing_dose.ingestion.store import InMemorySampleStore
from hearing_dose.models.sample import ExposureSample
from hearing_dose.scheduling.clock import ManualClock
from hearing_dose.scheduling.scheduler import ManualScheduler


# 2026-10-16 18:00 UTC, late enough in the day for several hours of samples
NOW = datetime(2026, 10, 16, 18, 0, 0, tzinfo=timezone.utc)


def make_sample(
    external_id: str,
    start: datetime,
    seconds: float,
    level_db: float,
    source_device: str = "Headphones",
) -> ExposureSample:
    """Build a validated sample lasting `seconds` from `start`."""
    return ExposureSample(
        external_id=external_id,
        start=start,
        end=start + timedelta(seconds=seconds),
        level_db=level_db,
        source_device=source_device,
    )


def make_block(
    prefix: str,
    start: datetime,
    total_seconds: float,
    level_db: float,
    step_seconds: float = 60.0,
) -> list:
    """Contiguous run of back-to-back samples at one level."""
    samples = []
    offset = 0.0
    index = 0
    while offset < total_seconds:
        length = min(step_seconds, total_seconds - offset)
        samples.append(make_sample(f"{prefix}-{index}", start + timedelta(seconds=offset), length, level_db))
        offset += length
        index += 1
    return samples


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Manual clock starting at NOW."""
    return ManualClock(NOW)


@pytest.fixture
def scheduler(clock):
    """Manual scheduler driven by the clock fixture."""
    return ManualScheduler(clock)


@pytest.fixture
def calculator():
    """NIOSH calculator."""
    return DoseCalculator()


@pytest.fixture
def store():
    return InMemorySampleStore()


@pytest.fixture
def settings():
    """Default settings with calendar days in UTC."""
    return Settings.model_validate({"dose": {"timezone": "UTC"}})


@pytest.fixture
def engine(store, settings, clock, scheduler):
    """Engine on in-memory stores and manual time."""
    engine = ExposureEngine(store, settings=settings, clock=clock, scheduler=scheduler)
    yield engine
    engine.shutdown()
