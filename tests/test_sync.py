"""
Sync Tests
==========

Full and incremental sync against fake and file-backed sources.
"""

import asyncio
import json
from datetime import timedelta, timezone

import pytest

from conftest import NOW, make_block, make_sample
from hearing_dose.ingestion.ingestor import SampleIngestor
from hearing_dose.ingestion.source import JsonFileSampleSource
from hearing_dose.ingestion.sync import SyncService


class FakeSource:
    """In-memory SampleSource that records its calls."""

    def __init__(self, samples=None, fail=False):
        self.samples = list(samples or [])
        self.fail = fail
        self.calls = []

    async def fetch_window(self, start, end):
        self.calls.append(("window", start, end))
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("source unavailable")
        return [s for s in self.samples if start <= s.start < end]

    async def fetch_since(self, watermark):
        self.calls.append(("since", watermark))
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("source unavailable")
        return [s for s in self.samples if watermark is None or s.end > watermark]


@pytest.fixture
def ingestor(store, calculator, clock):
    return SampleIngestor(store, calculator, clock=clock, tz=timezone.utc)


def make_sync(source, ingestor, store, clock, days=30):
    return SyncService(source, ingestor, store, clock=clock, full_sync_days=days)


class TestSyncService:
    """Tests for full and incremental sync."""

    def test_full_sync_window_and_watermark(self, ingestor, store, clock):
        """Full sync fetches the trailing window and sets the watermark."""
        samples = make_block("f", NOW - timedelta(hours=2), 1800, 85.0)
        old = [make_sample("ancient", NOW - timedelta(days=45), 600, 90.0)]
        source = FakeSource(samples + old)
        sync = make_sync(source, ingestor, store, clock)

        result = asyncio.run(sync.full_sync())

        assert result.inserted_count == len(samples)
        assert source.calls[0] == ("window", NOW - timedelta(days=30), NOW)
        assert store.get_watermark() == samples[-1].end

    def test_incremental_uses_watermark(self, ingestor, store, clock):
        """Incremental sync asks only for samples after the watermark."""
        first = make_block("a", NOW - timedelta(hours=2), 600, 80.0)
        source = FakeSource(first)
        sync = make_sync(source, ingestor, store, clock)
        asyncio.run(sync.full_sync())

        later = make_block("b", NOW - timedelta(minutes=30), 600, 80.0)
        source.samples.extend(later)
        result = asyncio.run(sync.incremental_sync())

        assert source.calls[-1] == ("since", first[-1].end)
        assert result.inserted_count == len(later)
        assert store.get_watermark() == later[-1].end

    def test_incremental_without_watermark_runs_full(self, ingestor, store, clock):
        source = FakeSource(make_block("a", NOW - timedelta(hours=1), 600, 80.0))
        sync = make_sync(source, ingestor, store, clock)

        asyncio.run(sync.incremental_sync())
        assert source.calls[0][0] == "window"

    def test_redelivered_window_is_idempotent(self, ingestor, store, clock):
        """Overlapping redelivery inserts nothing new."""
        source = FakeSource(make_block("a", NOW - timedelta(hours=1), 1800, 85.0))
        sync = make_sync(source, ingestor, store, clock)

        asyncio.run(sync.full_sync())
        dose = store.get_daily_record(NOW.date()).dose_percent
        result = asyncio.run(sync.full_sync())

        assert result.inserted_count == 0
        assert store.get_daily_record(NOW.date()).dose_percent == dose

    def test_source_failure_leaves_data_untouched(self, ingestor, store, clock):
        """A failing fetch propagates and changes nothing."""
        source = FakeSource(make_block("a", NOW - timedelta(hours=1), 600, 85.0))
        sync = make_sync(source, ingestor, store, clock)
        asyncio.run(sync.full_sync())
        watermark = store.get_watermark()
        count = store.sample_count()

        source.fail = True
        with pytest.raises(ConnectionError):
            asyncio.run(sync.incremental_sync())

        assert store.get_watermark() == watermark
        assert store.sample_count() == count
        assert not sync.is_syncing
        assert sync.get_metrics()["failure_count"] == 1

    def test_concurrent_sync_is_skipped(self, ingestor, store, clock):
        """A sync requested while one is running is skipped."""
        source = FakeSource(make_block("a", NOW - timedelta(hours=1), 600, 85.0))
        sync = make_sync(source, ingestor, store, clock)

        async def both():
            return await asyncio.gather(sync.full_sync(), sync.full_sync())

        first, second = asyncio.run(both())

        assert first is not None
        assert second is None
        assert sync.skipped_count == 1

    def test_reset_and_resync(self, ingestor, store, clock):
        source = FakeSource(make_block("a", NOW - timedelta(hours=1), 600, 85.0))
        sync = make_sync(source, ingestor, store, clock)
        asyncio.run(sync.full_sync())
        store.add_samples([make_sample("orphan", NOW - timedelta(hours=3), 60, 80.0)])

        result = asyncio.run(sync.reset_and_resync())

        assert result.inserted_count == 10
        assert store.known_ids(["orphan"]) == set()


class TestJsonFileSampleSource:
    """Tests for the file-backed reference source."""

    def _write(self, path, samples, wrapped=False):
        items = [s.to_dict() for s in samples]
        payload = {"samples": items} if wrapped else items
        path.write_text(json.dumps(payload))

    def test_fetch_window(self, tmp_path):
        path = tmp_path / "samples.json"
        inside = make_sample("in", NOW - timedelta(hours=1), 60, 80.0)
        outside = make_sample("out", NOW - timedelta(days=2), 60, 80.0)
        self._write(path, [inside, outside])

        source = JsonFileSampleSource(path)
        raw = asyncio.run(source.fetch_window(NOW - timedelta(days=1), NOW))

        assert [item["external_id"] for item in raw] == ["in"]

    def test_fetch_since(self, tmp_path):
        path = tmp_path / "samples.json"
        a = make_sample("a", NOW - timedelta(hours=2), 60, 80.0)
        b = make_sample("b", NOW - timedelta(hours=1), 60, 80.0)
        self._write(path, [a, b], wrapped=True)

        source = JsonFileSampleSource(path)
        assert len(asyncio.run(source.fetch_since(None))) == 2
        assert [i["external_id"] for i in asyncio.run(source.fetch_since(a.end))] == ["b"]

    def test_missing_file_raises(self, tmp_path):
        source = JsonFileSampleSource(tmp_path / "missing.json")
        with pytest.raises(FileNotFoundError):
            asyncio.run(source.fetch_since(None))
