"""
Sample Sources
==============

Interface to the external measurement collaborator.

A source yields canonical sample mappings (see ExposureSample.from_dict)
or ExposureSample instances. Mapping raw platform formats into that shape
is the adapter's job, not the engine's.

Failures (I/O, permission, platform errors) propagate to the sync caller
unchanged; stored data is never touched when a fetch fails.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol, Union

from hearing_dose.models.sample import ExposureSample, parse_timestamp


logger = logging.getLogger(__name__)


RawSample = Union[ExposureSample, Mapping[str, Any]]


class SampleSource(Protocol):
    """External source of exposure samples."""

    async def fetch_window(self, start: datetime, end: datetime) -> List[RawSample]:
        """All samples starting in [start, end)."""
        ...

    async def fetch_since(self, watermark: Optional[datetime]) -> List[RawSample]:
        """Samples ending after `watermark` (everything when None)."""
        ...


class JsonFileSampleSource:
    """
    Reads canonical samples from a JSON file.

    The file holds either a list of sample mappings or an object with a
    "samples" list. It is re-read on every fetch so an external writer can
    append to it between syncs.

    Example:
        source = JsonFileSampleSource("exports/samples.json")
        raw = await source.fetch_since(None)
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _load(self) -> List[Mapping[str, Any]]:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, dict):
            data = data.get("samples", [])
        if not isinstance(data, list):
            raise ValueError(f"{self.path}: expected a list of samples")

        logger.debug(f"Loaded {len(data)} raw samples from {self.path}")
        return data

    async def _load_async(self) -> List[Mapping[str, Any]]:
        return await asyncio.to_thread(self._load)

    async def fetch_window(self, start: datetime, end: datetime) -> List[RawSample]:
        raw = await self._load_async()
        return [item for item in raw if _starts_within(item, start, end)]

    async def fetch_since(self, watermark: Optional[datetime]) -> List[RawSample]:
        raw = await self._load_async()
        if watermark is None:
            return list(raw)
        return [item for item in raw if _ends_after(item, watermark)]


def _starts_within(item: Mapping[str, Any], start: datetime, end: datetime) -> bool:
    # Unparseable items are passed through so ingestion can count them as rejected
    try:
        ts = parse_timestamp(item["start"])
    except (KeyError, ValueError, TypeError):
        return True
    return start <= ts < end


def _ends_after(item: Mapping[str, Any], watermark: datetime) -> bool:
    try:
        ts = parse_timestamp(item["end"])
    except (KeyError, ValueError, TypeError):
        return True
    return ts > watermark
