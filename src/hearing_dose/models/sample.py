"""
Exposure Sample Model
=====================

Canonical sound-level sample as delivered by the measurement collaborator.

A sample is an immutable fact. It is identified by its external id, which is
globally unique and used for deduplication: a second sample with the same id
is a duplicate and is ignored.

Canonical dict shape (as produced by the platform adapter):
    {
        "external_id": "6F1C...",
        "start": "2026-10-16T08:00:00+00:00",   # ISO-8601 or epoch seconds
        "end": "2026-10-16T08:00:30+00:00",
        "level_db": 78.4,
        "source_device": "Headphones"            # optional
    }
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Mapping, Optional

from hearing_dose.errors import InputError


@dataclass(frozen=True, slots=True)
class ExposureSample:
    """
    Timestamped sound-level sample.

    Attributes:
        external_id: Opaque globally unique id from the source (dedup key)
        start: Measurement start (timezone-aware)
        end: Measurement end (timezone-aware, end >= start)
        level_db: Sound pressure level in dB
        source_device: Optional name of the measuring device
    """

    external_id: str
    start: datetime
    end: datetime
    level_db: float
    source_device: Optional[str] = None

    @property
    def duration(self) -> float:
        """Sample duration in seconds."""
        return (self.end - self.start).total_seconds()

    def validate(self) -> None:
        """
        Check sample invariants.

        Raises:
            InputError: If the id is empty, timestamps are naive or
                non-monotonic, or the level is not a finite number
        """
        if not self.external_id:
            raise InputError("Sample has no external_id")
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise InputError(
                f"Sample {self.external_id} has naive timestamps",
                self.external_id,
            )
        if self.end < self.start:
            raise InputError(
                f"Sample {self.external_id} ends before it starts "
                f"({self.start.isoformat()} > {self.end.isoformat()})",
                self.external_id,
            )
        if not math.isfinite(self.level_db):
            raise InputError(
                f"Sample {self.external_id} has non-finite level {self.level_db}",
                self.external_id,
            )

    def day(self, tz: Optional[tzinfo] = None) -> date:
        """Calendar day the sample is accounted to (day of its start)."""
        return self.start.astimezone(tz).date()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExposureSample":
        """
        Build a sample from its canonical mapping.

        Raises:
            InputError: If required fields are missing or unparseable
        """
        try:
            sample = cls(
                external_id=str(data["external_id"]),
                start=parse_timestamp(data["start"]),
                end=parse_timestamp(data["end"]),
                level_db=float(data["level_db"]),
                source_device=data.get("source_device"),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise InputError(
                f"Invalid sample structure: {e}",
                str(data.get("external_id", "")),
            ) from e
        sample.validate()
        return sample

    def to_dict(self) -> dict:
        """Export as canonical dictionary."""
        return {
            "external_id": self.external_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "level_db": self.level_db,
            "source_device": self.source_device,
        }

    def __repr__(self) -> str:
        return (
            f"ExposureSample({self.external_id!r}, "
            f"{self.start.isoformat()}, {self.duration:.0f}s, "
            f"{self.level_db:.1f}dB)"
        )


def parse_timestamp(value: Any) -> datetime:
    """Parse ISO-8601 strings, epoch seconds, or datetimes (naive = UTC)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(float(value), tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(str(value))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
