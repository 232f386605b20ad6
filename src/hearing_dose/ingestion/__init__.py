"""
Ingestion Module
================

Sample deduplication, storage and incremental sync.

Components:
    - SampleStore: storage protocol (InMemorySampleStore, SqliteSampleStore)
    - SampleSource: external source protocol (JsonFileSampleSource)
    - SampleIngestor: dedup, persist, recompute affected days
    - SyncService: full / incremental sync with a single-flight guard
"""

from hearing_dose.ingestion.ingestor import SampleIngestor
from hearing_dose.ingestion.source import JsonFileSampleSource, RawSample, SampleSource
from hearing_dose.ingestion.sqlite_store import SqliteSampleStore
from hearing_dose.ingestion.store import InMemorySampleStore, SampleStore
from hearing_dose.ingestion.sync import SyncService


__all__ = [
    "SampleStore",
    "InMemorySampleStore",
    "SqliteSampleStore",
    "SampleSource",
    "JsonFileSampleSource",
    "RawSample",
    "SampleIngestor",
    "SyncService",
]
