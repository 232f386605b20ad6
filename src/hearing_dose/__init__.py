"""
Hearing Dose Engine
===================

Exposure dose and listening-session engine for headphone loudness samples.

This package converts timestamped sound-level samples into a standardized
cumulative daily noise dose, predicts when the configured limit will be
reached, and drives notification gating and live listening sessions.

Components:
    - dose: Exchange-rate dose math, remaining time, predictive insight
    - ingestion: Deduplicating sample store and full/incremental sync
    - notifications: Threshold gate with persisted cooldown ledger
    - session: Live listening session state machine
    - scheduling: Clocks and cancelable timers (real and fake)
    - engine: Composition root wiring the pipeline together

Example:
    from hearing_dose.config import load_config
    from hearing_dose.engine import ExposureEngine

    settings = load_config()
    engine = ExposureEngine.from_settings(settings)
    result = engine.ingest(samples)
"""

__version__ = "0.1.0"
__author__ = "Hearing Dose Project"

__all__ = [
    "__version__",
]
