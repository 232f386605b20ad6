"""
Error Taxonomy
==============

Exceptions raised by the dose engine.

Propagation Rules:
    - InputError: malformed sample, rejected at ingestion, batch continues
    - StoreError: sample/dose store failure, surfaces to the ingestion caller
    - ConfigError: invalid configuration, defaults substituted unless strict
    - Pure computations never raise; they return zero or None
"""


class DoseEngineError(Exception):
    """Base class for all dose engine errors."""
    pass


class InputError(DoseEngineError):
    """Raised when an exposure sample is malformed."""

    def __init__(self, message: str, external_id: str = "") -> None:
        super().__init__(message)
        self.external_id = external_id


class StoreError(DoseEngineError):
    """Raised when the sample or dose store cannot be read or written."""
    pass


class ConfigError(DoseEngineError):
    """Raised when configuration is missing or invalid (strict mode only)."""
    pass
