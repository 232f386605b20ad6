"""
Dose Calculator
===============

Energy-domain noise dose math under a selectable exchange-rate model.

This module is pure: no I/O, no clocks, no shared state. It is safe to call
concurrently and repeatedly.

Formulas:
    allowable(L)  = T_c * 2^((L_c - L) / q)        seconds until 100%
    dose%         = 100 * sum(d_i / allowable(L_i))
    remaining(D, L) = (limit - D) / 100 * allowable(L)
    level(D, t)   = L_c + q * log2(T_c * (limit - D) / (100 * t))

    where L_c = 85 dB, T_c = 8 h, q = 3 dB (NIOSH) or 5 dB (OSHA)

Known Limitation:
    Only sampled duration counts. Gaps between samples are not filled, so
    sparse sampling under-counts exposure.
"""

import logging
import math
from typing import Iterable, Optional, Sequence

import numpy as np

from hearing_dose.models.dose import DoseResult, ExchangeRateModel
from hearing_dose.models.sample import ExposureSample


logger = logging.getLogger(__name__)


SECONDS_PER_HOUR = 3600.0

# Burn rates below this (dose%/h) are treated as zero
MIN_BURN_RATE_PER_HOUR = 1e-6


class DoseCalculator:
    """
    Noise dose calculator for one exchange-rate model.

    Attributes:
        model: Exchange-rate model (NIOSH or OSHA)
        secondary_threshold_db: Level counted for "time above" (default 85)
        high_threshold_db: Level counted for "time above high" (default 90)

    Example:
        calculator = DoseCalculator(ExchangeRateModel.NIOSH)

        dose = calculator.compute_dose_percent(samples)
        left = calculator.remaining_safe_time(dose, at_level=85.0)
    """

    def __init__(
        self,
        model: ExchangeRateModel = ExchangeRateModel.NIOSH,
        secondary_threshold_db: float = 85.0,
        high_threshold_db: float = 90.0,
    ) -> None:
        self.model = model
        self.secondary_threshold_db = secondary_threshold_db
        self.high_threshold_db = high_threshold_db

    @property
    def exchange_rate(self) -> float:
        return self.model.exchange_rate

    @property
    def criterion_level(self) -> float:
        return self.model.criterion_level

    @property
    def criterion_seconds(self) -> float:
        return self.model.criterion_seconds

    # =========================================================================
    # Forward formula
    # =========================================================================

    def allowable_time(self, level: float) -> float:
        """Seconds of exposure at `level` that make exactly 100%."""
        exponent = (self.criterion_level - level) / self.exchange_rate
        return self.criterion_seconds * math.pow(2.0, exponent)

    def dose_rate_per_hour(self, level: float) -> float:
        """Dose% accumulated per hour of listening at a constant `level`."""
        return SECONDS_PER_HOUR / self.allowable_time(level) * 100.0

    def compute_dose_percent(self, samples: Iterable[ExposureSample]) -> float:
        """
        Cumulative dose percent of a sample set.

        Independent of sample order. Samples with non-positive duration or
        level contribute nothing.
        """
        return self.calculate_daily_dose(samples).dose_percent

    def calculate_daily_dose(self, samples: Iterable[ExposureSample]) -> DoseResult:
        """
        Full dose aggregate over a sample set.

        Args:
            samples: Samples of one accounting window (typically one day)

        Returns:
            DoseResult; DoseResult.empty() when nothing contributes
        """
        samples = list(samples)
        if not samples:
            return DoseResult.empty()

        durations = np.fromiter((s.duration for s in samples), dtype=np.float64, count=len(samples))
        levels = np.fromiter((s.level_db for s in samples), dtype=np.float64, count=len(samples))

        mask = (durations > 0) & (levels > 0)
        if not mask.any():
            return DoseResult.empty()

        durations = durations[mask]
        levels = levels[mask]

        allowable = self.criterion_seconds * np.power(
            2.0, (self.criterion_level - levels) / self.exchange_rate
        )
        dose_percent = float(np.sum(durations / allowable) * 100.0)

        total_seconds = float(np.sum(durations))

        return DoseResult(
            dose_percent=dose_percent,
            total_exposure_seconds=total_seconds,
            average_level_db=float(np.sum(levels * durations) / total_seconds),
            peak_level_db=float(np.max(levels)),
            time_above_secondary_seconds=float(
                np.sum(durations[levels >= self.secondary_threshold_db])
            ),
            time_above_high_seconds=float(
                np.sum(durations[levels >= self.high_threshold_db])
            ),
            sample_count=int(durations.size),
        )

    # =========================================================================
    # Inverse formulas
    # =========================================================================

    def remaining_safe_time(
        self,
        current_dose_percent: float,
        at_level: float,
        limit_percent: float = 100.0,
    ) -> float:
        """
        Seconds at a fixed level until the dose reaches the limit.

        Returns 0.0 (never negative) once the limit is reached.
        """
        remaining_percent = max(limit_percent - current_dose_percent, 0.0)
        return (remaining_percent / 100.0) * self.allowable_time(at_level)

    def safe_level_for_remaining_time(
        self,
        current_dose_percent: float,
        remaining_seconds: float,
        limit_percent: float = 100.0,
    ) -> float:
        """
        dB level that consumes exactly the remaining budget over a duration.

        Used for "lower volume by N dB" suggestions.

        Returns:
            The level in dB, or 0.0 when no budget or no duration is left
        """
        remaining_fraction = (limit_percent - current_dose_percent) / 100.0
        if remaining_fraction <= 0 or remaining_seconds <= 0:
            return 0.0

        return self.criterion_level + self.exchange_rate * math.log2(
            self.criterion_seconds * remaining_fraction / remaining_seconds
        )

    def equivalent_level_for_burn_rate(self, burn_rate_per_hour: float) -> Optional[float]:
        """
        Constant level whose hourly dose equals `burn_rate_per_hour`.

        Returns:
            Level in dB, or None for a (near) zero burn rate
        """
        if not math.isfinite(burn_rate_per_hour) or burn_rate_per_hour < MIN_BURN_RATE_PER_HOUR:
            return None

        allowable = SECONDS_PER_HOUR * 100.0 / burn_rate_per_hour
        return self.criterion_level + self.exchange_rate * math.log2(
            self.criterion_seconds / allowable
        )

    def get_metrics(self) -> dict:
        """Get calculator parameters for observability."""
        return {
            "model": self.model.value,
            "exchange_rate": self.exchange_rate,
            "criterion_level": self.criterion_level,
            "criterion_hours": self.criterion_seconds / SECONDS_PER_HOUR,
        }


def span_seconds(samples: Sequence[ExposureSample]) -> float:
    """Seconds from the earliest start to the latest end of a sample set."""
    if not samples:
        return 0.0
    start = min(s.start for s in samples)
    end = max(s.end for s in samples)
    return max(0.0, (end - start).total_seconds())


def format_duration(seconds: float) -> str:
    """Format seconds as "2h 5m", "12 min", or "< 1 min"."""
    total = int(max(seconds, 0))
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes} min"
    return "< 1 min"
