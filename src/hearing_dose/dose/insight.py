"""
Predictive Insight
==================

Burn-rate analysis and insight classification.

The burn rate is the dose% accumulated per hour of listening. The
instantaneous rate comes from the last 30 minutes of samples; when there is
no recent activity the trailing 7-day typical rate is reported instead.

ETA to limit is computed by re-expressing the effective burn rate as an
equivalent constant level and asking the calculator how long that level may
still be sustained.

Kind Bands (relative to the daily limit):
    INACTIVE:   no sample in the recent window (overrides all bands)
    DANGER:     dose >= limit, or ETA <= 30 minutes
    WARNING:    dose >= 80%
    RECOVERING: 60-80% while current burn is below the typical burn
    WARNING:    60-80% otherwise
    SAFE:       dose < 60%
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from hearing_dose.dose.calculator import (
    MIN_BURN_RATE_PER_HOUR,
    SECONDS_PER_HOUR,
    DoseCalculator,
    format_duration,
    span_seconds,
)
from hearing_dose.models.dose import DailyDoseRecord
from hearing_dose.models.insight import BurnRateAnalysis, Insight, InsightKind
from hearing_dose.models.sample import ExposureSample


logger = logging.getLogger(__name__)


class InsightGenerator:
    """
    Stateless insight generator on top of a DoseCalculator.

    Example:
        generator = InsightGenerator(DoseCalculator())
        insight = generator.generate_insight(42.0, recent_samples, now)
    """

    def __init__(
        self,
        calculator: DoseCalculator,
        recent_window_seconds: float = 30 * 60,
        eta_danger_seconds: float = 30 * 60,
        warning_fraction: float = 0.8,
        recovering_fraction: float = 0.6,
        limit_percent: float = 100.0,
    ) -> None:
        """
        Initialize insight generator.

        Args:
            calculator: Dose calculator for the active model
            recent_window_seconds: Window that defines "actively listening"
            eta_danger_seconds: ETA at or below which the insight is DANGER
            warning_fraction: Fraction of the limit where WARNING starts
            recovering_fraction: Fraction of the limit where RECOVERING starts
            limit_percent: Daily limit in dose percent
        """
        if recent_window_seconds <= 0:
            raise ValueError("recent_window_seconds must be positive")

        self.calculator = calculator
        self.recent_window_seconds = recent_window_seconds
        self.eta_danger_seconds = eta_danger_seconds
        self.warning_fraction = warning_fraction
        self.recovering_fraction = recovering_fraction
        self.limit_percent = limit_percent

    def recent_samples(
        self,
        samples: Iterable[ExposureSample],
        now: datetime,
    ) -> List[ExposureSample]:
        """Samples that overlap the recent window ending at `now`."""
        cutoff = now - timedelta(seconds=self.recent_window_seconds)
        return [s for s in samples if s.end > cutoff and s.start <= now]

    def analyze_burn_rate(
        self,
        current_dose_percent: float,
        recent_samples: Sequence[ExposureSample],
        now: datetime,
        typical_burn_rate_per_hour: Optional[float] = None,
    ) -> BurnRateAnalysis:
        """
        Compute instantaneous and effective burn rate plus ETA.

        Args:
            current_dose_percent: Today's dose so far
            recent_samples: Candidate samples (filtered to the window here)
            now: Evaluation time
            typical_burn_rate_per_hour: Historical average, if known

        Returns:
            BurnRateAnalysis; eta_seconds is None when not listening or the
            burn rate is ~0, and 0.0 once the limit is reached
        """
        window = self.recent_samples(recent_samples, now)
        is_active = bool(window)

        instantaneous = 0.0
        if is_active:
            span_hours = span_seconds(window) / SECONDS_PER_HOUR
            if span_hours > 0:
                instantaneous = self.calculator.compute_dose_percent(window) / span_hours

        if is_active:
            effective = instantaneous
        elif _usable_rate(typical_burn_rate_per_hour):
            effective = float(typical_burn_rate_per_hour)
        else:
            effective = 0.0

        eta: Optional[float] = None
        if is_active:
            if current_dose_percent >= self.limit_percent:
                eta = 0.0
            else:
                level = self.calculator.equivalent_level_for_burn_rate(effective)
                if level is not None:
                    eta = self.calculator.remaining_safe_time(
                        current_dose_percent, level, self.limit_percent
                    )

        return BurnRateAnalysis(
            instantaneous_rate_per_hour=instantaneous,
            effective_rate_per_hour=effective,
            eta_seconds=eta,
            is_actively_listening=is_active,
        )

    def generate_insight(
        self,
        current_dose_percent: float,
        recent_samples: Sequence[ExposureSample],
        now: datetime,
        typical_burn_rate_per_hour: Optional[float] = None,
    ) -> Insight:
        """
        Build the predictive insight for the current dose.

        Never raises on empty input or zero burn rate.
        """
        analysis = self.analyze_burn_rate(
            current_dose_percent, recent_samples, now, typical_burn_rate_per_hour
        )
        kind = self._classify(current_dose_percent, analysis, typical_burn_rate_per_hour)
        message = self._message(kind, current_dose_percent, analysis)

        estimated_limit_time = None
        if analysis.eta_seconds is not None:
            estimated_limit_time = now + timedelta(seconds=analysis.eta_seconds)

        return Insight(
            kind=kind,
            message=message,
            eta_to_limit=analysis.eta_seconds,
            estimated_limit_time=estimated_limit_time,
            burn_rate_per_hour=analysis.effective_rate_per_hour,
            is_actively_listening=analysis.is_actively_listening,
            dose_percent=current_dose_percent,
            generated_at=now,
        )

    def _classify(
        self,
        dose: float,
        analysis: BurnRateAnalysis,
        typical_burn_rate_per_hour: Optional[float],
    ) -> InsightKind:
        if not analysis.is_actively_listening:
            return InsightKind.INACTIVE

        if dose >= self.limit_percent:
            return InsightKind.DANGER
        if analysis.eta_seconds is not None and analysis.eta_seconds <= self.eta_danger_seconds:
            return InsightKind.DANGER

        if dose >= self.limit_percent * self.warning_fraction:
            return InsightKind.WARNING

        if dose >= self.limit_percent * self.recovering_fraction:
            improving = (
                _usable_rate(typical_burn_rate_per_hour)
                and analysis.instantaneous_rate_per_hour < typical_burn_rate_per_hour
            )
            return InsightKind.RECOVERING if improving else InsightKind.WARNING

        return InsightKind.SAFE

    def _message(self, kind: InsightKind, dose: float, analysis: BurnRateAnalysis) -> str:
        eta = analysis.eta_seconds
        eta_text = format_duration(eta) if eta is not None else None

        if kind is InsightKind.INACTIVE:
            return f"No recent listening. You've used {dose:.0f}% of today's sound allowance."
        if kind is InsightKind.DANGER:
            if dose >= self.limit_percent:
                return (
                    f"You've exceeded your daily limit ({dose:.0f}%). "
                    "Give your ears a break or lower the volume."
                )
            return f"At this volume you'll reach your daily limit in {eta_text}. Lower the volume now."
        if kind is InsightKind.WARNING:
            if eta_text is not None:
                return f"{dose:.0f}% used. About {eta_text} left at your current volume."
            return f"{dose:.0f}% used. You're approaching your daily limit."
        if kind is InsightKind.RECOVERING:
            return f"{dose:.0f}% used, but you're listening more gently than usual. Keep it up."
        if eta_text is not None:
            return f"You're listening safely. About {eta_text} left at this volume."
        return "You're listening safely."

    @staticmethod
    def typical_burn_rate(history: Iterable[DailyDoseRecord]) -> Optional[float]:
        """
        Historical burn rate: total dose divided by total listening hours.

        Returns:
            Dose%/h, or None if the history has no listening time
        """
        total_dose = 0.0
        total_seconds = 0.0
        for record in history:
            total_dose += record.dose_percent
            total_seconds += record.total_exposure_seconds

        if total_seconds <= 0:
            return None
        return total_dose / (total_seconds / SECONDS_PER_HOUR)


def _usable_rate(rate: Optional[float]) -> bool:
    return rate is not None and math.isfinite(rate) and rate >= MIN_BURN_RATE_PER_HOUR
