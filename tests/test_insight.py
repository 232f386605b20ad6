"""
Insight Tests
=============

Burn-rate analysis, ETA prediction, and insight classification.
"""

from datetime import timedelta

import pytest

from conftest import NOW, make_block, make_sample
from hearing_dose.dose.insight import InsightGenerator
from hearing_dose.models.dose import DailyDoseRecord
from hearing_dose.models.insight import InsightKind


HALF_HOUR = 1800.0


@pytest.fixture
def generator(calculator):
    return InsightGenerator(calculator)


def recent_block(level_db, seconds=HALF_HOUR, prefix="r"):
    """Back-to-back samples ending exactly at NOW."""
    return make_block(prefix, NOW - timedelta(seconds=seconds), seconds, level_db)


class TestBurnRate:
    """Tests for burn-rate analysis."""

    def test_instantaneous_rate_at_criterion(self, generator):
        """30 min at 85 dB burns 12.5%/h and leaves 6 h from 25%."""
        analysis = generator.analyze_burn_rate(25.0, recent_block(85.0), NOW)

        assert analysis.is_actively_listening
        assert analysis.instantaneous_rate_per_hour == pytest.approx(12.5)
        assert analysis.effective_rate_per_hour == pytest.approx(12.5)
        assert analysis.eta_seconds == pytest.approx(6 * 3600)

    def test_falls_back_to_typical_rate_when_idle(self, generator):
        """Without recent samples the typical rate is reported, with no ETA."""
        analysis = generator.analyze_burn_rate(40.0, [], NOW, typical_burn_rate_per_hour=9.0)

        assert not analysis.is_actively_listening
        assert analysis.instantaneous_rate_per_hour == 0.0
        assert analysis.effective_rate_per_hour == pytest.approx(9.0)
        assert analysis.eta_seconds is None

    def test_samples_outside_window_are_ignored(self, generator):
        """A sample that ended 31 minutes ago is not recent."""
        old = [make_sample("old", NOW - timedelta(minutes=41), 600, 95.0)]
        analysis = generator.analyze_burn_rate(40.0, old, NOW)
        assert not analysis.is_actively_listening

    def test_eta_zero_over_limit(self, generator):
        """Already over the limit: ETA is zero."""
        analysis = generator.analyze_burn_rate(104.0, recent_block(90.0), NOW)
        assert analysis.eta_seconds == 0.0

    def test_zero_duration_samples_have_no_eta(self, generator):
        """Active but no measurable burn: ETA is None, not infinity."""
        samples = [make_sample("z", NOW - timedelta(minutes=1), 0, 85.0)]
        analysis = generator.analyze_burn_rate(30.0, samples, NOW)

        assert analysis.is_actively_listening
        assert analysis.effective_rate_per_hour == 0.0
        assert analysis.eta_seconds is None


class TestGenerateInsight:
    """Tests for insight classification."""

    def test_empty_is_inactive(self, generator):
        """No samples and no history: inactive, no ETA."""
        insight = generator.generate_insight(0.0, [], NOW)

        assert insight.kind == InsightKind.INACTIVE
        assert insight.is_actively_listening is False
        assert insight.eta_to_limit is None
        assert insight.estimated_limit_time is None

    def test_inactive_overrides_high_dose(self, generator):
        """Inactive wins even above the limit."""
        insight = generator.generate_insight(130.0, [], NOW, typical_burn_rate_per_hour=20.0)
        assert insight.kind == InsightKind.INACTIVE

    def test_safe(self, generator):
        """Low dose at moderate volume is safe."""
        insight = generator.generate_insight(20.0, recent_block(80.0), NOW)

        assert insight.kind == InsightKind.SAFE
        assert insight.eta_to_limit > 0
        assert insight.estimated_limit_time == NOW + timedelta(seconds=insight.eta_to_limit)

    def test_warning_band_without_history(self, generator):
        """75% with no typical rate to compare against is a warning."""
        insight = generator.generate_insight(75.0, recent_block(88.0), NOW)

        assert insight.kind == InsightKind.WARNING
        assert insight.eta_to_limit == pytest.approx(3600)

    def test_warning_above_eighty(self, generator):
        """85% at a gentle level is still a warning."""
        insight = generator.generate_insight(85.0, recent_block(80.0), NOW)
        assert insight.kind == InsightKind.WARNING

    def test_recovering_when_burn_below_typical(self, generator):
        """60-80% while listening gentler than usual is recovering."""
        insight = generator.generate_insight(
            70.0, recent_block(80.0), NOW, typical_burn_rate_per_hour=12.5
        )
        assert insight.kind == InsightKind.RECOVERING

    def test_not_recovering_when_burn_above_typical(self, generator):
        """60-80% while listening louder than usual is a warning."""
        insight = generator.generate_insight(
            70.0, recent_block(85.0), NOW, typical_burn_rate_per_hour=5.0
        )
        assert insight.kind == InsightKind.WARNING

    def test_danger_when_eta_short(self, generator):
        """Below the limit but reaching it within 30 minutes is danger."""
        insight = generator.generate_insight(95.0, recent_block(94.0), NOW)

        assert insight.kind == InsightKind.DANGER
        assert insight.eta_to_limit == pytest.approx(180)
        assert "limit" in insight.message

    def test_danger_over_limit(self, generator):
        """Over the limit while listening is danger."""
        insight = generator.generate_insight(110.0, recent_block(80.0), NOW)

        assert insight.kind == InsightKind.DANGER
        assert insight.eta_to_limit == 0.0
        assert "exceeded" in insight.message

    def test_scaled_limit(self, calculator):
        """With a 90% limit, 90% dose is already danger."""
        generator = InsightGenerator(calculator, limit_percent=90.0)
        insight = generator.generate_insight(90.0, recent_block(80.0), NOW)
        assert insight.kind == InsightKind.DANGER

    def test_insight_carries_dose_and_time(self, generator):
        insight = generator.generate_insight(42.0, recent_block(82.0), NOW)
        assert insight.dose_percent == 42.0
        assert insight.generated_at == NOW
        assert insight.burn_rate_per_hour > 0


class TestTypicalBurnRate:
    """Tests for the historical burn rate."""

    def _record(self, day, dose, seconds):
        return DailyDoseRecord(
            year=2026,
            month=10,
            day=day,
            dose_percent=dose,
            total_exposure_seconds=seconds,
        )

    def test_total_dose_over_total_hours(self):
        """Ratio of sums, not mean of ratios."""
        records = [self._record(10, 25.0, 7200), self._record(11, 50.0, 7200)]
        assert InsightGenerator.typical_burn_rate(records) == pytest.approx(18.75)

    def test_no_history(self):
        assert InsightGenerator.typical_burn_rate([]) is None
        assert InsightGenerator.typical_burn_rate([self._record(12, 0.0, 0.0)]) is None
