"""
Dose Calculator Tests
=====================

Forward dose formula, inverse formulas, and model comparison.
"""

import math
import random
from datetime import timedelta

import pytest

from conftest import NOW, make_block, make_sample
from hearing_dose.dose.calculator import DoseCalculator, format_duration, span_seconds
from hearing_dose.models.dose import ExchangeRateModel, ExposureStatus


HOUR = 3600.0


class TestAllowableTime:
    """Tests for the per-level allowable exposure time."""

    def test_criterion_level_allows_eight_hours(self, calculator):
        """85 dB is allowed for exactly 8 hours under both models."""
        assert calculator.allowable_time(85.0) == pytest.approx(8 * HOUR)
        osha = DoseCalculator(ExchangeRateModel.OSHA)
        assert osha.allowable_time(85.0) == pytest.approx(8 * HOUR)

    def test_niosh_halves_every_three_db(self, calculator):
        """NIOSH: +3 dB halves the allowable time."""
        assert calculator.allowable_time(88.0) == pytest.approx(4 * HOUR)
        assert calculator.allowable_time(94.0) == pytest.approx(1 * HOUR)

    def test_osha_halves_every_five_db(self):
        """OSHA: +5 dB halves the allowable time."""
        osha = DoseCalculator(ExchangeRateModel.OSHA)
        assert osha.allowable_time(90.0) == pytest.approx(4 * HOUR)
        assert osha.allowable_time(80.0) == pytest.approx(16 * HOUR)

    def test_dose_rate_per_hour(self, calculator):
        """One hour at 85 dB is 12.5% of the daily dose."""
        assert calculator.dose_rate_per_hour(85.0) == pytest.approx(12.5)


class TestComputeDosePercent:
    """Tests for cumulative dose computation."""

    def test_eight_hours_at_criterion_is_full_dose(self, calculator):
        """8 h at 85 dB yields 100%."""
        samples = make_block("s", NOW - timedelta(hours=9), 8 * HOUR, 85.0, step_seconds=600)
        assert calculator.compute_dose_percent(samples) == pytest.approx(100.0)

    def test_empty_is_zero(self, calculator):
        """Empty sample set yields zero dose."""
        assert calculator.compute_dose_percent([]) == 0.0

    def test_skips_zero_duration_and_non_positive_level(self, calculator):
        """Samples without duration or level contribute nothing."""
        samples = [
            make_sample("a", NOW, 0, 100.0),
            make_sample("b", NOW, 600, 0.0),
            make_sample("c", NOW, 600, -5.0),
        ]
        assert calculator.compute_dose_percent(samples) == 0.0

    def test_permutation_invariant(self, calculator):
        """Sample order never changes the dose."""
        rng = random.Random(42)
        samples = [
            make_sample(f"s{i}", NOW - timedelta(minutes=i * 5), rng.uniform(10, 300), rng.uniform(60, 105))
            for i in range(50)
        ]
        baseline = calculator.compute_dose_percent(samples)
        assert baseline >= 0

        for _ in range(5):
            shuffled = samples[:]
            rng.shuffle(shuffled)
            assert calculator.compute_dose_percent(shuffled) == pytest.approx(baseline, rel=1e-12)

    def test_gaps_are_not_filled(self, calculator):
        """Two 10-minute samples an hour apart count as 20 minutes."""
        samples = [
            make_sample("a", NOW - timedelta(hours=2), 600, 85.0),
            make_sample("b", NOW - timedelta(hours=1), 600, 85.0),
        ]
        assert calculator.compute_dose_percent(samples) == pytest.approx(1200 / (8 * HOUR) * 100)

    def test_osha_not_higher_than_niosh_above_criterion(self):
        """Switching NIOSH to OSHA never raises dose for levels above 85 dB."""
        niosh = DoseCalculator(ExchangeRateModel.NIOSH)
        osha = DoseCalculator(ExchangeRateModel.OSHA)
        rng = random.Random(7)

        for trial in range(20):
            samples = [
                make_sample(f"t{trial}-{i}", NOW - timedelta(minutes=i), rng.uniform(30, 600), rng.uniform(85.5, 110))
                for i in range(10)
            ]
            assert osha.compute_dose_percent(samples) < niosh.compute_dose_percent(samples)

        at_criterion = [make_sample("c", NOW, 3600, 85.0)]
        assert osha.compute_dose_percent(at_criterion) == pytest.approx(
            niosh.compute_dose_percent(at_criterion)
        )


class TestCalculateDailyDose:
    """Tests for the full daily aggregate."""

    def test_aggregate_fields(self, calculator):
        """Average is duration-weighted; peak and time-above are tracked."""
        samples = [
            make_sample("a", NOW - timedelta(hours=2), 1800, 80.0),
            make_sample("b", NOW - timedelta(hours=1), 1800, 90.0),
        ]
        result = calculator.calculate_daily_dose(samples)

        assert result.total_exposure_seconds == pytest.approx(3600)
        assert result.average_level_db == pytest.approx(85.0)
        assert result.peak_level_db == pytest.approx(90.0)
        assert result.time_above_secondary_seconds == pytest.approx(1800)
        assert result.time_above_high_seconds == pytest.approx(1800)
        assert result.sample_count == 2

    def test_empty_result(self, calculator):
        """Empty input yields the empty result."""
        result = calculator.calculate_daily_dose([])
        assert result.dose_percent == 0.0
        assert result.average_level_db is None
        assert result.status == ExposureStatus.SAFE


class TestRemainingSafeTime:
    """Tests for remaining time at a fixed level."""

    def test_half_dose_at_criterion(self, calculator):
        """50% used leaves 4 h at 85 dB."""
        assert calculator.remaining_safe_time(50.0, 85.0) == pytest.approx(4 * HOUR)

    @pytest.mark.parametrize("dose", [0.0, 12.5, 50.0, 99.0, 99.999])
    def test_positive_below_limit(self, calculator, dose):
        """Any dose below 100% leaves some time."""
        for level in (70.0, 85.0, 100.0, 120.0):
            assert calculator.remaining_safe_time(dose, level) > 0

    @pytest.mark.parametrize("dose", [100.0, 100.5, 250.0])
    def test_zero_at_or_over_limit(self, calculator, dose):
        """At or over the limit no time is left, never negative."""
        assert calculator.remaining_safe_time(dose, 85.0) == 0.0

    def test_custom_limit(self, calculator):
        """45% of a 90% limit used leaves 45% of 8 h."""
        assert calculator.remaining_safe_time(45.0, 85.0, limit_percent=90.0) == pytest.approx(3.6 * HOUR)


class TestSafeLevelForRemainingTime:
    """Tests for the inverse-level formula."""

    @pytest.mark.parametrize("model", list(ExchangeRateModel))
    @pytest.mark.parametrize("dose", [0.0, 25.0, 60.0, 95.0])
    @pytest.mark.parametrize("hours", [0.25, 1.0, 3.0, 10.0])
    def test_round_trip_reaches_limit(self, model, dose, hours):
        """Listening `t` at the suggested level brings the dose to 100%."""
        calculator = DoseCalculator(model)
        seconds = hours * HOUR

        level = calculator.safe_level_for_remaining_time(dose, seconds)
        added = seconds / calculator.allowable_time(level) * 100.0

        assert dose + added == pytest.approx(100.0, abs=1e-9)

    def test_no_budget_or_no_time(self, calculator):
        """No budget or no time returns 0.0."""
        assert calculator.safe_level_for_remaining_time(100.0, HOUR) == 0.0
        assert calculator.safe_level_for_remaining_time(120.0, HOUR) == 0.0
        assert calculator.safe_level_for_remaining_time(50.0, 0.0) == 0.0

    def test_known_value(self, calculator):
        """Half the budget over 4 h is exactly the criterion level."""
        assert calculator.safe_level_for_remaining_time(50.0, 4 * HOUR) == pytest.approx(85.0)


class TestEquivalentLevel:
    """Tests for burn rate to level conversion."""

    def test_criterion_burn_rate(self, calculator):
        """12.5%/h is 85 dB under both models."""
        assert calculator.equivalent_level_for_burn_rate(12.5) == pytest.approx(85.0)
        osha = DoseCalculator(ExchangeRateModel.OSHA)
        assert osha.equivalent_level_for_burn_rate(12.5) == pytest.approx(85.0)

    def test_inverse_of_dose_rate(self, calculator):
        """equivalent_level(dose_rate(L)) == L."""
        for level in (70.0, 88.0, 101.5):
            rate = calculator.dose_rate_per_hour(level)
            assert calculator.equivalent_level_for_burn_rate(rate) == pytest.approx(level)

    @pytest.mark.parametrize("rate", [0.0, 1e-9, -3.0, math.nan, math.inf])
    def test_degenerate_rates(self, calculator, rate):
        """Zero, negative, or non-finite rates have no equivalent level."""
        assert calculator.equivalent_level_for_burn_rate(rate) is None


class TestHelpers:
    """Tests for formatting and span helpers."""

    def test_format_duration(self):
        assert format_duration(2 * HOUR + 5 * 60) == "2h 5m"
        assert format_duration(12 * 60 + 30) == "12 min"
        assert format_duration(30) == "< 1 min"
        assert format_duration(-10) == "< 1 min"

    def test_span_seconds(self):
        samples = [
            make_sample("a", NOW, 60, 80.0),
            make_sample("b", NOW + timedelta(minutes=10), 60, 80.0),
        ]
        assert span_seconds(samples) == pytest.approx(660)
        assert span_seconds([]) == 0.0

    def test_metrics(self, calculator):
        metrics = calculator.get_metrics()
        assert metrics["model"] == "niosh"
        assert metrics["exchange_rate"] == 3.0
        assert metrics["criterion_hours"] == 8.0
