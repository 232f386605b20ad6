"""
Weekly Digest
=============

Aggregates stored DailyDoseRecords into a WeeklyDigest.

Weeks run Monday to Sunday in the accounting timezone. Without an explicit
week the last completed week is summarised. Streaks count recorded days
(days with no listening have no record and do not break a streak).
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from hearing_dose.ingestion.store import SampleStore
from hearing_dose.models.digest import WeeklyDigest
from hearing_dose.models.dose import DailyDoseRecord


logger = logging.getLogger(__name__)


class DigestGenerator:
    """
    Read-only weekly summary over the dose store.

    Example:
        digest = DigestGenerator(store).generate_weekly_digest(today, now)
        if digest:
            print(digest.average_dose_percent, digest.current_streak)
    """

    def __init__(self, store: SampleStore, daily_limit_percent: int = 100) -> None:
        self.store = store
        self.daily_limit_percent = daily_limit_percent

    def generate_weekly_digest(
        self,
        today: date,
        now: datetime,
        week_start: Optional[date] = None,
    ) -> Optional[WeeklyDigest]:
        """
        Summarise one week.

        Args:
            today: Current calendar day in the accounting timezone
            now: Generation time
            week_start: Any day of the week to summarise (defaults to the
                last completed week)

        Returns:
            WeeklyDigest, or None if the week has no records
        """
        if week_start is None:
            week_start = monday_of(today) - timedelta(days=7)
        else:
            week_start = monday_of(week_start)
        week_end = week_start + timedelta(days=6)

        records = self.store.daily_records_between(week_start, week_end)
        if not records:
            logger.debug(f"No records for week of {week_start.isoformat()}, no digest")
            return None

        previous = self.store.daily_records_between(
            week_start - timedelta(days=7), week_start - timedelta(days=1)
        )
        history = self.store.daily_records_between(date.min, today)
        current_streak, best_streak = self.streaks(history)

        by_dose = sorted(records, key=lambda r: r.dose_percent, reverse=True)
        levels = [r.average_level_db for r in records if r.average_level_db is not None]

        digest = WeeklyDigest(
            week_start=week_start,
            week_end=week_end,
            average_dose_percent=_mean_dose(records),
            previous_week_average_percent=_mean_dose(previous) if previous else None,
            total_listening_seconds=sum(r.total_exposure_seconds for r in records),
            days_with_data=len(records),
            days_over_limit=sum(1 for r in records if r.dose_percent >= self.daily_limit_percent),
            current_streak=current_streak,
            best_streak=best_streak,
            loudest_day=by_dose[0].calendar_date,
            loudest_day_dose_percent=by_dose[0].dose_percent,
            quietest_day=by_dose[-1].calendar_date,
            quietest_day_dose_percent=by_dose[-1].dose_percent,
            average_level_db=sum(levels) / len(levels) if levels else None,
            daily_limit_percent=self.daily_limit_percent,
            generated_at=now,
        )

        logger.info(
            f"Weekly digest {week_start.isoformat()}: avg {digest.average_dose_percent:.1f}%, "
            f"{digest.days_over_limit} day(s) over limit, streak {current_streak}"
        )
        return digest

    def streaks(self, records: Sequence[DailyDoseRecord]) -> Tuple[int, int]:
        """
        (current, best) runs of recorded days under the daily limit.

        The current streak counts back from the most recent record.
        """
        ordered: List[DailyDoseRecord] = sorted(records, key=lambda r: r.calendar_date, reverse=True)

        current = 0
        best = 0
        run = 0
        counting_current = True
        for record in ordered:
            if record.dose_percent < self.daily_limit_percent:
                run += 1
                best = max(best, run)
                if counting_current:
                    current = run
            else:
                run = 0
                counting_current = False

        return current, best


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _mean_dose(records: Sequence[DailyDoseRecord]) -> float:
    return sum(r.dose_percent for r in records) / len(records)
