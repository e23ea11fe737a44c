"""Tests for daily and weekly period key calculation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from quest_tracker.services.exceptions import ValidationError
from quest_tracker.services.period_keys import (
    DAILY,
    WEEKLY,
    PeriodKeys,
    daily_key,
    period_key_for,
    period_keys,
    quest_type_for_key,
    weekly_key,
)

NEW_YORK = ZoneInfo("America/New_York")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestDailyKey:
    """Daily keys follow the local calendar day in the quest timezone."""

    def test_same_local_day_shares_key(self):
        start_of_day = utc(2024, 1, 17, 5, 0)  # 00:00 EST
        end_of_day = utc(2024, 1, 18, 4, 59, 59)  # 23:59:59 EST

        assert daily_key(start_of_day, NEW_YORK) == "2024-01-17"
        assert daily_key(end_of_day, NEW_YORK) == "2024-01-17"

    def test_crossing_local_midnight_changes_key(self):
        before = utc(2024, 1, 18, 4, 59, 59)
        after = before + timedelta(seconds=1)

        assert daily_key(before, NEW_YORK) == "2024-01-17"
        assert daily_key(after, NEW_YORK) == "2024-01-18"

    def test_utc_midnight_does_not_change_key(self):
        before_utc_midnight = utc(2024, 1, 17, 23, 30)
        after_utc_midnight = utc(2024, 1, 18, 2, 0)

        assert daily_key(before_utc_midnight, NEW_YORK) == daily_key(after_utc_midnight, NEW_YORK)

    def test_daylight_saving_start(self):
        # Clocks spring forward on 2024-03-10; local midnight moves from 05:00 to 04:00 UTC
        assert daily_key(utc(2024, 3, 10, 4, 59), NEW_YORK) == "2024-03-09"
        assert daily_key(utc(2024, 3, 10, 5, 0), NEW_YORK) == "2024-03-10"
        assert daily_key(utc(2024, 3, 11, 3, 59), NEW_YORK) == "2024-03-10"
        assert daily_key(utc(2024, 3, 11, 4, 0), NEW_YORK) == "2024-03-11"

    def test_naive_instant_is_taken_as_utc(self):
        assert daily_key(datetime(2024, 1, 18, 2, 0), NEW_YORK) == "2024-01-17"

    def test_other_timezone_offsets(self):
        tokyo = ZoneInfo("Asia/Tokyo")
        assert daily_key(utc(2024, 1, 17, 15, 0), tokyo) == "2024-01-18"
        assert daily_key(utc(2024, 1, 17, 15, 0), timezone.utc) == "2024-01-17"


class TestWeeklyKey:
    """Weekly keys follow ISO-8601 week numbering in the quest timezone."""

    @pytest.mark.parametrize(
        "instant, expected",
        [
            (utc(2024, 12, 31, 12, 0), "2025-W01"),
            (utc(2024, 12, 30, 12, 0), "2025-W01"),
            (utc(2024, 12, 29, 12, 0), "2024-W52"),
            (utc(2021, 1, 1, 12, 0), "2020-W53"),
            (utc(2020, 12, 31, 12, 0), "2020-W53"),
            (utc(2026, 1, 1, 12, 0), "2026-W01"),
            (utc(2027, 1, 1, 12, 0), "2026-W53"),
            (utc(2024, 1, 1, 12, 0), "2024-W01"),
        ],
    )
    def test_year_boundary_dates_match_iso_reference(self, instant, expected):
        assert weekly_key(instant, NEW_YORK) == expected

    def test_same_iso_week_shares_key(self):
        monday = utc(2024, 1, 15, 12, 0)
        keys = {weekly_key(monday + timedelta(days=offset), NEW_YORK) for offset in range(7)}

        assert keys == {"2024-W03"}

    def test_monday_starts_new_week(self):
        assert weekly_key(utc(2024, 1, 21, 12, 0), NEW_YORK) == "2024-W03"
        assert weekly_key(utc(2024, 1, 22, 12, 0), NEW_YORK) == "2024-W04"

    def test_week_boundary_uses_local_time(self):
        # Monday 04:30 UTC is still Sunday evening in New York
        sunday_night = utc(2024, 1, 22, 4, 30)
        monday_morning = utc(2024, 1, 22, 5, 0)

        assert weekly_key(sunday_night, NEW_YORK) == "2024-W03"
        assert weekly_key(monday_morning, NEW_YORK) == "2024-W04"

    def test_new_years_eve_in_new_york_after_utc_new_year(self):
        # 2025-01-01 03:00 UTC is 2024-12-31 22:00 in New York
        instant = utc(2025, 1, 1, 3, 0)

        assert daily_key(instant, NEW_YORK) == "2024-12-31"
        assert weekly_key(instant, NEW_YORK) == "2025-W01"

    def test_week_number_is_zero_padded(self):
        assert weekly_key(utc(2024, 2, 1, 12, 0), NEW_YORK) == "2024-W05"


class TestPeriodKeyHelpers:
    """Tests for the combined and type-driven helpers."""

    def test_period_keys_returns_both(self):
        keys = period_keys(utc(2024, 1, 17, 15, 0), NEW_YORK)

        assert keys == PeriodKeys(daily="2024-01-17", weekly="2024-W03")

    def test_period_key_for_each_type(self):
        instant = utc(2024, 1, 17, 15, 0)

        assert period_key_for(DAILY, instant, NEW_YORK) == "2024-01-17"
        assert period_key_for(WEEKLY, instant, NEW_YORK) == "2024-W03"

    def test_period_key_for_unknown_type(self):
        with pytest.raises(ValidationError) as exc_info:
            period_key_for("monthly", utc(2024, 1, 17), NEW_YORK)

        assert exc_info.value.field == "quest_type"

    def test_quest_type_for_key(self):
        assert quest_type_for_key("2024-01-17") == DAILY
        assert quest_type_for_key("2024-W03") == WEEKLY

    def test_quest_type_for_unrecognized_key(self):
        with pytest.raises(ValidationError):
            quest_type_for_key("2024-01")
