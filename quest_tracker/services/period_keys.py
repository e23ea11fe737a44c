"""Period key calculation for daily and weekly quests.

A period key names the time bucket a progress document belongs to. Daily keys
are the local calendar date (``2024-01-15``); weekly keys are the ISO-8601
week (``2024-W03``). Both are computed in a single fixed timezone so every
user of a company rolls over at the same moment.

ISO weeks run Monday to Sunday and belong to the year of their Thursday, so
the year in a weekly key can differ from the calendar year of the instant:
2024-12-31 is in ``2025-W01`` and 2021-01-01 is in ``2020-W53``.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from datetime import tzinfo
from typing import NamedTuple

from quest_tracker.services.exceptions import ValidationError

DAILY = "daily"
WEEKLY = "weekly"
QUEST_TYPES = (DAILY, WEEKLY)

_DAILY_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WEEKLY_KEY_RE = re.compile(r"^\d{4}-W\d{2}$")


class PeriodKeys(NamedTuple):
    """The daily and weekly keys active at one instant."""
    daily: str
    weekly: str


def _local_date(instant: datetime, zone: tzinfo) -> date:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone).date()


def daily_key(instant: datetime, zone: tzinfo) -> str:
    """Render the local calendar date of ``instant`` as ``YYYY-MM-DD``.

    Args:
        instant: Point in time; naive values are taken as UTC
        zone: Timezone the date is observed in

    Returns:
        str: Daily period key
    """
    return _local_date(instant, zone).isoformat()


def weekly_key(instant: datetime, zone: tzinfo) -> str:
    """Render the ISO-8601 week of ``instant`` as ``YYYY-Www``.

    Args:
        instant: Point in time; naive values are taken as UTC
        zone: Timezone the date is observed in

    Returns:
        str: Weekly period key using the ISO week-numbering year
    """
    iso_year, iso_week, _ = _local_date(instant, zone).isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def period_keys(instant: datetime, zone: tzinfo) -> PeriodKeys:
    """Compute both period keys for the same instant."""
    return PeriodKeys(daily=daily_key(instant, zone), weekly=weekly_key(instant, zone))


def period_key_for(quest_type: str, instant: datetime, zone: tzinfo) -> str:
    """Compute the period key for a quest type.

    Raises:
        ValidationError: If the quest type is not daily or weekly
    """
    if quest_type == DAILY:
        return daily_key(instant, zone)
    if quest_type == WEEKLY:
        return weekly_key(instant, zone)
    raise ValidationError("quest_type", f"Unknown quest type: {quest_type}")


def quest_type_for_key(period_key: str) -> str:
    """Recognize which quest type a period key belongs to.

    Raises:
        ValidationError: If the key matches neither format
    """
    if _DAILY_KEY_RE.match(period_key):
        return DAILY
    if _WEEKLY_KEY_RE.match(period_key):
        return WEEKLY
    raise ValidationError("period_key", f"Unrecognized period key: {period_key}")
