"""
Cron schedule helpers.

Backup runs are triggered by an external scheduler; this module only
validates the configured expressions, reports their next fire times, and
tells the retention enforcer which weekdays count as "weekly" backups.

Expressions use standard crontab semantics (day-of-week 0 and 7 are Sunday).
APScheduler numbers weekdays from Monday, so the day-of-week field is
translated to names before a trigger is built.
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional

from apscheduler.triggers.cron import CronTrigger

from .models import utcnow


WEEKDAY_NAMES = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')

# crontab day-of-week names, numbered from Sunday
_CRON_DAY_NAMES = {
    'sun': 0, 'mon': 1, 'tue': 2, 'wed': 3, 'thu': 4, 'fri': 5, 'sat': 6
}


def _split(expression: str):
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields in {expression!r}; got {len(fields)}, expected 5")
    return fields


def _cron_day(value: str) -> int:
    value = value.strip().lower()
    if value in _CRON_DAY_NAMES:
        return _CRON_DAY_NAMES[value]
    try:
        day = int(value)
    except ValueError:
        raise ValueError(f"Invalid day-of-week value: {value!r}")
    if not 0 <= day <= 7:
        raise ValueError(f"Day-of-week out of range: {day}")
    return day % 7


def _to_python_weekday(cron_day: int) -> int:
    return (cron_day - 1) % 7


def weekly_weekdays(expression: str) -> FrozenSet[int]:
    """
    Weekdays (Python numbering, Monday is 0) on which a cron expression fires.

    Only the day-of-week field is considered. Supports ``*``, numbers 0-7,
    three letter names, lists, ranges and ``/step``.

    Args:
        expression: Five field crontab expression

    Returns:
        Frozen set of weekday numbers

    Raises:
        ValueError: If the expression or its day-of-week field is malformed
    """
    field = _split(expression)[4]
    cron_days = set()

    for part in field.split(','):
        step = 1
        if '/' in part:
            part, step_str = part.split('/', 1)
            try:
                step = int(step_str)
            except ValueError:
                raise ValueError(f"Invalid step in day-of-week field: {field!r}")
            if step < 1:
                raise ValueError(f"Invalid step in day-of-week field: {field!r}")

        if part in ('*', '?'):
            start, end = 0, 6
        elif '-' in part:
            low, high = part.split('-', 1)
            start, end = _cron_day(low), _cron_day(high)
            # "1-7" style ranges end on Sunday
            if high.strip() == '7':
                end = 7
            if end < start:
                raise ValueError(f"Invalid day-of-week range: {part!r}")
        else:
            start = end = _cron_day(part)

        cron_days.update(day % 7 for day in range(start, end + 1, step))

    return frozenset(_to_python_weekday(day) for day in cron_days)


def build_trigger(expression: str, timezone: str = 'UTC') -> CronTrigger:
    """
    Build an APScheduler trigger from a crontab expression.

    Raises:
        ValueError: If the expression is invalid
    """
    minute, hour, day, month, day_of_week = _split(expression)
    # APScheduler has no "?" wildcard
    if day == '?':
        day = '*'
    if day_of_week == '?':
        day_of_week = '*'
    if day_of_week != '*':
        days = sorted(weekly_weekdays(expression))
        day_of_week = ','.join(WEEKDAY_NAMES[d] for d in days)
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone=timezone
    )


def validate_schedule(schedule: Dict[str, str]):
    """
    Check every expression of a schedule mapping.

    Raises:
        ValueError: Naming the first invalid tier
    """
    for tier, expression in schedule.items():
        try:
            build_trigger(expression)
        except ValueError as e:
            raise ValueError(f"Invalid {tier} schedule {expression!r}: {e}")


def next_fire_times(schedule: Dict[str, str], now: Optional[datetime] = None) -> Dict[str, Optional[datetime]]:
    """Next fire time per tier, for display to the operator."""
    now = now or utcnow()
    return {
        tier: build_trigger(expression).get_next_fire_time(None, now)
        for tier, expression in schedule.items()
    }
