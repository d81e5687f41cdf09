"""Normalization of weekly schedule payloads"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from ..config.attendance_rules import attendance_rules
from ..schemas.payroll_schemas import EmployeeSchedule, WeekdaySchedule
from .payroll_calendar import quantize_amount

WEEKDAY_KEYS = ("0", "1", "2", "3", "4", "5", "6")
TIME_RE = re.compile(r"^\d{2}:\d{2}$")


def _sanitize_time(value: Any) -> str:
    if isinstance(value, str) and TIME_RE.match(value.strip()):
        return value.strip()
    return attendance_rules.DEFAULT_START


def _clamp_minutes(value: Any) -> int:
    if isinstance(value, bool):
        return attendance_rules.DEFAULT_BREAK_MINUTES
    try:
        minutes = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return attendance_rules.DEFAULT_BREAK_MINUTES
    if not minutes.is_finite():
        return attendance_rules.DEFAULT_BREAK_MINUTES
    return max(0, int(minutes.to_integral_value(rounding=ROUND_HALF_UP)))


def _to_minutes(value: str) -> Optional[int]:
    hours, _, minutes = value.partition(":")
    if not (hours.isdigit() and minutes.isdigit()):
        return None
    return int(hours) * 60 + int(minutes)


def compute_expected_hours(start: str, end: str, break_minutes: int, supplied: Any = None) -> Decimal:
    """Net scheduled hours for a day, unless the payload already carries them."""
    if isinstance(supplied, (int, float, Decimal)) and not isinstance(supplied, bool):
        supplied = Decimal(str(supplied))
        if supplied.is_finite():
            return supplied
    start_total, end_total = _to_minutes(start), _to_minutes(end)
    if start_total is None or end_total is None:
        return attendance_rules.DEFAULT_EXPECTED_HOURS
    window = end_total - start_total
    if window <= 0:
        return attendance_rules.DEFAULT_EXPECTED_HOURS
    net = max(0, window - break_minutes)
    return quantize_amount(Decimal(net) / Decimal(60))


def normalize_day(value: Any) -> WeekdaySchedule:
    raw = value if isinstance(value, dict) else {}
    start = _sanitize_time(raw.get("start", attendance_rules.DEFAULT_START))
    end = _sanitize_time(raw.get("end", attendance_rules.DEFAULT_END))
    break_value = raw.get("breakMinutes")
    if break_value is None:
        break_value = raw.get("unpaidBreakMinutes")
    break_minutes = _clamp_minutes(break_value) if break_value is not None else attendance_rules.DEFAULT_BREAK_MINUTES
    return WeekdaySchedule(
        enabled=bool(raw.get("enabled")),
        start=start,
        end=end,
        break_minutes=break_minutes,
        expected_hours=compute_expected_hours(start, end, break_minutes, raw.get("expectedHours")),
    )


def ensure_schedule(schedule: Any) -> EmployeeSchedule:
    """
    Coerce any stored or submitted schedule into seven weekday entries.

    Accepts ``{"timeZone": ..., "days": {...}}`` or a bare weekday map.
    Missing days come back disabled.
    """
    source = schedule if isinstance(schedule, dict) else {}
    time_zone = source.get("timeZone")
    if not isinstance(time_zone, str) or not time_zone.strip():
        time_zone = attendance_rules.TIME_ZONE
    days_source = source.get("days") if isinstance(source.get("days"), dict) else source
    return EmployeeSchedule(
        time_zone=time_zone.strip(),
        days={key: normalize_day(days_source.get(key)) for key in WEEKDAY_KEYS},
    )


def serialize_schedule(schedule: EmployeeSchedule) -> dict:
    return schedule.model_dump(mode="json", by_alias=True)
