"""
Calendar helpers for the payroll pipeline.

All month and day boundaries are evaluated in the organization time zone.
Stored timestamps are naive UTC; calendar fields are local dates.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..config.attendance_rules import attendance_rules
from ..exceptions import InvalidMonthKeyError, InvalidPayDateError

MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")

CENTS = Decimal("0.01")


def quantize_amount(value) -> Decimal:
    """Round money or hours to two decimals, half up."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def org_zone() -> ZoneInfo:
    return attendance_rules.zone


def parse_month_key(month_key: str) -> Tuple[int, int]:
    match = MONTH_KEY_RE.match(month_key or "")
    if not match:
        raise InvalidMonthKeyError(month_key)
    year, month = int(match.group(1)), int(match.group(2))
    if month < 1 or month > 12:
        raise InvalidMonthKeyError(month_key)
    return year, month


def format_month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_key_for(day: date) -> str:
    return format_month_key(day.year, day.month)


def month_range(month_key: str) -> Tuple[date, date]:
    """Inclusive first and last local dates of the month."""
    year, month = parse_month_key(month_key)
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def previous_month_key(month_key: str) -> str:
    year, month = parse_month_key(month_key)
    return format_month_key(*shift_month(year, month, -1))


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_keys_between(start: date, end: date) -> List[str]:
    """Every month key touched by the range, in either order."""
    if end < start:
        start, end = end, start
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(format_month_key(year, month))
        year, month = shift_month(year, month, 1)
    return keys


def to_local(moment: datetime, zone: Optional[ZoneInfo] = None) -> datetime:
    """Convert a naive-UTC or aware timestamp into the organization zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone or org_zone())


def local_date_of(moment: datetime, zone: Optional[ZoneInfo] = None) -> date:
    return to_local(moment, zone).date()


def local_range_to_utc_bounds(
    start: date, end: date, zone: Optional[ZoneInfo] = None
) -> Tuple[datetime, datetime]:
    """Naive UTC bounds ``[start 00:00, day after end 00:00)`` of a local date range."""
    tz = zone or org_zone()
    start_local = datetime.combine(start, time.min, tzinfo=tz)
    end_local = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def payroll_day_bounds(
    moment: datetime, zone: Optional[ZoneInfo] = None
) -> Tuple[datetime, datetime]:
    """Start and end (exclusive) of the local day containing ``moment``."""
    tz = zone or org_zone()
    day = local_date_of(moment, tz)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def month_key_for_moment(moment: datetime, zone: Optional[ZoneInfo] = None) -> str:
    return month_key_for(local_date_of(moment, zone))


def local_today(zone: Optional[ZoneInfo] = None) -> date:
    return datetime.now(zone or org_zone()).date()


# Pay periods


@dataclass(frozen=True)
class PayPeriod:
    period_key: str
    period_start: date
    period_end: date
    pay_date: date

    @property
    def month_key(self) -> str:
        return self.period_key[:7]

    @property
    def total_days(self) -> int:
        return (self.period_end - self.period_start).days + 1


def resolve_pay_period(pay_date: date) -> PayPeriod:
    """
    Map a pay date to the semi-monthly window it closes.

    The 15th pays the prior month's 16th through month end (``-B``); the
    last day of a month pays that month's 1st through 15th (``-A``).
    """
    last_day = calendar.monthrange(pay_date.year, pay_date.month)[1]
    if pay_date.day == 15:
        year, month = shift_month(pay_date.year, pay_date.month, -1)
        month_end = calendar.monthrange(year, month)[1]
        return PayPeriod(
            period_key=f"{format_month_key(year, month)}-B",
            period_start=date(year, month, 16),
            period_end=date(year, month, month_end),
            pay_date=pay_date,
        )
    if pay_date.day == last_day:
        return PayPeriod(
            period_key=f"{format_month_key(pay_date.year, pay_date.month)}-A",
            period_start=date(pay_date.year, pay_date.month, 1),
            period_end=date(pay_date.year, pay_date.month, 15),
            pay_date=pay_date,
        )
    raise InvalidPayDateError(pay_date)


def period_keys_for_month(month_key: str) -> Tuple[str, str]:
    parse_month_key(month_key)
    return f"{month_key}-A", f"{month_key}-B"


# Bonus calendar


def monthly_bonus_pay_date(
    month_key: str, computed_at: date, zone: Optional[ZoneInfo] = None
) -> date:
    """
    15th of the following month, pushed one cycle when computed after it starts.

    ``computed_at`` is either a moment (naive UTC or aware), compared against
    local midnight of the 15th, or a local date, which is past once the 15th
    itself is reached.
    """
    year, month = parse_month_key(month_key)
    pay_date = date(*shift_month(year, month, 1), 15)
    if isinstance(computed_at, datetime):
        pay_start, _ = local_range_to_utc_bounds(pay_date, pay_date, zone)
        late = to_local(computed_at, timezone.utc).replace(tzinfo=None) > pay_start
    else:
        late = computed_at >= pay_date
    if late:
        pay_date = date(*shift_month(year, month, 2), 15)
    return pay_date


def quarter_of(month: int) -> int:
    return (month - 1) // 3 + 1


def is_quarter_end(month_key: str) -> bool:
    _, month = parse_month_key(month_key)
    return month % 3 == 0


def quarter_key(month_key: str) -> str:
    year, month = parse_month_key(month_key)
    return f"{year:04d}-Q{quarter_of(month)}"


def quarter_month_keys(month_key: str) -> List[str]:
    year, month = parse_month_key(month_key)
    first = (quarter_of(month) - 1) * 3 + 1
    return [format_month_key(year, m) for m in range(first, first + 3)]


def quarterly_bonus_pay_date(month_key: str) -> date:
    """15th of the month after the quarter closes."""
    year, month = parse_month_key(month_key)
    last = quarter_of(month) * 3
    return date(*shift_month(year, last, 1), 15)
