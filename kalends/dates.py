"""
kalends.dates
=============

Pure UK statutory date arithmetic.

Every function here is deterministic: "today" / "now" is always an
argument, never read from the clock.  Datetimes are reduced to their
civil date in the Europe/London calendar before they are compared, so
a deadline never moves by a day around a BST transition.

Month arithmetic uses :class:`dateutil.relativedelta.relativedelta`,
which clamps to the last valid day (31 Jan + 1 month -> 28/29 Feb).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

from dateutil import tz
from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, FR, MO, TH, TU, WE, rrule

from .models import CompanyFacts, StatutoryDates, VATQuarter, VATQuarterGroup
from .settings import settings

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

LONDON = tz.gettz(settings.timezone)

NON_LTD_YEAR_END_DAY = 5
NON_LTD_YEAR_END_MONTH = 4


# ---------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------
def london_date(value: DateLike) -> date:
    """
    Civil date of *value* in London.

    Aware datetimes are converted first; naive datetimes are taken to be
    London wall-clock already; plain dates pass through unchanged.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(LONDON)
        return value.date()
    return value


def add_months(d: date, months: int) -> date:
    """Calendar-month addition, clamped to the end of a short month."""
    return d + relativedelta(months=months)


def end_of_month(year: int, month: int) -> date:
    """Last calendar day of *month* in *year*."""
    return date(year, month, 1) + relativedelta(day=31)


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole London calendar days from *start* to *end* (negative if *end* is earlier)."""
    return (london_date(end) - london_date(start)).days


def business_days_between(start: DateLike, end: DateLike) -> int:
    """Weekdays from *start* to *end*, both ends inclusive."""
    first, last = london_date(start), london_date(end)
    if last < first:
        return 0
    return rrule(DAILY, dtstart=first, until=last, byweekday=(MO, TU, WE, TH, FR)).count()


def is_overdue(due_date: DateLike, now: DateLike) -> bool:
    """True once the London calendar day of *now* is after *due_date*."""
    return london_date(now) > london_date(due_date)


def days_until(due_date: DateLike, now: DateLike) -> int:
    """Days left until *due_date*; 0 on the day, negative once overdue."""
    return days_between(now, due_date)


# ---------------------------------------------------------------------
# Year end, accounts and Corporation Tax
# ---------------------------------------------------------------------
def _first_year_end(facts: CompanyFacts, min_months: int, max_months: int) -> date:
    """
    First year end for a company that has never filed.

    The reference date in the incorporation year is used unless it falls
    before incorporation or less than *min_months* after it, in which
    case it rolls forward a year.
    """
    incorporated = facts.incorporation_date
    ard = facts.accounting_reference_date
    candidate = ard.in_year(incorporated.year)
    if candidate <= incorporated or candidate < incorporated + relativedelta(months=min_months):
        candidate = ard.in_year(incorporated.year + 1)
    if candidate > incorporated + relativedelta(months=max_months):
        logger.warning(
            "first period %s -> %s is longer than %d months", incorporated, candidate, max_months
        )
    return candidate


def _next_occurrence(ard, today: date) -> date:
    candidate = ard.in_year(today.year)
    if candidate <= today:
        candidate = ard.in_year(today.year + 1)
    return candidate


def calculate_year_end(
    facts: CompanyFacts,
    today: Optional[DateLike] = None,
    *,
    min_months: Optional[int] = None,
    max_months: Optional[int] = None,
) -> Optional[date]:
    """
    Year end of the company's current accounting period.

    Priority
    --------
    1. ``last_accounts_made_up_to`` + 1 calendar year;
    2. the Companies House reported ``next_year_end``, verbatim;
    3. first-time filer: reference day/month after incorporation, held
       to the 6-18 month first-period rule;
    4. the nearest future occurrence of the reference day/month (needs
       *today*).

    Returns ``None`` when nothing usable is available.  Callers must
    surface that as "not set".
    """
    min_months = settings.first_period_min_months if min_months is None else min_months
    max_months = settings.first_period_max_months if max_months is None else max_months

    if facts.last_accounts_made_up_to is not None:
        return facts.last_accounts_made_up_to + relativedelta(years=1)

    if facts.next_year_end is not None:
        return facts.next_year_end

    ard = facts.accounting_reference_date
    if ard is None:
        return None

    if facts.incorporation_date is not None:
        return _first_year_end(facts, min_months, max_months)

    if today is None:
        logger.debug("year end needs a reference day but no 'today' was supplied")
        return None
    return _next_occurrence(ard, london_date(today))


def calculate_ct_due_from_year_end(year_end: date) -> date:
    """CT600 filing deadline: exactly 12 calendar months after the year end."""
    return year_end + relativedelta(months=12)


def calculate_accounts_due_from_year_end(year_end: date) -> date:
    """Annual accounts deadline: 9 calendar months after the year end."""
    return year_end + relativedelta(months=9)


def calculate_accounts_due(facts: CompanyFacts, today: Optional[DateLike] = None) -> Optional[date]:
    """Accounts due for the current period, or ``None`` if the year end is unknown."""
    year_end = calculate_year_end(facts, today)
    return calculate_accounts_due_from_year_end(year_end) if year_end else None


def calculate_ct_due(facts: CompanyFacts, today: Optional[DateLike] = None) -> Optional[date]:
    """CT due for the current period, or ``None`` if the year end is unknown."""
    year_end = calculate_year_end(facts, today)
    return calculate_ct_due_from_year_end(year_end) if year_end else None


def calculate_all_statutory_dates(facts: CompanyFacts, today: Optional[DateLike] = None) -> StatutoryDates:
    """Year end, accounts due and CT due in one pass."""
    year_end = calculate_year_end(facts, today)
    if year_end is None:
        return StatutoryDates(year_end=None, accounts_due=None, ct_due=None)
    return StatutoryDates(
        year_end=year_end,
        accounts_due=calculate_accounts_due_from_year_end(year_end),
        ct_due=calculate_ct_due_from_year_end(year_end),
    )


def calculate_ct_period(
    facts: CompanyFacts, today: Optional[DateLike] = None
) -> Tuple[Optional[date], Optional[date]]:
    """
    ``(period_start, period_end)`` of the CT accounting period.

    From the last accounts when known (the day after, to one year on),
    otherwise from the reference date's next occurrence.
    """
    last = facts.last_accounts_made_up_to
    if last is not None:
        return last + timedelta(days=1), last + relativedelta(years=1)
    if facts.accounting_reference_date is not None and today is not None:
        end = _next_occurrence(facts.accounting_reference_date, london_date(today))
        return end - relativedelta(years=1) + timedelta(days=1), end
    return None, None


# ---------------------------------------------------------------------
# VAT quarters
# ---------------------------------------------------------------------
def _quarter_ending(group: VATQuarterGroup, year: int, month: int) -> VATQuarter:
    quarter_end = end_of_month(year, month)
    quarter_start = date(year, month, 1) - relativedelta(months=2)
    following = quarter_end + relativedelta(months=1)
    return VATQuarter(
        quarter_group=group,
        quarter_start=quarter_start,
        quarter_end=quarter_end,
        filing_due=end_of_month(following.year, following.month),
    )


def calculate_vat_quarter(quarter_group, reference_date: DateLike) -> VATQuarter:
    """
    The VAT quarter open on *reference_date* for *quarter_group*.

    The quarter ends on the first of the group's months at or after the
    reference month (rolling into next year past the last one); it
    starts on the 1st two months earlier and is due on the last day of
    the month after it ends.  Unknown groups raise
    :class:`~kalends.exceptions.UnknownQuarterGroupError`.
    """
    group = VATQuarterGroup.parse(quarter_group)
    ref = london_date(reference_date)
    for month in group.months:
        if ref.month <= month:
            return _quarter_ending(group, ref.year, month)
    return _quarter_ending(group, ref.year + 1, group.months[0])


def get_next_vat_quarter(quarter_group, current_quarter_end: DateLike) -> VATQuarter:
    """The quarter after the one ending on *current_quarter_end*."""
    return calculate_vat_quarter(quarter_group, add_months(london_date(current_quarter_end), 3))


def parse_quarter_period(period_id: str) -> Tuple[date, date]:
    """Split a ``YYYY-MM-DD_to_YYYY-MM-DD`` key into its two dates."""
    start, sep, end = period_id.partition("_to_")
    if not sep or not start or not end:
        raise ValueError(f"Invalid quarter period format: {period_id}")
    return date.fromisoformat(start), date.fromisoformat(end)


def format_quarter_period(quarter: VATQuarter) -> str:
    """``"Mar - May 2025"``, or ``"Dec 2024 - Feb 2025"`` across a year boundary."""
    start, end = quarter.quarter_start, quarter.quarter_end
    if start.year == end.year:
        return f"{start:%b} - {end:%b %Y}"
    return f"{start:%b %Y} - {end:%b %Y}"


# ---------------------------------------------------------------------
# Non-Ltd (sole trader / partnership) fixed calendar
# ---------------------------------------------------------------------
def calculate_non_ltd_year_end(tax_year: int) -> date:
    """Non-Ltd year end: 5 April of *tax_year*."""
    return date(tax_year, NON_LTD_YEAR_END_MONTH, NON_LTD_YEAR_END_DAY)


def calculate_non_ltd_filing_due(year_end: date) -> date:
    """Non-Ltd filing due: 9 months after the 5 April year end."""
    return year_end + relativedelta(months=9)


def current_non_ltd_tax_year(today: DateLike) -> int:
    """Year of the most recent 5 April year end on or before *today*."""
    day = london_date(today)
    if day < date(day.year, NON_LTD_YEAR_END_MONTH, NON_LTD_YEAR_END_DAY + 1):
        return day.year - 1
    return day.year
