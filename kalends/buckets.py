"""
kalends.buckets
===============

Deadline bucketing for dashboards.

Two views over the same due dates:

* the two-tier dashboard view: overdue / due soon (0-7 days) /
  upcoming (8-30 days), everything later unbucketed;
* the five-tier breakdown: 7/15/30/60/90-day windows, first matching
  window wins, overdue and far-future dates excluded.

A completed obligation is ``COMPLETED`` whatever its due date says.
"""

from __future__ import annotations

from collections import Counter, OrderedDict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .dates import DateLike, days_until
from .settings import settings


class Bucket(Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DeadlineItem:
    """One dated obligation for one client (a VAT return, accounts, CT600 ...)."""
    client_id: str
    kind: str
    due_date: Optional[date]
    is_completed: bool = False
    assigned_user_id: Optional[str] = None
    label: Optional[str] = None


def bucket(
    due_date: Optional[DateLike],
    now: DateLike,
    *,
    completed: bool = False,
    due_soon_days: Optional[int] = None,
    upcoming_days: Optional[int] = None,
) -> Bucket:
    """
    Two-tier bucket of *due_date* at *now*.

    Parameters
    ----------
    due_date : date or datetime or None
        ``None`` (not set) is never bucketed.
    now : date or datetime
        Reduced to its London calendar day.
    completed : bool, default False
        Workflow completion wins over any date comparison.
    due_soon_days, upcoming_days : int, optional
        Inclusive upper bounds; default to the configured 7 and 30.
    """
    if completed:
        return Bucket.COMPLETED
    if due_date is None:
        return Bucket.NONE
    soon = settings.due_soon_days if due_soon_days is None else due_soon_days
    upcoming = settings.upcoming_days if upcoming_days is None else upcoming_days

    days = days_until(due_date, now)
    if days < 0:
        return Bucket.OVERDUE
    if days <= soon:
        return Bucket.DUE_SOON
    if days <= upcoming:
        return Bucket.UPCOMING
    return Bucket.NONE


def breakdown_window(
    due_date: Optional[DateLike], now: DateLike, windows: Optional[Sequence[int]] = None
) -> Optional[int]:
    """The smallest window (in days) containing *due_date*, or ``None``."""
    if due_date is None:
        return None
    days = days_until(due_date, now)
    if days < 0:
        return None
    for window in sorted(settings.breakdown_windows if windows is None else windows):
        if days <= window:
            return window
    return None


# ---------------------------------------------------------------------
# Collections of deadlines
# ---------------------------------------------------------------------
def bucket_counts(items: Iterable[DeadlineItem], now: DateLike, **thresholds) -> Dict[str, int]:
    """Item count per two-tier bucket; every bucket key is present."""
    counts = Counter(
        bucket(i.due_date, now, completed=i.is_completed, **thresholds) for i in items
    )
    return {b.value: counts.get(b, 0) for b in Bucket}


def deadline_breakdown(
    items: Iterable[DeadlineItem], now: DateLike, windows: Optional[Sequence[int]] = None
) -> "OrderedDict[int, int]":
    """Open item count per breakdown window, windows ascending."""
    ordered = sorted(settings.breakdown_windows if windows is None else windows)
    result: "OrderedDict[int, int]" = OrderedDict((w, 0) for w in ordered)
    for item in items:
        if item.is_completed:
            continue
        window = breakdown_window(item.due_date, now, ordered)
        if window is not None:
            result[window] += 1
    return result


def upcoming_deadlines(
    items: Iterable[DeadlineItem], now: DateLike, days: Optional[int] = None
) -> List[DeadlineItem]:
    """Open items due between today and *days* ahead, soonest first."""
    horizon = settings.upcoming_days if days is None else days
    found = [
        i for i in items
        if not i.is_completed and i.due_date is not None and 0 <= days_until(i.due_date, now) <= horizon
    ]
    return sorted(found, key=lambda i: (i.due_date, i.client_id))


def overdue_deadlines(items: Iterable[DeadlineItem], now: DateLike) -> List[DeadlineItem]:
    """Open items past due, most overdue first."""
    found = [
        i for i in items
        if not i.is_completed and i.due_date is not None and days_until(i.due_date, now) < 0
    ]
    return sorted(found, key=lambda i: (i.due_date, i.client_id))


def group_by_month(items: Iterable[DeadlineItem]) -> "OrderedDict[str, List[DeadlineItem]]":
    """Items with a due date keyed ``YYYY-MM``, months ascending."""
    dated = sorted((i for i in items if i.due_date is not None), key=lambda i: (i.due_date, i.client_id))
    grouped: "OrderedDict[str, List[DeadlineItem]]" = OrderedDict()
    for item in dated:
        grouped.setdefault(f"{item.due_date:%Y-%m}", []).append(item)
    return grouped
