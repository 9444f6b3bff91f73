"""
tests/test_buckets.py
=====================

Unit tests for deadline bucketing.
"""

from datetime import date, datetime, timedelta

import pytest
from dateutil import tz

from kalends.buckets import (
    Bucket,
    DeadlineItem,
    breakdown_window,
    bucket,
    bucket_counts,
    deadline_breakdown,
    group_by_month,
    overdue_deadlines,
    upcoming_deadlines,
)

TODAY = date(2025, 6, 1)
NOW = datetime(2025, 6, 1, 14, 0)


def _item(client, offset, completed=False, kind="VAT"):
    return DeadlineItem(client, kind, TODAY + timedelta(days=offset), is_completed=completed)


@pytest.mark.parametrize("offset", range(-5, 101))
def test_two_tier_partition(offset):
    """Every due date lands in exactly the bucket its distance implies."""
    result = bucket(TODAY + timedelta(days=offset), NOW)
    if offset < 0:
        expected = Bucket.OVERDUE
    elif offset <= 7:
        expected = Bucket.DUE_SOON
    elif offset <= 30:
        expected = Bucket.UPCOMING
    else:
        expected = Bucket.NONE
    assert result is expected


@pytest.mark.parametrize("offset", range(-5, 101))
def test_five_tier_partition(offset):
    """First matching window wins; overdue and far future are excluded."""
    window = breakdown_window(TODAY + timedelta(days=offset), NOW)
    if offset < 0 or offset > 90:
        assert window is None
    else:
        assert window == min(w for w in (7, 15, 30, 60, 90) if offset <= w)


def test_completed_beats_dates():
    assert bucket(TODAY - timedelta(days=100), NOW, completed=True) is Bucket.COMPLETED
    assert bucket(None, NOW, completed=True) is Bucket.COMPLETED


def test_missing_due_date_unbucketed():
    assert bucket(None, NOW) is Bucket.NONE
    assert breakdown_window(None, NOW) is None


def test_custom_thresholds():
    assert bucket(TODAY + timedelta(days=10), NOW, due_soon_days=14) is Bucket.DUE_SOON
    assert bucket(TODAY + timedelta(days=40), NOW, upcoming_days=60) is Bucket.UPCOMING
    assert breakdown_window(TODAY + timedelta(days=3), NOW, windows=[30, 5]) == 5


def test_bucket_uses_london_calendar_across_bst():
    """00:30 BST on 31 March is still before a 31 March deadline passes."""
    now = datetime(2025, 3, 30, 23, 30, tzinfo=tz.UTC)
    assert bucket(date(2025, 3, 31), now) is Bucket.DUE_SOON
    assert bucket(date(2025, 3, 30), now) is Bucket.OVERDUE


def test_bucket_counts_has_every_key():
    items = [_item("a", -1), _item("b", 3), _item("c", 20), _item("d", 200), _item("e", -9, completed=True)]
    assert bucket_counts(items, NOW) == {
        "overdue": 1, "due_soon": 1, "upcoming": 1, "completed": 1, "none": 1,
    }


def test_deadline_breakdown_counts():
    items = [_item("a", 0), _item("b", 7), _item("c", 8), _item("d", 45), _item("e", 91),
             _item("f", -2), _item("g", 5, completed=True)]
    breakdown = deadline_breakdown(items, NOW)
    assert list(breakdown) == [7, 15, 30, 60, 90]
    assert dict(breakdown) == {7: 2, 15: 1, 30: 0, 60: 1, 90: 0}


def test_overdue_most_overdue_first():
    items = [_item("a", -1), _item("b", -10), _item("c", 2), _item("d", -5, completed=True)]
    assert [i.client_id for i in overdue_deadlines(items, NOW)] == ["b", "a"]


def test_upcoming_within_horizon():
    items = [_item("a", 12), _item("b", 0), _item("c", 31), _item("d", -1), _item("e", 3, completed=True)]
    assert [i.client_id for i in upcoming_deadlines(items, NOW)] == ["b", "a"]
    assert [i.client_id for i in upcoming_deadlines(items, NOW, days=5)] == ["b"]


def test_group_by_month():
    items = [_item("a", 40), _item("b", 0), _item("c", 5), DeadlineItem("d", "CT", None)]
    grouped = group_by_month(items)
    assert list(grouped) == ["2025-06", "2025-07"]
    assert [i.client_id for i in grouped["2025-06"]] == ["b", "c"]
