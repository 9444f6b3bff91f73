"""
kalends.ct_tracking
===================

Corporation Tax due-date policy.

The CT due date is derived from the year end, but a stored value must
not be silently overwritten when:

* an accountant has pinned it manually (``source == MANUAL``), or
* the previous period is still ``PENDING`` and a Companies House refresh
  would move the deadline by more than the warning threshold.

All functions return new :class:`~kalends.models.CTTrackingState`
objects; the caller persists them.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from .dates import DateLike, calculate_ct_due_from_year_end, calculate_year_end, london_date
from .models import CompanyFacts, CTDueSource, CTStatus, CTTrackingState, CTUpdateDecision
from .settings import settings

logger = logging.getLogger(__name__)

__all__ = [
    "calculate_ct_due_from_year_end",
    "get_status",
    "should_update_ct_due",
    "mark_as_filed",
    "set_manual_override",
    "reset_to_auto",
    "ct_tracking_summary",
    "refresh_ct_tracking",
]


def get_status(state: CTTrackingState, now: DateLike) -> CTStatus:
    """
    Effective status at *now*.

    ``FILED`` sticks until it is explicitly reset; otherwise the period is
    ``OVERDUE`` once its due date has passed, else ``PENDING``.
    """
    if state.status is CTStatus.FILED:
        return CTStatus.FILED
    if state.due_date is None:
        return CTStatus.PENDING
    return CTStatus.OVERDUE if state.due_date < london_date(now) else CTStatus.PENDING


def should_update_ct_due(
    state: CTTrackingState,
    new_year_end: date,
    companies_house_changed: bool = False,
    *,
    threshold_days: Optional[int] = None,
) -> CTUpdateDecision:
    """
    Decide whether an automatically recomputed CT due date may replace
    the stored one.

    Refusals come back with ``apply=False`` and a warning; they are never
    raised.
    """
    threshold = settings.ct_warning_threshold_days if threshold_days is None else threshold_days
    new_due = calculate_ct_due_from_year_end(new_year_end)

    if state.source is CTDueSource.MANUAL:
        logger.info("CT auto-update skipped: manual override %s", state.manual_override or state.due_date)
        return CTUpdateDecision(
            apply=False,
            reason="Manual override active",
            warnings=["Manual CT due override exists - auto-update skipped"],
        )

    if state.status is CTStatus.PENDING and state.due_date is not None and companies_house_changed:
        delta = abs((new_due - state.due_date).days)
        if delta > threshold:
            warning = (
                f"Previous CT period (due {state.due_date:%d/%m/%Y}) is still PENDING. "
                f"New calculation would be {new_due:%d/%m/%Y}. "
                "Please verify if previous CT was filed before updating."
            )
            logger.warning("CT auto-update refused: %s", warning)
            return CTUpdateDecision(
                apply=False,
                reason="Previous CT period still pending with significant date change",
                warnings=[warning],
            )

    return CTUpdateDecision(
        apply=True,
        reason="Safe to update CT due date",
        new_due_date=new_due,
        new_period_start=new_year_end - relativedelta(years=1) + timedelta(days=1),
        new_period_end=new_year_end,
    )


def mark_as_filed(
    state: CTTrackingState,
    actor_id: str,
    now: datetime,
    next_year_end: Optional[date] = None,
) -> CTTrackingState:
    """
    Record the CT return as filed.

    Any manual override is cleared and the source returns to ``AUTO``.
    With *next_year_end* the following period's dates are filled in so
    the obligation rolls straight forward; without it they are left
    unset until the next year end is known.
    """
    due = period_start = period_end = None
    if next_year_end is not None:
        due = calculate_ct_due_from_year_end(next_year_end)
        period_start = state.period_end + timedelta(days=1) if state.period_end else None
        period_end = next_year_end
    logger.info("CT marked filed by %s (next due %s)", actor_id, due)
    return replace(
        state,
        status=CTStatus.FILED,
        due_date=due,
        period_start=period_start,
        period_end=period_end,
        manual_override=None,
        source=CTDueSource.AUTO,
        last_updated=now,
        updated_by=actor_id,
    )


def set_manual_override(
    state: CTTrackingState, due_date: date, actor_id: str, now: datetime
) -> CTTrackingState:
    """Pin the CT due date; auto-updates are refused until :func:`reset_to_auto`."""
    logger.info("CT due manually set to %s by %s", due_date, actor_id)
    return replace(
        state,
        due_date=due_date,
        manual_override=due_date,
        source=CTDueSource.MANUAL,
        last_updated=now,
        updated_by=actor_id,
    )


def reset_to_auto(
    state: CTTrackingState, year_end: date, actor_id: str, now: datetime
) -> CTTrackingState:
    """Drop a manual override and recompute the due date from *year_end*."""
    due = calculate_ct_due_from_year_end(year_end)
    logger.info("CT due reset to auto (%s) by %s", due, actor_id)
    return replace(
        state,
        due_date=due,
        manual_override=None,
        source=CTDueSource.AUTO,
        last_updated=now,
        updated_by=actor_id,
    )


def ct_tracking_summary(state: CTTrackingState, now: DateLike) -> Dict[str, object]:
    """Display-ready view of *state*: status, due date, source, period and warnings."""
    status = get_status(state, now)
    warnings: List[str] = []
    if status is CTStatus.OVERDUE:
        warnings.append("Corporation Tax is overdue")
    if state.source is CTDueSource.MANUAL:
        warnings.append("CT due date has been manually overridden")

    def _fmt(d: Optional[date]) -> str:
        return d.strftime("%d %b %Y") if d else "Not set"

    if state.period_start and state.period_end:
        period = f"{_fmt(state.period_start)} to {_fmt(state.period_end)}"
    else:
        period = "Period not set"
    return {
        "status": status.name,
        "due_date": _fmt(state.due_date),
        "source": state.source.name,
        "period": period,
        "warnings": warnings,
    }


def refresh_ct_tracking(
    state: CTTrackingState,
    facts: CompanyFacts,
    today: DateLike,
    companies_house_changed: bool = False,
) -> Tuple[CTTrackingState, Optional[CTUpdateDecision]]:
    """
    Re-derive the year end from *facts* and apply the CT due date if the
    policy allows it.

    Returns the (possibly unchanged) state and the decision; the decision
    is ``None`` when no year end can be determined.
    """
    year_end = calculate_year_end(facts, today)
    if year_end is None:
        return state, None
    decision = should_update_ct_due(state, year_end, companies_house_changed)
    if not decision.apply:
        return state, decision
    return (
        replace(
            state,
            due_date=decision.new_due_date,
            period_start=decision.new_period_start,
            period_end=decision.new_period_end,
        ),
        decision,
    )
