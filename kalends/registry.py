"""
kalends.registry
================

An in-memory registry of :class:`kalends.models.WorkflowPeriod` records
keyed by ``(client_id, workflow_type, period_id)``.

Periods are created lazily: the first request for a quarter or accounts
period with no record builds one.  Only the standard library and the
engine modules are used, so it can be unit-tested without a database.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Union

from dateutil.relativedelta import relativedelta

from .buckets import DeadlineItem
from .dates import DateLike, calculate_accounts_due_from_year_end, calculate_non_ltd_filing_due, calculate_vat_quarter
from .exceptions import UnknownClientError
from .lifecycle import advance_stage
from .models import WorkflowHistoryEntry, WorkflowKey, WorkflowPeriod, WorkflowType
from .stages import StageLike, parse_stage, parse_workflow_type

logger = logging.getLogger(__name__)


def accounts_period_bounds(workflow_type: WorkflowType, year_end: date):
    """``(period_start, period_end, filing_due)`` of the accounts period ending *year_end*."""
    start = year_end - relativedelta(years=1) + timedelta(days=1)
    if workflow_type is WorkflowType.NON_LTD:
        due = calculate_non_ltd_filing_due(year_end)
    else:
        due = calculate_accounts_due_from_year_end(year_end)
    return start, year_end, due


class WorkflowRegistry:
    """
    Dictionary-backed registry of workflow periods.

    Example
    -------
    >>> reg = WorkflowRegistry()
    >>> q = reg.ensure_vat_quarter("acme", "2_5_8_11", date(2025, 3, 15))
    >>> q.period_id
    '2025-03-01_to_2025-05-31'
    >>> len(reg)
    1
    """

    def __init__(self, known_clients: Optional[Iterable[str]] = None) -> None:
        self._periods: Dict[WorkflowKey, WorkflowPeriod] = {}
        self._known = set(known_clients) if known_clients is not None else None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _check_client(self, client_id: str) -> None:
        if self._known is not None and client_id not in self._known:
            raise UnknownClientError(client_id)

    @staticmethod
    def _key(client_id: str, workflow_type, period_id: str) -> WorkflowKey:
        return (client_id, parse_workflow_type(workflow_type), period_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def add(self, period: WorkflowPeriod) -> None:
        """Insert or overwrite a period."""
        self._check_client(period.client_id)
        self._periods[period.key] = period

    def get(self, client_id: str, workflow_type, period_id: str) -> WorkflowPeriod:
        """Retrieve by key (raise KeyError if not present)."""
        return self._periods[self._key(client_id, workflow_type, period_id)]

    def get_or_create(
        self,
        client_id: str,
        workflow_type: Union[WorkflowType, str],
        period_id: str,
        period_start: date,
        period_end: date,
        filing_due: date,
    ) -> WorkflowPeriod:
        """Return the existing period or create an empty one on first access."""
        key = self._key(client_id, workflow_type, period_id)
        period = self._periods.get(key)
        if period is None:
            self._check_client(client_id)
            period = WorkflowPeriod(
                client_id=client_id,
                workflow_type=key[1],
                period_id=period_id,
                period_start=period_start,
                period_end=period_end,
                filing_due=filing_due,
            )
            self._periods[key] = period
            logger.info("created %s period %s for %s", key[1], period_id, client_id)
        return period

    def ensure_vat_quarter(self, client_id: str, quarter_group, reference: DateLike) -> WorkflowPeriod:
        """The VAT quarter open on *reference*, created if missing."""
        quarter = calculate_vat_quarter(quarter_group, reference)
        return self.get_or_create(
            client_id, WorkflowType.VAT, quarter.period_id,
            quarter.quarter_start, quarter.quarter_end, quarter.filing_due,
        )

    def ensure_accounts_period(
        self, client_id: str, workflow_type: Union[WorkflowType, str], year_end: date
    ) -> WorkflowPeriod:
        """The Ltd / Non-Ltd accounts period ending *year_end*, created if missing."""
        wf_type = parse_workflow_type(workflow_type)
        if wf_type is WorkflowType.VAT:
            raise ValueError("ensure_accounts_period needs LTD or NON_LTD, use ensure_vat_quarter for VAT")
        start, end, due = accounts_period_bounds(wf_type, year_end)
        return self.get_or_create(client_id, wf_type, f"{start.isoformat()}_to_{end.isoformat()}", start, end, due)

    def for_client(self, client_id: str, workflow_type=None) -> List[WorkflowPeriod]:
        """Periods of *client_id*, optionally one workflow type, oldest first."""
        wf_type = parse_workflow_type(workflow_type) if workflow_type is not None else None
        found = [
            p for p in self
            if p.client_id == client_id and (wf_type is None or p.workflow_type is wf_type)
        ]
        return sorted(found, key=lambda p: (p.workflow_type.name, p.period_start))

    def find_by_stage(self, workflow_type, stage: StageLike) -> List[WorkflowPeriod]:
        """All periods of *workflow_type* currently at *stage*."""
        target = parse_stage(workflow_type, stage)
        return [p for p in self if p.current_stage is target]

    def transition(
        self,
        client_id: str,
        workflow_type,
        period_id: str,
        to_stage: StageLike,
        actor_id: str,
        now: datetime,
        **kwargs,
    ) -> Optional[WorkflowHistoryEntry]:
        """Validate and apply a stage change; see :func:`kalends.lifecycle.advance_stage`."""
        period = self.get(client_id, workflow_type, period_id)
        return advance_stage(period, to_stage, actor_id, now, **kwargs)

    def assign(self, client_id: str, workflow_type, period_id: str, user_id: Optional[str]) -> WorkflowPeriod:
        """Set (or clear with ``None``) the period's assignee."""
        period = self.get(client_id, workflow_type, period_id)
        period.assigned_user_id = user_id
        period.version += 1
        return period

    def deadline_items(self) -> List[DeadlineItem]:
        """One :class:`DeadlineItem` per period, for the bucketing helpers."""
        return [
            DeadlineItem(
                client_id=p.client_id,
                kind=p.workflow_type.name,
                due_date=p.filing_due,
                is_completed=p.is_completed,
                assigned_user_id=p.assigned_user_id,
                label=p.period_id,
            )
            for p in self
        ]

    # ------------------------------------------------------------------
    # Dunder helpers for convenience
    # ------------------------------------------------------------------
    def __iter__(self) -> Iterator[WorkflowPeriod]:
        return iter(self._periods.values())

    def __len__(self) -> int:
        return len(self._periods)
