"""
kalends.registry_db
===================

SQLite-backed implementation of the WorkflowRegistry public surface.

This adapter wraps the CRUD helpers in :pymod:`kalends.db` so that code
written against the in-memory :class:`~kalends.registry.WorkflowRegistry`
can switch to a persistent store without changing its calls.

Stage changes are re-validated against the row as stored at write time
and written with ``UPDATE ... WHERE version = :read_version``; if another
writer got there first no row matches and
:class:`~kalends.exceptions.StaleWorkflowError` is raised.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Iterator, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from kalends.db import (
    SessionLocal,
    WorkflowHistoryDB,
    WorkflowPeriodDB,
    all_periods,
    commit,
    get_period,
    insert_period,
    period_row_id,
    upsert_period,
)
from kalends.exceptions import StaleWorkflowError
from kalends.lifecycle import advance_stage
from kalends.models import WorkflowHistoryEntry, WorkflowPeriod
from kalends.registry import WorkflowRegistry
from kalends.stages import StageLike, parse_workflow_type

logger = logging.getLogger(__name__)


class DBWorkflowRegistry(WorkflowRegistry):
    """
    Drop-in replacement backed by SQLite.

    Methods mirror the in-memory WorkflowRegistry:
    * add(period) / get(...) / get_or_create(...)
    * ensure_vat_quarter(...) / ensure_accounts_period(...)
    * transition(...) / assign(...)
    * iteration / len()
    """

    def __init__(self, session: Optional[Session] = None, known_clients: Optional[Iterable[str]] = None) -> None:
        super().__init__(known_clients)
        self._session: Session = session or SessionLocal()

    # ------------------------------------------------------------------ CRUD
    def add(self, period: WorkflowPeriod) -> None:
        """Insert or overwrite a period, history included."""
        self._check_client(period.client_id)
        upsert_period(self._session, period)

    def get(self, client_id: str, workflow_type, period_id: str) -> WorkflowPeriod:
        period = get_period(self._session, client_id, parse_workflow_type(workflow_type), period_id)
        if period is None:
            raise KeyError((client_id, workflow_type, period_id))
        return period

    def get_or_create(self, client_id, workflow_type, period_id, period_start, period_end, filing_due) -> WorkflowPeriod:
        wf_type = parse_workflow_type(workflow_type)
        period = get_period(self._session, client_id, wf_type, period_id)
        if period is None:
            self._check_client(client_id)
            period = WorkflowPeriod(
                client_id=client_id,
                workflow_type=wf_type,
                period_id=period_id,
                period_start=period_start,
                period_end=period_end,
                filing_due=filing_due,
            )
            try:
                insert_period(self._session, period)
            except IntegrityError:
                # another writer created it between our read and insert
                return self.get(client_id, wf_type, period_id)
            logger.info("created %s period %s for %s", wf_type, period_id, client_id)
        return period

    # ------------------------------------------------------ versioned writes
    def _write(self, period: WorkflowPeriod, read_version: int, entry: Optional[WorkflowHistoryEntry] = None) -> None:
        row_id = period_row_id(period.client_id, period.workflow_type, period.period_id)
        stmt = (
            update(WorkflowPeriodDB)
            .where(col(WorkflowPeriodDB.id) == row_id, col(WorkflowPeriodDB.version) == read_version)
            .values(
                current_stage=period.current_stage.name if period.current_stage else None,
                is_completed=period.is_completed,
                assigned_user_id=period.assigned_user_id,
                milestones=WorkflowPeriodDB.dump_milestones(period),
                version=period.version,
            )
        )
        result = self._session.execute(stmt)
        if result.rowcount == 0:
            self._session.rollback()
            logger.warning("stale write on %s (read version %d)", row_id, read_version)
            raise StaleWorkflowError(f"{row_id} changed since version {read_version}")
        if entry is not None:
            self._session.add(WorkflowHistoryDB.from_entry(row_id, len(period.history) - 1, entry))
        commit(self._session)

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
        """Reload the stored period, validate against it, then write conditionally."""
        period = self.get(client_id, workflow_type, period_id)
        read_version = period.version
        entry = advance_stage(period, to_stage, actor_id, now, **kwargs)
        if entry is not None:
            self._write(period, read_version, entry)
        return entry

    def assign(self, client_id: str, workflow_type, period_id: str, user_id: Optional[str]) -> WorkflowPeriod:
        period = self.get(client_id, workflow_type, period_id)
        read_version = period.version
        period.assigned_user_id = user_id
        period.version += 1
        self._write(period, read_version)
        return period

    # ------------------------------------------------------ dunder helpers
    def __iter__(self) -> Iterator[WorkflowPeriod]:
        yield from all_periods(self._session)

    def __len__(self) -> int:
        return self._session.exec(select(func.count()).select_from(WorkflowPeriodDB)).one()

    # ----------------------------------------------------- context manager
    def __enter__(self) -> "DBWorkflowRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._session.close()
