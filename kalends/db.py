"""
kalends.db
==========

SQLite persistence layer for kalends.

This module exposes:

* ``engine`` - a global SQLModel engine built from :pydata:`kalends.settings.DB_URL`
* ``SessionLocal`` - a session factory used via ``with SessionLocal() as s:``
* ``create_all()`` - helper to create tables at first run
* ORM rows mirroring :class:`~kalends.models.WorkflowPeriod`, its history
  and :class:`~kalends.models.CTTrackingState`, with converters both ways

Datetimes are bound as aware UTC into ``DateTime(timezone=True)`` columns and
always come back timezone-aware, whatever the backend returns.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from dateutil import tz
from sqlalchemy import JSON, Column, DateTime, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from kalends.dates import LONDON
from kalends.models import (
    CTDueSource,
    CTStatus,
    CTTrackingState,
    Milestone,
    MilestoneStamp,
    WorkflowHistoryEntry,
    WorkflowPeriod,
    WorkflowType,
)
from kalends.settings import DB_ECHO, DB_URL
from kalends.stages import parse_stage

# ---------------------------------------------------------------------------
# Engine (SQLite file lives in project root unless KALENDS_DB_FILE says otherwise)
# ---------------------------------------------------------------------------
engine = create_engine(DB_URL, echo=DB_ECHO, connect_args={"check_same_thread": False})


# ---------------------------------------------------------------------------
# Session factory
# ---------------------------------------------------------------------------
def SessionLocal() -> Session:  # noqa: N802 (factory camel-case for consistency with FastAPI docs)
    """Return a new Session bound to the global engine."""
    return Session(engine)


# ---------------------------------------------------------------------------
# Datetime helpers
# ---------------------------------------------------------------------------
def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Aware (or London wall-clock naive) datetime -> aware UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=LONDON)
    return value.astimezone(tz.UTC)


def from_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Value read back from the database -> aware UTC.

    SQLite drops the offset on the way out, so naive values are UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=tz.UTC)
    return value.astimezone(tz.UTC)


def period_row_id(client_id: str, workflow_type: WorkflowType, period_id: str) -> str:
    return f"{client_id}:{workflow_type.name}:{period_id}"


# ---------------------------------------------------------------------------
# ORM models
# ---------------------------------------------------------------------------
class WorkflowPeriodDB(SQLModel, table=True):
    """
    SQLite-backed representation of a :class:`kalends.models.WorkflowPeriod`.

    The primary key joins client, workflow type and period id so look-ups
    stay deterministic; ``version`` guards concurrent stage changes.
    """
    __tablename__ = "workflow_period"

    id: str = Field(primary_key=True, index=True)
    client_id: str = Field(index=True)
    workflow_type: WorkflowType
    period_id: str
    period_start: date
    period_end: date
    filing_due: date
    current_stage: Optional[str] = None
    is_completed: bool = False
    assigned_user_id: Optional[str] = Field(default=None, index=True)
    milestones: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    version: int = 0

    # ---------------------------------------------------------------------
    # Converters
    # ---------------------------------------------------------------------
    @staticmethod
    def dump_milestones(period: WorkflowPeriod) -> Dict[str, Any]:
        return {
            m.value: {"at": to_storage(stamp.at).isoformat(), "actor_id": stamp.actor_id}
            for m, stamp in period.milestones.items()
        }

    @classmethod
    def from_period(cls, period: WorkflowPeriod) -> "WorkflowPeriodDB":
        """Create a DB row from an in-memory period (history is stored separately)."""
        return cls(
            id=period_row_id(period.client_id, period.workflow_type, period.period_id),
            client_id=period.client_id,
            workflow_type=period.workflow_type,
            period_id=period.period_id,
            period_start=period.period_start,
            period_end=period.period_end,
            filing_due=period.filing_due,
            current_stage=period.current_stage.name if period.current_stage else None,
            is_completed=period.is_completed,
            assigned_user_id=period.assigned_user_id,
            milestones=cls.dump_milestones(period),
            version=period.version,
        )

    def to_period(self, history: Optional[List["WorkflowHistoryDB"]] = None) -> WorkflowPeriod:
        """Convert the DB row (plus its ordered history rows) back into a WorkflowPeriod."""
        milestones = {
            Milestone(key): MilestoneStamp(
                at=from_storage(datetime.fromisoformat(raw["at"])), actor_id=raw["actor_id"]
            )
            for key, raw in (self.milestones or {}).items()
        }
        return WorkflowPeriod(
            client_id=self.client_id,
            workflow_type=self.workflow_type,
            period_id=self.period_id,
            period_start=self.period_start,
            period_end=self.period_end,
            filing_due=self.filing_due,
            current_stage=parse_stage(self.workflow_type, self.current_stage) if self.current_stage else None,
            is_completed=self.is_completed,
            assigned_user_id=self.assigned_user_id,
            milestones=milestones,
            history=[row.to_entry(self.workflow_type) for row in history or []],
            version=self.version,
        )


class WorkflowHistoryDB(SQLModel, table=True):
    """Append-only stage change row; ``seq`` orders entries within a period."""
    __tablename__ = "workflow_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    period_key: str = Field(foreign_key="workflow_period.id", index=True)
    seq: int
    from_stage: Optional[str] = None
    to_stage: str
    actor_id: str
    changed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    days_in_previous_stage: int = 0
    notes: Optional[str] = None

    @classmethod
    def from_entry(cls, period_key: str, seq: int, entry: WorkflowHistoryEntry) -> "WorkflowHistoryDB":
        return cls(
            period_key=period_key,
            seq=seq,
            from_stage=entry.from_stage.name if entry.from_stage else None,
            to_stage=entry.to_stage.name,
            actor_id=entry.actor_id,
            changed_at=to_storage(entry.changed_at),
            days_in_previous_stage=entry.days_in_previous_stage,
            notes=entry.notes,
        )

    def to_entry(self, workflow_type: WorkflowType) -> WorkflowHistoryEntry:
        return WorkflowHistoryEntry(
            from_stage=parse_stage(workflow_type, self.from_stage) if self.from_stage else None,
            to_stage=parse_stage(workflow_type, self.to_stage),
            actor_id=self.actor_id,
            changed_at=from_storage(self.changed_at),
            days_in_previous_stage=self.days_in_previous_stage,
            notes=self.notes,
        )


class CTTrackingDB(SQLModel, table=True):
    """Stored Corporation Tax tracking fields, one row per client."""
    __tablename__ = "ct_tracking"

    client_id: str = Field(primary_key=True)
    status: CTStatus = CTStatus.PENDING
    due_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    source: CTDueSource = CTDueSource.AUTO
    manual_override: Optional[date] = None
    last_updated: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_by: Optional[str] = None

    @classmethod
    def from_state(cls, client_id: str, state: CTTrackingState) -> "CTTrackingDB":
        return cls(
            client_id=client_id,
            status=state.status,
            due_date=state.due_date,
            period_start=state.period_start,
            period_end=state.period_end,
            source=state.source,
            manual_override=state.manual_override,
            last_updated=to_storage(state.last_updated),
            updated_by=state.updated_by,
        )

    def to_state(self) -> CTTrackingState:
        return CTTrackingState(
            status=self.status,
            due_date=self.due_date,
            period_start=self.period_start,
            period_end=self.period_end,
            source=self.source,
            manual_override=self.manual_override,
            last_updated=from_storage(self.last_updated),
            updated_by=self.updated_by,
        )


# ---------------------------------------------------------------------------
# Convenience CRUD helpers
# ---------------------------------------------------------------------------
def history_rows(s: Session, row_id: str) -> List[WorkflowHistoryDB]:
    stmt = select(WorkflowHistoryDB).where(WorkflowHistoryDB.period_key == row_id).order_by(WorkflowHistoryDB.seq)
    return list(s.exec(stmt).all())


def commit(s: Session) -> None:
    """Commit, rolling back first if the flush fails so the session stays usable."""
    try:
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        raise


def upsert_period(s: Session, period: WorkflowPeriod) -> None:
    """Insert or overwrite a period row; its stored history is replaced by *period.history*."""
    row = WorkflowPeriodDB.from_period(period)
    s.merge(row)
    s.execute(delete(WorkflowHistoryDB).where(WorkflowHistoryDB.period_key == row.id))
    for seq, entry in enumerate(period.history):
        s.add(WorkflowHistoryDB.from_entry(row.id, seq, entry))
    commit(s)


def insert_period(s: Session, period: WorkflowPeriod) -> None:
    """Insert a period that must not exist yet (``IntegrityError`` otherwise)."""
    row = WorkflowPeriodDB.from_period(period)
    s.add(row)
    for seq, entry in enumerate(period.history):
        s.add(WorkflowHistoryDB.from_entry(row.id, seq, entry))
    commit(s)


def get_period(s: Session, client_id: str, workflow_type: WorkflowType, period_id: str) -> Optional[WorkflowPeriod]:
    """Return a period with its history, or *None* if missing."""
    row_id = period_row_id(client_id, workflow_type, period_id)
    row = s.get(WorkflowPeriodDB, row_id)
    return row.to_period(history_rows(s, row_id)) if row else None


def all_periods(s: Session) -> List[WorkflowPeriod]:
    """Return every period in the database, history included."""
    rows = s.exec(select(WorkflowPeriodDB)).all()
    return [row.to_period(history_rows(s, row.id)) for row in rows]


def save_ct_tracking(s: Session, client_id: str, state: CTTrackingState) -> None:
    """Insert or update a client's CT tracking row."""
    s.merge(CTTrackingDB.from_state(client_id, state))
    commit(s)


def get_ct_tracking(s: Session, client_id: str) -> Optional[CTTrackingState]:
    row = s.get(CTTrackingDB, client_id)
    return row.to_state() if row else None


# ---------------------------------------------------------------------------
# Utility: create tables
# ---------------------------------------------------------------------------
def create_all(bind=None) -> None:
    """Create all kalends tables on *bind* (the global engine by default)."""
    SQLModel.metadata.create_all(bind or engine)
