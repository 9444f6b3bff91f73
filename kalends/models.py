"""
kalends.models
==============

Dataclasses and enums for the statutory deadline engine: company facts
fed in by the client record, the derived VAT quarter and CT tracking
state, and the per-period workflow record with its append-only history.

Like the rest of the core these objects carry no third-party
dependencies; persistence lives in :pymod:`kalends.db`.
"""

from __future__ import annotations

import json
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple, Union

from .exceptions import InvalidReferenceDateError, UnknownQuarterGroupError

if TYPE_CHECKING:  # pragma: no cover
    from .stages import WorkflowStage


class WorkflowType(Enum):
    """The three production workflows the firm runs."""
    VAT = "VAT"
    LTD = "LTD"
    NON_LTD = "NON_LTD"

    def __str__(self) -> str:
        return self.name


class VATQuarterGroup(Enum):
    """UK VAT stagger groups, named by the months their quarters end in."""
    JAN_APR_JUL_OCT = "1_4_7_10"
    FEB_MAY_AUG_NOV = "2_5_8_11"
    MAR_JUN_SEP_DEC = "3_6_9_12"

    @property
    def months(self) -> Tuple[int, ...]:
        """Quarter-end months in calendar order."""
        return tuple(int(m) for m in self.value.split("_"))

    @classmethod
    def parse(cls, value: Union["VATQuarterGroup", str, Tuple[int, ...], List[int]]) -> "VATQuarterGroup":
        """
        Resolve a stagger group from its enum, its ``"2_5_8_11"`` key, its
        member name, or the collection of its quarter-end months.

        Anything else raises :class:`UnknownQuarterGroupError`; a guessed
        default would put every filing date for the client out by a month.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip()
            for group in cls:
                if key == group.value or key.upper() == group.name:
                    return group
        elif isinstance(value, (list, tuple, set, frozenset)):
            try:
                months = tuple(sorted(int(m) for m in value))
            except (TypeError, ValueError):
                months = ()
            for group in cls:
                if months == group.months:
                    return group
        raise UnknownQuarterGroupError(
            f"Invalid quarter group: {value!r}. Expected one of "
            + ", ".join(repr(g.value) for g in cls)
        )


class CTStatus(Enum):
    """Corporation Tax filing status for the tracked period."""
    PENDING = "PENDING"
    FILED = "FILED"
    OVERDUE = "OVERDUE"

    def __str__(self) -> str:
        return self.name


class CTDueSource(Enum):
    """Where the stored CT due date came from."""
    AUTO = "AUTO"
    MANUAL = "MANUAL"

    def __str__(self) -> str:
        return self.name


class Milestone(Enum):
    """Named first-entry timestamps kept on every workflow period."""
    CHASE_STARTED = "chase_started"
    PAPERWORK_RECEIVED = "paperwork_received"
    WORK_STARTED = "work_started"
    MANAGER_REVIEW = "manager_review"
    PARTNER_REVIEW = "partner_review"
    SENT_TO_CLIENT = "sent_to_client"
    CLIENT_APPROVED = "client_approved"
    FILED_TO_COMPANIES_HOUSE = "filed_to_companies_house"
    FILED = "filed"


# ---------------------------------------------------------------------------
# Company facts
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class AccountingReferenceDate:
    """
    Companies House accounting reference date: a day/month pair.

    Parameters
    ----------
    day : int
        Day of month, 1-31.
    month : int
        Month, 1-12.
    """
    day: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise InvalidReferenceDateError(f"month out of range: {self.month}")
        # leap-year maximum so 29/02 stays a legal reference date
        if not 1 <= self.day <= monthrange(2000, self.month)[1]:
            raise InvalidReferenceDateError(f"day out of range for month {self.month}: {self.day}")

    @classmethod
    def parse(cls, value: Union["AccountingReferenceDate", str, Mapping]) -> "AccountingReferenceDate":
        """Accept ``"31/01"``, ``{"day": 31, "month": 1}`` or the Companies House JSON string."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("{"):
                try:
                    value = json.loads(text)
                except json.JSONDecodeError as exc:
                    raise InvalidReferenceDateError(f"unreadable reference date: {text!r}") from exc
            else:
                day, sep, month = text.partition("/")
                if not sep:
                    raise InvalidReferenceDateError(f"expected DD/MM, got {text!r}")
                value = {"day": day, "month": month}
        if isinstance(value, Mapping):
            try:
                return cls(day=int(value["day"]), month=int(value["month"]))
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidReferenceDateError(f"incomplete reference date: {value!r}") from exc
        raise InvalidReferenceDateError(f"unsupported reference date: {value!r}")

    def in_year(self, year: int) -> date:
        """The reference date in *year*; 29 February falls back to the 28th."""
        return date(year, self.month, min(self.day, monthrange(year, self.month)[1]))

    def __str__(self) -> str:
        return f"{self.day:02d}/{self.month:02d}"


@dataclass(frozen=True)
class CompanyFacts:
    """
    Immutable snapshot of the client record used for one calculation.

    Every field is optional: a missing fact narrows what can be derived,
    it is never replaced by a default.
    """
    incorporation_date: Optional[date] = None
    last_accounts_made_up_to: Optional[date] = None
    accounting_reference_date: Optional[AccountingReferenceDate] = None
    next_year_end: Optional[date] = None  # as reported by Companies House


@dataclass(frozen=True)
class StatutoryDates:
    """Year end plus the deadlines derived from it (``None`` = cannot determine)."""
    year_end: Optional[date]
    accounts_due: Optional[date]
    ct_due: Optional[date]


@dataclass(frozen=True)
class VATQuarter:
    """One VAT quarter for a stagger group."""
    quarter_group: VATQuarterGroup
    quarter_start: date
    quarter_end: date
    filing_due: date

    @property
    def period_id(self) -> str:
        """Stable key, e.g. ``2025-03-01_to_2025-05-31``."""
        return f"{self.quarter_start.isoformat()}_to_{self.quarter_end.isoformat()}"


# ---------------------------------------------------------------------------
# Corporation Tax tracking
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CTTrackingState:
    """
    Stored CT tracking fields for one client.

    ``source == MANUAL`` means an accountant pinned ``due_date``; the
    engine will not recompute it until :func:`kalends.ct_tracking.reset_to_auto`.
    """
    status: CTStatus = CTStatus.PENDING
    due_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    source: CTDueSource = CTDueSource.AUTO
    manual_override: Optional[date] = None
    last_updated: Optional[datetime] = None
    updated_by: Optional[str] = None


@dataclass(frozen=True)
class CTUpdateDecision:
    """Outcome of :func:`kalends.ct_tracking.should_update_ct_due`."""
    apply: bool
    reason: str
    new_due_date: Optional[date] = None
    new_period_start: Optional[date] = None
    new_period_end: Optional[date] = None
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Workflow periods
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class MilestoneStamp:
    """Who first reached a milestone, and when."""
    at: datetime
    actor_id: str


@dataclass(frozen=True)
class WorkflowHistoryEntry:
    """One accepted stage change.  Never edited after it is appended."""
    from_stage: Optional["WorkflowStage"]
    to_stage: "WorkflowStage"
    actor_id: str
    changed_at: datetime
    days_in_previous_stage: int = 0
    notes: Optional[str] = None


WorkflowKey = Tuple[str, WorkflowType, str]


@dataclass
class WorkflowPeriod:
    """
    One VAT quarter or accounts filing period for one client.

    Parameters
    ----------
    client_id : str
        Owning client.
    workflow_type : WorkflowType
        Selects the stage sequence.
    period_id : str
        ``<start>_to_<end>`` key, unique per client and type.
    period_start, period_end, filing_due : datetime.date
        Period boundaries and statutory filing deadline.
    current_stage : WorkflowStage | None
        ``None`` until the first stage is set.
    assigned_user_id : str | None
        Assignment for this period only; never inherited from the client.
    version : int
        Bumped on every accepted change; used for optimistic writes.
    """
    client_id: str
    workflow_type: WorkflowType
    period_id: str
    period_start: date
    period_end: date
    filing_due: date
    current_stage: Optional["WorkflowStage"] = None
    is_completed: bool = False
    assigned_user_id: Optional[str] = None
    milestones: Dict[Milestone, MilestoneStamp] = field(default_factory=dict)
    history: List[WorkflowHistoryEntry] = field(default_factory=list)
    version: int = 0

    @property
    def key(self) -> WorkflowKey:
        return (self.client_id, self.workflow_type, self.period_id)

    def milestone_at(self, milestone: Milestone) -> Optional[datetime]:
        """Timestamp of *milestone*, or ``None`` if it was never reached."""
        stamp = self.milestones.get(milestone)
        return stamp.at if stamp else None
