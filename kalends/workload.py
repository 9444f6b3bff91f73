"""
kalends.workload
================

Per-staff workload counts by service line.

Work reaches a staff member two ways:

* a workflow period (VAT quarter or accounts period) assigned to them;
* a client-level assignment, which only stands in for a service line
  where the client has no workflow record at all yet.

Each client is counted once per user and line, as *active* when any of
its records has real work in progress, else *inactive*.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .models import WorkflowPeriod, WorkflowType
from .stages import definition_for


class ServiceLine(Enum):
    VAT = "VAT"
    LTD_ACCOUNTS = "LTD_ACCOUNTS"
    NON_LTD_ACCOUNTS = "NON_LTD_ACCOUNTS"
    CONTRACTOR = "CONTRACTOR"
    SUB_CONTRACTOR = "SUB_CONTRACTOR"

    def __str__(self) -> str:
        return self.name


class ClientKind(Enum):
    LIMITED_COMPANY = "LIMITED_COMPANY"
    NON_LIMITED_COMPANY = "NON_LIMITED_COMPANY"
    CONTRACTOR = "CONTRACTOR"
    SUB_CONTRACTOR = "SUB_CONTRACTOR"

    def __str__(self) -> str:
        return self.name


LINE_BY_WORKFLOW = {
    WorkflowType.VAT: ServiceLine.VAT,
    WorkflowType.LTD: ServiceLine.LTD_ACCOUNTS,
    WorkflowType.NON_LTD: ServiceLine.NON_LTD_ACCOUNTS,
}

LINE_BY_KIND = {
    ClientKind.LIMITED_COMPANY: ServiceLine.LTD_ACCOUNTS,
    ClientKind.NON_LIMITED_COMPANY: ServiceLine.NON_LTD_ACCOUNTS,
    ClientKind.CONTRACTOR: ServiceLine.CONTRACTOR,
    ClientKind.SUB_CONTRACTOR: ServiceLine.SUB_CONTRACTOR,
}

# kinds that also get their own line on top of the workflow's line
_KIND_LINES = {
    ClientKind.CONTRACTOR: ServiceLine.CONTRACTOR,
    ClientKind.SUB_CONTRACTOR: ServiceLine.SUB_CONTRACTOR,
}


@dataclass(frozen=True)
class ClientAssignment:
    """
    Client-level (fallback) assignment.

    Parameters
    ----------
    client_id, user_id : str
    kind : ClientKind
        Decides the accounts / contractor line the fallback covers.
    vat_enabled : bool
        Whether the fallback also covers the VAT line.
    """
    client_id: str
    user_id: str
    kind: ClientKind = ClientKind.LIMITED_COMPANY
    vat_enabled: bool = False

    @property
    def lines(self) -> List[ServiceLine]:
        lines = [LINE_BY_KIND[self.kind]]
        if self.vat_enabled:
            lines.append(ServiceLine.VAT)
        return lines


@dataclass
class LineCounts:
    active: int = 0
    inactive: int = 0

    @property
    def total(self) -> int:
        return self.active + self.inactive


@dataclass
class StaffWorkload:
    """Active / inactive client counts for one user, per service line."""
    user_id: str
    lines: Dict[ServiceLine, LineCounts] = field(
        default_factory=lambda: {line: LineCounts() for line in ServiceLine}
    )

    @property
    def active(self) -> int:
        return sum(c.active for c in self.lines.values())

    @property
    def inactive(self) -> int:
        return sum(c.inactive for c in self.lines.values())

    @property
    def total(self) -> int:
        return self.active + self.inactive

    def to_dict(self) -> Dict[str, object]:
        return {
            "userId": self.user_id,
            "lines": {
                line.name: {"active": c.active, "inactive": c.inactive, "total": c.total}
                for line, c in self.lines.items()
            },
            "active": self.active,
            "inactive": self.inactive,
            "total": self.total,
        }


def is_active(period: WorkflowPeriod) -> bool:
    """Work has started: a stage is set and it is not the idle waiting stage."""
    if period.current_stage is None:
        return False
    return period.current_stage is not definition_for(period.workflow_type).idle_stage


def lines_for(period: WorkflowPeriod, kind: Optional[ClientKind] = None) -> List[ServiceLine]:
    """Service lines a workflow period counts under."""
    lines = [LINE_BY_WORKFLOW[period.workflow_type]]
    extra = _KIND_LINES.get(kind)
    if extra is not None:
        lines.append(extra)
    return lines


def aggregate_workload(
    periods: Iterable[WorkflowPeriod],
    fallbacks: Iterable[ClientAssignment] = (),
    client_kinds: Optional[Mapping[str, ClientKind]] = None,
    include_completed: bool = False,
) -> Dict[str, StaffWorkload]:
    """
    Workload per user id.

    Workflow-level assignment always wins: a fallback is counted only for
    (client, line) pairs with no workflow record, whoever that record is
    assigned to and whether or not it is completed.  Unassigned periods
    count for nobody.  Input order does not affect the result.
    """
    fallbacks = list(fallbacks)
    kinds: Dict[str, ClientKind] = {f.client_id: f.kind for f in fallbacks}
    kinds.update(client_kinds or {})

    covered: Set[Tuple[str, ServiceLine]] = set()
    # (user, line) -> client -> active?
    seen: Dict[Tuple[str, ServiceLine], Dict[str, bool]] = defaultdict(dict)

    for period in periods:
        lines = lines_for(period, kinds.get(period.client_id))
        covered.update((period.client_id, line) for line in lines)
        if period.assigned_user_id is None:
            continue
        if period.is_completed and not include_completed:
            continue
        active = is_active(period)
        for line in lines:
            slot = seen[(period.assigned_user_id, line)]
            slot[period.client_id] = slot.get(period.client_id, False) or active

    for assignment in fallbacks:
        for line in assignment.lines:
            if (assignment.client_id, line) in covered:
                continue
            seen[(assignment.user_id, line)].setdefault(assignment.client_id, False)

    result: Dict[str, StaffWorkload] = {}
    for (user_id, line), clients in seen.items():
        staff = result.setdefault(user_id, StaffWorkload(user_id))
        counts = staff.lines[line]
        counts.active += sum(1 for a in clients.values() if a)
        counts.inactive += sum(1 for a in clients.values() if not a)
    return result
