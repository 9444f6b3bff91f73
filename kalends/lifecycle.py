"""
kalends.lifecycle
=================

State-transition guard for a :class:`kalends.models.WorkflowPeriod`.

:pyfunc:`advance_stage` mutates a period **in-place** after validating
the change against :mod:`kalends.stage_graph`: it appends the history
entry, stamps first-entry milestones, marks the period completed on a
terminal stage and bumps the record version.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .dates import business_days_between, days_between
from .exceptions import IllegalTransitionError, StaleWorkflowError, WorkflowCompletedError
from .models import MilestoneStamp, WorkflowHistoryEntry, WorkflowPeriod, WorkflowType
from .stage_graph import validate_transition
from .stages import StageLike, WorkflowStage, definition_for, parse_stage

logger = logging.getLogger(__name__)


def _apply(
    period: WorkflowPeriod,
    target: WorkflowStage,
    actor_id: str,
    now: datetime,
    notes: Optional[str],
) -> WorkflowHistoryEntry:
    definition = definition_for(period.workflow_type)
    previous = period.history[-1].changed_at if period.history else None
    entry = WorkflowHistoryEntry(
        from_stage=period.current_stage,
        to_stage=target,
        actor_id=actor_id,
        changed_at=now,
        days_in_previous_stage=days_between(previous, now) if previous else 0,
        notes=notes,
    )
    period.history.append(entry)
    period.current_stage = target

    milestone = definition.milestones.get(target)
    if milestone is not None and milestone not in period.milestones:
        period.milestones[milestone] = MilestoneStamp(at=now, actor_id=actor_id)
    if target in definition.terminal:
        period.is_completed = True
    period.version += 1

    logger.info(
        "%s %s %s: %s -> %s by %s",
        period.client_id, period.workflow_type, period.period_id,
        entry.from_stage, target, actor_id,
    )
    return entry


def advance_stage(
    period: WorkflowPeriod,
    to_stage: StageLike,
    actor_id: str,
    now: datetime,
    *,
    notes: Optional[str] = None,
    confirm_skip: bool = False,
    expected_version: Optional[int] = None,
) -> Optional[WorkflowHistoryEntry]:
    """
    Move *period* to *to_stage* if the transition is legal, otherwise
    raise :class:`~kalends.exceptions.IllegalTransitionError`.

    Parameters
    ----------
    period : WorkflowPeriod
        Record to mutate.
    to_stage : WorkflowStage or str
        Target stage (member, stored key or display label).
    actor_id : str
        Who made the change; recorded on the history entry.
    now : datetime
        When the change happened; never read from the clock here.
    notes : str, optional
        Free text kept on the history entry.
    confirm_skip : bool, default False
        Accept a forward skip the user has already confirmed.
    expected_version : int, optional
        Version the caller read; a mismatch raises
        :class:`~kalends.exceptions.StaleWorkflowError`.

    Returns
    -------
    WorkflowHistoryEntry or None
        The appended entry, or ``None`` when the stage did not change.
    """
    if expected_version is not None and expected_version != period.version:
        raise StaleWorkflowError(
            f"{period.key} is at version {period.version}, caller expected {expected_version}"
        )
    target = parse_stage(period.workflow_type, to_stage)
    if target is period.current_stage:
        return None
    if period.is_completed:
        raise WorkflowCompletedError(f"{period.workflow_type} period {period.period_id} is already completed")

    result = validate_transition(period.current_stage, target, period.workflow_type)
    if not result.valid:
        if not (result.is_skipping and confirm_skip):
            raise IllegalTransitionError(result.message, result)
        logger.warning(
            "%s %s: confirmed skip over %s",
            period.client_id, period.period_id, ", ".join(s.name for s in result.skipped_stages),
        )
    return _apply(period, target, actor_id, now, notes)


def mark_client_self_filing(
    period: WorkflowPeriod, actor_id: str, now: datetime, notes: Optional[str] = None
) -> WorkflowHistoryEntry:
    """
    Complete a period the client is filing themselves.

    Accounts periods move to ``CLIENT_SELF_FILING``; VAT has no such
    stage and is closed at ``FILED_TO_HMRC``.
    """
    if period.is_completed:
        raise WorkflowCompletedError(f"{period.workflow_type} period {period.period_id} is already completed")
    if period.workflow_type is WorkflowType.VAT:
        target = parse_stage(period.workflow_type, "FILED_TO_HMRC")
    else:
        target = parse_stage(period.workflow_type, "CLIENT_SELF_FILING")
    return _apply(period, target, actor_id, now, notes or "Client self-filing")


def workflow_durations(period: WorkflowPeriod, now: datetime) -> Dict[str, Any]:
    """
    Time spent on *period* from its history.

    Returns total calendar and business days from the first recorded
    stage to completion (or *now* while open) and one row per visited
    stage, in visit order.
    """
    if not period.history:
        return {"total_days": 0, "business_days": 0, "stages": []}

    end = period.history[-1].changed_at if period.is_completed else now
    stages: List[Dict[str, Any]] = []
    for entry, following in zip(period.history, period.history[1:] + [None]):
        if following is None and period.is_completed:
            break
        left = following.changed_at if following else now
        stages.append({
            "stage": entry.to_stage.name,
            "label": entry.to_stage.label,
            "entered_at": entry.changed_at,
            "days": days_between(entry.changed_at, left),
        })

    start = period.history[0].changed_at
    return {
        "total_days": days_between(start, end),
        "business_days": business_days_between(start, end),
        "stages": stages,
    }
