"""
api.workflows
=============

Endpoints for workflow stages and workflow periods: stage listings and
validation for the stage picker, lazily created VAT quarters and
accounts periods, stage transitions and assignment.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from kalends.models import WorkflowHistoryEntry, WorkflowPeriod, WorkflowType
from kalends.registry import WorkflowRegistry
from kalends.stage_graph import get_allowed_next_stages, stage_graph, validate_transition
from kalends.stages import definition_for, is_user_selectable, stage_progress
from api.deps import get_now, get_registry

router = APIRouter(prefix="/workflows", tags=["workflows"])


class ValidateRequest(BaseModel):
    from_stage: Optional[str] = None
    to_stage: str


class VATQuarterRequest(BaseModel):
    quarter_group: str
    reference_date: Optional[date] = None


class AccountsPeriodRequest(BaseModel):
    workflow_type: WorkflowType = WorkflowType.LTD
    year_end: date


class TransitionRequest(BaseModel):
    to_stage: str
    actor_id: str
    notes: Optional[str] = None
    confirm_skip: bool = False
    expected_version: Optional[int] = None


class AssignRequest(BaseModel):
    user_id: Optional[str] = None


# ---------------------------------------------------------------------
# Serialisers
# ---------------------------------------------------------------------
def entry_to_dict(entry: WorkflowHistoryEntry) -> Dict[str, Any]:
    return {
        "fromStage": entry.from_stage.name if entry.from_stage else None,
        "toStage": entry.to_stage.name,
        "actorId": entry.actor_id,
        "changedAt": entry.changed_at.isoformat(),
        "daysInPreviousStage": entry.days_in_previous_stage,
        "notes": entry.notes,
    }


def period_to_dict(period: WorkflowPeriod) -> Dict[str, Any]:
    stage = period.current_stage
    return {
        "clientId": period.client_id,
        "workflowType": period.workflow_type.name,
        "periodId": period.period_id,
        "periodStart": period.period_start.isoformat(),
        "periodEnd": period.period_end.isoformat(),
        "filingDue": period.filing_due.isoformat(),
        "currentStage": stage.name if stage else None,
        "currentStageLabel": stage.label if stage else None,
        "progress": stage_progress(stage),
        "isCompleted": period.is_completed,
        "assignedUserId": period.assigned_user_id,
        "milestones": {m.value: s.at.isoformat() for m, s in period.milestones.items()},
        "history": [entry_to_dict(e) for e in period.history],
        "version": period.version,
    }


# ---------------------------------------------------------------------
# Stage vocabulary
# ---------------------------------------------------------------------
@router.get("/{workflow_type}/stages")
def list_stages(workflow_type: str):
    """Ordered stages with display labels and picker flags."""
    definition = definition_for(workflow_type)
    return [
        {
            "name": stage.name,
            "label": stage.label,
            "order": number,
            "selectable": is_user_selectable(stage),
            "reworkTarget": stage in definition.regression_allowed,
        }
        for number, stage in enumerate(definition.sequence, start=1)
    ]


@router.get("/{workflow_type}/allowed-next")
def allowed_next(workflow_type: str, current: Optional[str] = None):
    return [s.name for s in get_allowed_next_stages(current, workflow_type)]


@router.post("/{workflow_type}/validate")
def validate(workflow_type: str, data: ValidateRequest):
    """Classify a stage change; skips come back as ``isSkipping`` rather than an error."""
    return validate_transition(data.from_stage, data.to_stage, workflow_type).to_dict()


@router.get("/{workflow_type}/graph")
def graph(workflow_type: str):
    return stage_graph(workflow_type).to_json()


# ---------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------
@router.post("/clients/{client_id}/vat-quarters")
def ensure_vat_quarter(
    client_id: str,
    data: VATQuarterRequest,
    registry: WorkflowRegistry = Depends(get_registry),
    now: datetime = Depends(get_now),
):
    """Return the VAT quarter open on *reference_date*, creating it on first access."""
    period = registry.ensure_vat_quarter(client_id, data.quarter_group, data.reference_date or now)
    return period_to_dict(period)


@router.post("/clients/{client_id}/accounts-periods")
def ensure_accounts_period(
    client_id: str,
    data: AccountsPeriodRequest,
    registry: WorkflowRegistry = Depends(get_registry),
):
    period = registry.ensure_accounts_period(client_id, data.workflow_type, data.year_end)
    return period_to_dict(period)


@router.get("/clients/{client_id}/periods")
def client_periods(client_id: str, registry: WorkflowRegistry = Depends(get_registry)):
    return [period_to_dict(p) for p in registry.for_client(client_id)]


def _get(registry: WorkflowRegistry, client_id: str, workflow_type: str, period_id: str) -> WorkflowPeriod:
    try:
        return registry.get(client_id, workflow_type, period_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Workflow period not found") from None


@router.get("/clients/{client_id}/{workflow_type}/{period_id}")
def get_period(client_id: str, workflow_type: str, period_id: str, registry: WorkflowRegistry = Depends(get_registry)):
    return period_to_dict(_get(registry, client_id, workflow_type, period_id))


@router.post("/clients/{client_id}/{workflow_type}/{period_id}/transition")
def transition(
    client_id: str,
    workflow_type: str,
    period_id: str,
    data: TransitionRequest,
    registry: WorkflowRegistry = Depends(get_registry),
    now: datetime = Depends(get_now),
):
    """
    Move a period to a new stage.

    A rejected change answers 400 with the validation result, a completed
    period 400, and a version conflict 409.
    """
    _get(registry, client_id, workflow_type, period_id)
    entry = registry.transition(
        client_id, workflow_type, period_id, data.to_stage, data.actor_id, now,
        notes=data.notes, confirm_skip=data.confirm_skip, expected_version=data.expected_version,
    )
    period = registry.get(client_id, workflow_type, period_id)
    return {"entry": entry_to_dict(entry) if entry else None, "period": period_to_dict(period)}


@router.put("/clients/{client_id}/{workflow_type}/{period_id}/assignee")
def assign(
    client_id: str,
    workflow_type: str,
    period_id: str,
    data: AssignRequest,
    registry: WorkflowRegistry = Depends(get_registry),
):
    _get(registry, client_id, workflow_type, period_id)
    return period_to_dict(registry.assign(client_id, workflow_type, period_id, data.user_id))
