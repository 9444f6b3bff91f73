"""
api.dashboard
=============

Dashboard counts over the stored workflow periods: deadline buckets,
the 7/15/30/60/90-day breakdown and per-staff workload.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from kalends.buckets import bucket_counts, deadline_breakdown, overdue_deadlines, upcoming_deadlines
from kalends.registry import WorkflowRegistry
from kalends.workload import ClientAssignment, ClientKind, aggregate_workload
from api.deps import get_now, get_registry

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class FallbackAssignment(BaseModel):
    client_id: str
    user_id: str
    kind: ClientKind = ClientKind.LIMITED_COMPANY
    vat_enabled: bool = False


class WorkloadRequest(BaseModel):
    fallbacks: List[FallbackAssignment] = []
    client_kinds: Dict[str, ClientKind] = {}
    include_completed: bool = False


def _item(i) -> dict:
    return {
        "clientId": i.client_id,
        "kind": i.kind,
        "dueDate": i.due_date.isoformat() if i.due_date else None,
        "label": i.label,
        "assignedUserId": i.assigned_user_id,
    }


@router.get("/deadlines")
def deadlines(
    user_id: Optional[str] = Query(None, description="Only periods assigned to this user"),
    days: Optional[int] = Query(None, ge=0, description="Horizon for the upcoming list"),
    registry: WorkflowRegistry = Depends(get_registry),
    now: datetime = Depends(get_now),
):
    """Bucket counts, the window breakdown and the overdue / upcoming lists."""
    items = registry.deadline_items()
    if user_id is not None:
        items = [i for i in items if i.assigned_user_id == user_id]
    return {
        "buckets": bucket_counts(items, now),
        "breakdown": {str(w): n for w, n in deadline_breakdown(items, now).items()},
        "overdue": [_item(i) for i in overdue_deadlines(items, now)],
        "upcoming": [_item(i) for i in upcoming_deadlines(items, now, days)],
    }


@router.post("/workload")
def workload(data: WorkloadRequest, registry: WorkflowRegistry = Depends(get_registry)):
    """Active / inactive clients per user and service line."""
    fallbacks = [ClientAssignment(**f.model_dump()) for f in data.fallbacks]
    result = aggregate_workload(list(registry), fallbacks, data.client_kinds, data.include_completed)
    return {user: staff.to_dict() for user, staff in sorted(result.items())}
