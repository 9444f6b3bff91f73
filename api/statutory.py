"""
api.statutory
=============

Endpoints for statutory date calculations: year end, accounts and CT
deadlines, VAT quarters and the CT auto-update policy.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from kalends.ct_tracking import ct_tracking_summary, should_update_ct_due
from kalends.dates import calculate_all_statutory_dates, calculate_vat_quarter, format_quarter_period, london_date
from kalends.models import AccountingReferenceDate, CompanyFacts, CTDueSource, CTStatus, CTTrackingState, VATQuarter
from api.deps import get_now

router = APIRouter(prefix="/statutory", tags=["statutory"])


class CompanyFactsRequest(BaseModel):
    """Company facts as held on the client record."""
    incorporation_date: Optional[date] = None
    last_accounts_made_up_to: Optional[date] = None
    accounting_reference_date: Optional[str] = None  # "DD/MM" or Companies House JSON
    next_year_end: Optional[date] = None
    today: Optional[date] = None


class CTStateModel(BaseModel):
    status: CTStatus = CTStatus.PENDING
    due_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    source: CTDueSource = CTDueSource.AUTO
    manual_override: Optional[date] = None


class CTUpdateRequest(BaseModel):
    state: CTStateModel
    new_year_end: date
    companies_house_changed: bool = False


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def quarter_to_dict(q: VATQuarter) -> dict:
    return {
        "quarterGroup": q.quarter_group.value,
        "quarterStart": q.quarter_start.isoformat(),
        "quarterEnd": q.quarter_end.isoformat(),
        "filingDue": q.filing_due.isoformat(),
        "quarterPeriodId": q.period_id,
        "label": format_quarter_period(q),
    }


def _ct_state(model: CTStateModel) -> CTTrackingState:
    return CTTrackingState(**model.model_dump())


@router.post("/dates")
def statutory_dates(data: CompanyFactsRequest, now: datetime = Depends(get_now)):
    """
    Year end, accounts due and CT due for a company.

    Any value that cannot be derived comes back as ``null``.
    """
    ard = AccountingReferenceDate.parse(data.accounting_reference_date) if data.accounting_reference_date else None
    facts = CompanyFacts(
        incorporation_date=data.incorporation_date,
        last_accounts_made_up_to=data.last_accounts_made_up_to,
        accounting_reference_date=ard,
        next_year_end=data.next_year_end,
    )
    dates = calculate_all_statutory_dates(facts, data.today or london_date(now))
    return {
        "yearEnd": _iso(dates.year_end),
        "accountsDue": _iso(dates.accounts_due),
        "ctDue": _iso(dates.ct_due),
    }


@router.get("/vat-quarter")
def vat_quarter(
    group: str = Query(..., description="Stagger group, e.g. 2_5_8_11"),
    reference_date: Optional[date] = Query(None, alias="date"),
    now: datetime = Depends(get_now),
):
    """The VAT quarter open on *date* (default: today) for *group*."""
    return quarter_to_dict(calculate_vat_quarter(group, reference_date or now))


@router.post("/ct/should-update")
def ct_should_update(data: CTUpdateRequest):
    """Whether an auto-computed CT due date may replace the stored one."""
    decision = should_update_ct_due(_ct_state(data.state), data.new_year_end, data.companies_house_changed)
    return {
        "apply": decision.apply,
        "reason": decision.reason,
        "newDueDate": _iso(decision.new_due_date),
        "newPeriodStart": _iso(decision.new_period_start),
        "newPeriodEnd": _iso(decision.new_period_end),
        "warnings": decision.warnings,
    }


@router.post("/ct/summary")
def ct_summary(state: CTStateModel, now: datetime = Depends(get_now)):
    """Display view of a CT tracking state."""
    return ct_tracking_summary(_ct_state(state), now)
