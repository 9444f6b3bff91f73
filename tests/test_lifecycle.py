"""
tests/test_lifecycle.py
=======================

Unit tests for kalends.lifecycle.advance_stage and friends.
"""

from datetime import date, datetime, timedelta

import pytest

from kalends.exceptions import IllegalTransitionError, StaleWorkflowError, WorkflowCompletedError
from kalends.lifecycle import advance_stage, mark_client_self_filing, workflow_durations
from kalends.models import Milestone, WorkflowPeriod, WorkflowType
from kalends.stages import LtdStage, VATStage

T0 = datetime(2025, 6, 2, 9, 0)  # a Monday


def _vat_period() -> WorkflowPeriod:
    return WorkflowPeriod("acme", WorkflowType.VAT, "2025-03-01_to_2025-05-31",
                          date(2025, 3, 1), date(2025, 5, 31), date(2025, 6, 30))


def _walk(period, names, start=T0, step=timedelta(days=1)):
    """Advance through *names* one day apart; returns the last timestamp used."""
    when = start
    for name in names:
        advance_stage(period, name, "alice", when)
        when += step
    return when - step


VAT_TO_WIP = ["PAPERWORK_PENDING_CHASE", "PAPERWORK_CHASED", "PAPERWORK_RECEIVED", "WORK_IN_PROGRESS"]


def test_first_transition_records_history_and_milestone():
    """Setting the first stage appends history and stamps chase-started."""
    p = _vat_period()
    entry = advance_stage(p, "PAPERWORK_PENDING_CHASE", "alice", T0, notes="start")
    assert p.current_stage is VATStage.PAPERWORK_PENDING_CHASE
    assert entry.from_stage is None
    assert entry.days_in_previous_stage == 0
    assert entry.notes == "start"
    assert p.history == [entry]
    assert p.milestone_at(Milestone.CHASE_STARTED) == T0
    assert p.milestones[Milestone.CHASE_STARTED].actor_id == "alice"
    assert p.version == 1


def test_days_in_previous_stage():
    p = _vat_period()
    advance_stage(p, "PAPERWORK_PENDING_CHASE", "alice", T0)
    entry = advance_stage(p, "PAPERWORK_CHASED", "bob", T0 + timedelta(days=3, hours=5))
    assert entry.days_in_previous_stage == 3
    assert entry.from_stage is VATStage.PAPERWORK_PENDING_CHASE


def test_skip_raises_with_result():
    """Skipping is refused unless the caller confirms it."""
    p = _vat_period()
    advance_stage(p, "PAPERWORK_PENDING_CHASE", "alice", T0)
    with pytest.raises(IllegalTransitionError) as info:
        advance_stage(p, "WORK_IN_PROGRESS", "alice", T0)
    assert info.value.result.is_skipping
    assert len(info.value.result.skipped_stages) == 2
    assert p.current_stage is VATStage.PAPERWORK_PENDING_CHASE
    assert len(p.history) == 1


def test_confirmed_skip_applies():
    p = _vat_period()
    advance_stage(p, "PAPERWORK_PENDING_CHASE", "alice", T0)
    advance_stage(p, "WORK_IN_PROGRESS", "alice", T0, confirm_skip=True)
    assert p.current_stage is VATStage.WORK_IN_PROGRESS
    assert Milestone.WORK_STARTED in p.milestones
    # skipped stages are not stamped
    assert Milestone.PAPERWORK_RECEIVED not in p.milestones


def test_illegal_regression_raises_value_error():
    p = _vat_period()
    _walk(p, VAT_TO_WIP + ["QUERIES_PENDING", "REVIEW_PENDING_MANAGER"])
    with pytest.raises(ValueError):
        advance_stage(p, "QUERIES_PENDING", "alice", T0 + timedelta(days=10))


def test_same_stage_is_noop():
    p = _vat_period()
    advance_stage(p, "PAPERWORK_PENDING_CHASE", "alice", T0)
    assert advance_stage(p, VATStage.PAPERWORK_PENDING_CHASE, "alice", T0) is None
    assert len(p.history) == 1
    assert p.version == 1


def test_milestones_first_write_wins_across_rework():
    """Reworking back through a stage keeps the original milestone time."""
    p = _vat_period()
    _walk(p, VAT_TO_WIP + ["QUERIES_PENDING"])
    first_work = p.milestone_at(Milestone.WORK_STARTED)
    assert first_work == T0 + timedelta(days=3)

    advance_stage(p, "WORK_IN_PROGRESS", "bob", T0 + timedelta(days=8))
    assert p.milestone_at(Milestone.WORK_STARTED) == first_work
    assert p.history[-1].days_in_previous_stage == 4


def test_filing_completes_period():
    p = _vat_period()
    _walk(p, [s.name for s in VATStage])
    assert p.is_completed
    assert p.milestone_at(Milestone.FILED) is not None
    assert Milestone.SENT_TO_CLIENT in p.milestones
    with pytest.raises(WorkflowCompletedError):
        advance_stage(p, "WORK_IN_PROGRESS", "alice", T0 + timedelta(days=30))


def test_same_stage_on_completed_period_is_noop():
    p = _vat_period()
    _walk(p, [s.name for s in VATStage])
    version = p.version
    assert advance_stage(p, "FILED_TO_HMRC", "alice", T0 + timedelta(days=30)) is None
    assert p.version == version


def test_new_accounts_period_can_start_as_self_filing():
    p = WorkflowPeriod("beta", WorkflowType.NON_LTD, "2024-04-06_to_2025-04-05",
                       date(2024, 4, 6), date(2025, 4, 5), date(2026, 1, 5))
    advance_stage(p, "CLIENT_SELF_FILING", "alice", T0)
    assert p.is_completed


def test_completed_error_is_illegal_transition():
    assert issubclass(WorkflowCompletedError, IllegalTransitionError)


def test_expected_version_mismatch():
    p = _vat_period()
    advance_stage(p, "PAPERWORK_PENDING_CHASE", "alice", T0, expected_version=0)
    with pytest.raises(StaleWorkflowError):
        advance_stage(p, "PAPERWORK_CHASED", "bob", T0, expected_version=0)


def test_ltd_companies_house_then_hmrc():
    p = WorkflowPeriod("beta", WorkflowType.LTD, "2024-04-01_to_2025-03-31",
                       date(2024, 4, 1), date(2025, 3, 31), date(2025, 12, 31))
    names = [s.name for s in LtdStage if s is not LtdStage.CLIENT_SELF_FILING]
    _walk(p, names[:-1])
    assert not p.is_completed
    assert Milestone.FILED_TO_COMPANIES_HOUSE in p.milestones
    advance_stage(p, "FILED_TO_HMRC", "alice", T0 + timedelta(days=30))
    assert p.is_completed


def test_client_self_filing_accounts():
    p = WorkflowPeriod("beta", WorkflowType.LTD, "2024-04-01_to_2025-03-31",
                       date(2024, 4, 1), date(2025, 3, 31), date(2025, 12, 31))
    advance_stage(p, "WAITING_FOR_YEAR_END", "alice", T0)
    entry = mark_client_self_filing(p, "alice", T0 + timedelta(days=2))
    assert p.current_stage is LtdStage.CLIENT_SELF_FILING
    assert p.is_completed
    assert entry.notes == "Client self-filing"
    with pytest.raises(WorkflowCompletedError):
        mark_client_self_filing(p, "alice", T0)


def test_client_self_filing_vat_closes_at_hmrc():
    p = _vat_period()
    mark_client_self_filing(p, "alice", T0)
    assert p.current_stage is VATStage.FILED_TO_HMRC
    assert p.is_completed
    assert p.milestone_at(Milestone.FILED) == T0


def test_workflow_durations_open_period():
    p = _vat_period()
    _walk(p, ["PAPERWORK_PENDING_CHASE", "PAPERWORK_CHASED"], step=timedelta(days=2))
    now = T0 + timedelta(days=6)
    d = workflow_durations(p, now)
    assert d["total_days"] == 6
    assert d["business_days"] == 5  # Mon 2 Jun to Sun 8 Jun
    assert [(s["stage"], s["days"]) for s in d["stages"]] == [
        ("PAPERWORK_PENDING_CHASE", 2),
        ("PAPERWORK_CHASED", 4),
    ]


def test_workflow_durations_empty():
    assert workflow_durations(_vat_period(), T0) == {"total_days": 0, "business_days": 0, "stages": []}
