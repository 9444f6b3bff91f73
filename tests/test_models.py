"""
tests/test_models.py
====================

Unit tests for the plain dataclasses and enums in kalends.models.
"""

from datetime import date

import pytest

from kalends.exceptions import InvalidReferenceDateError, UnknownQuarterGroupError
from kalends.models import (
    AccountingReferenceDate,
    Milestone,
    VATQuarterGroup,
    WorkflowPeriod,
    WorkflowType,
)


@pytest.mark.parametrize(
    "raw",
    ["2_5_8_11", " 2_5_8_11 ", "FEB_MAY_AUG_NOV", "feb_may_aug_nov", [11, 2, 5, 8], ("2", "5", "8", "11")],
)
def test_quarter_group_parse_accepts_known_spellings(raw):
    """Every accepted spelling resolves to the same stagger group."""
    assert VATQuarterGroup.parse(raw) is VATQuarterGroup.FEB_MAY_AUG_NOV


@pytest.mark.parametrize("raw", ["1_2_3_4", "", "quarterly", [1, 4, 7], None, 3])
def test_quarter_group_parse_rejects_unknown(raw):
    """An unrecognised group is a hard error, never a default."""
    with pytest.raises(UnknownQuarterGroupError):
        VATQuarterGroup.parse(raw)


def test_quarter_group_error_is_value_error():
    with pytest.raises(ValueError):
        VATQuarterGroup.parse("bogus")


def test_quarter_group_months():
    assert VATQuarterGroup.JAN_APR_JUL_OCT.months == (1, 4, 7, 10)
    assert VATQuarterGroup.MAR_JUN_SEP_DEC.months == (3, 6, 9, 12)


def test_reference_date_parse_formats():
    """DD/MM, mapping and Companies House JSON all parse."""
    assert AccountingReferenceDate.parse("31/01") == AccountingReferenceDate(31, 1)
    assert AccountingReferenceDate.parse({"day": "30", "month": "09"}) == AccountingReferenceDate(30, 9)
    assert AccountingReferenceDate.parse('{"day":"31","month":"03"}') == AccountingReferenceDate(31, 3)


@pytest.mark.parametrize("raw", ["31/02", "00/05", "15/13", "3101", '{"day": 1}', "{not json"])
def test_reference_date_parse_rejects_bad_input(raw):
    with pytest.raises(InvalidReferenceDateError):
        AccountingReferenceDate.parse(raw)


def test_reference_date_leap_day():
    """29 February is legal and falls back to the 28th in a common year."""
    ard = AccountingReferenceDate.parse("29/02")
    assert ard.in_year(2024) == date(2024, 2, 29)
    assert ard.in_year(2025) == date(2025, 2, 28)


def test_reference_date_str():
    assert str(AccountingReferenceDate(5, 4)) == "05/04"


def test_workflow_type_str():
    assert str(WorkflowType.NON_LTD) == "NON_LTD"


def test_workflow_period_defaults():
    """A new period has no stage, no milestones and version 0."""
    p = WorkflowPeriod("acme", WorkflowType.VAT, "2025-03-01_to_2025-05-31",
                       date(2025, 3, 1), date(2025, 5, 31), date(2025, 6, 30))
    assert p.key == ("acme", WorkflowType.VAT, "2025-03-01_to_2025-05-31")
    assert p.current_stage is None
    assert p.is_completed is False
    assert p.milestone_at(Milestone.FILED) is None
    assert p.version == 0
