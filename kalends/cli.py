"""
kalends.cli
===========

Command-line front end.

Examples
--------
$ kalends year-end --incorporated 2024-01-15 --ard 31/01
$ kalends vat-quarter 2_5_8_11 --date 2025-03-15 --count 2
$ kalends stages LTD
$ kalends stage-graph VAT --out images/vat_stages.png
$ kalends create-db
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from datetime import date, datetime
from typing import List, Optional

from .dates import (
    LONDON,
    calculate_all_statutory_dates,
    calculate_vat_quarter,
    format_quarter_period,
    get_next_vat_quarter,
)
from .exceptions import KalendsError
from .models import AccountingReferenceDate, CompanyFacts
from .settings import LOG_LEVEL
from .stages import definition_for, is_user_selectable

logger = logging.getLogger(__name__)


def _iso(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def _today(args) -> date:
    return args.today or datetime.now(LONDON).date()


def _fmt(d: Optional[date]) -> str:
    return d.isoformat() if d else "not set"


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------
def cmd_year_end(args) -> int:
    facts = CompanyFacts(
        incorporation_date=args.incorporated,
        last_accounts_made_up_to=args.last_accounts,
        accounting_reference_date=AccountingReferenceDate.parse(args.ard) if args.ard else None,
        next_year_end=args.ch_year_end,
    )
    dates = calculate_all_statutory_dates(facts, _today(args))
    print(f"Year end:      {_fmt(dates.year_end)}")
    print(f"Accounts due:  {_fmt(dates.accounts_due)}")
    print(f"CT600 due:     {_fmt(dates.ct_due)}")
    return 0


def cmd_vat_quarter(args) -> int:
    quarter = calculate_vat_quarter(args.group, args.date or _today(args))
    for _ in range(args.count):
        print(
            f"{format_quarter_period(quarter):<24} {quarter.period_id}  "
            f"filing due {quarter.filing_due.isoformat()}"
        )
        quarter = get_next_vat_quarter(quarter.quarter_group, quarter.quarter_end)
    return 0


def cmd_stages(args) -> int:
    definition = definition_for(args.workflow_type)
    for number, stage in enumerate(definition.sequence, start=1):
        flags = []
        if not is_user_selectable(stage):
            flags.append("system")
        if stage in definition.regression_allowed:
            flags.append("rework")
        suffix = f"  [{', '.join(flags)}]" if flags else ""
        print(f"{number:>2}. {stage.name:<28} {stage.label}{suffix}")
    for stage in sorted(definition.out_of_sequence, key=lambda s: s.name):
        print(f" *  {stage.name:<28} {stage.label}  [terminal]")
    return 0


def cmd_stage_graph(args) -> int:
    from .viz import plot_stage_graph  # matplotlib only when asked for

    out = plot_stage_graph(args.workflow_type, out_path=args.out)
    print(f"stage graph saved to {out}")
    return 0


def cmd_create_db(args) -> int:
    from .db import create_all

    create_all()
    print("kalends schema initialised")
    return 0


# ---------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kalends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=textwrap.dedent(
            """\
            UK statutory deadlines and accountancy workflow stages
            ------------------------------------------------------
            year-end     year end, accounts and CT600 due dates for a company
            vat-quarter  VAT quarters and filing deadlines for a stagger group
            stages       the stage sequence of a workflow type
            stage-graph  draw a workflow's transition graph to PNG
            create-db    create the SQLite tables
            """
        ),
    )
    parser.add_argument("--today", type=_iso, help="evaluate as of this date (default: London today)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("year-end", help="statutory dates for a company")
    p.add_argument("--incorporated", type=_iso, help="incorporation date")
    p.add_argument("--last-accounts", type=_iso, help="last accounts made up to")
    p.add_argument("--ard", help="accounting reference date, DD/MM")
    p.add_argument("--ch-year-end", type=_iso, help="next year end reported by Companies House")
    p.set_defaults(func=cmd_year_end)

    p = sub.add_parser("vat-quarter", help="VAT quarters for a stagger group")
    p.add_argument("group", help="stagger group, e.g. 1_4_7_10, 2_5_8_11 or 3_6_9_12")
    p.add_argument("--date", type=_iso, help="reference date (default: today)")
    p.add_argument("--count", type=int, default=1, help="number of consecutive quarters to list")
    p.set_defaults(func=cmd_vat_quarter)

    p = sub.add_parser("stages", help="list workflow stages")
    p.add_argument("workflow_type", help="VAT, LTD or NON_LTD")
    p.set_defaults(func=cmd_stages)

    p = sub.add_parser("stage-graph", help="draw a workflow transition graph")
    p.add_argument("workflow_type", help="VAT, LTD or NON_LTD")
    p.add_argument("--out", help="PNG path")
    p.set_defaults(func=cmd_stage_graph)

    p = sub.add_parser("create-db", help="create database tables")
    p.set_defaults(func=cmd_create_db)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except KalendsError as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
