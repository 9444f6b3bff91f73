"""
tests/test_cli.py
=================

Smoke tests for the ``kalends`` command line.
"""

import pytest

from kalends.cli import main


def test_year_end_first_period(capsys):
    rc = main(["--today", "2024-06-01", "year-end", "--incorporated", "2024-01-15", "--ard", "31/01"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "Year end:      2025-01-31" in out
    assert "Accounts due:  2025-10-31" in out
    assert "CT600 due:     2026-01-31" in out


def test_year_end_unknown(capsys):
    assert main(["year-end"]) == 0
    assert capsys.readouterr().out.count("not set") == 3


def test_vat_quarter_listing(capsys):
    rc = main(["vat-quarter", "2_5_8_11", "--date", "2025-03-15", "--count", "2"])
    lines = capsys.readouterr().out.splitlines()
    assert rc == 0
    assert len(lines) == 2
    assert "2025-03-01_to_2025-05-31" in lines[0] and "filing due 2025-06-30" in lines[0]
    assert "2025-06-01_to_2025-08-31" in lines[1] and "filing due 2025-09-30" in lines[1]


def test_vat_quarter_bad_group(capsys):
    assert main(["vat-quarter", "9_9_9_9"]) == 2
    assert "error:" in capsys.readouterr().err


def test_stages_listing(capsys):
    assert main(["stages", "LTD"]) == 0
    out = capsys.readouterr().out
    assert " 1. WAITING_FOR_YEAR_END" in out
    assert "15. FILED_TO_HMRC" in out
    assert " *  CLIENT_SELF_FILING" in out
    assert "[system]" in out


def test_bad_today_is_argparse_error():
    with pytest.raises(SystemExit):
        main(["--today", "01/06/2024", "year-end"])


def test_stage_graph_command(tmp_path, capsys):
    out = tmp_path / "vat.png"
    assert main(["stage-graph", "VAT", "--out", str(out)]) == 0
    assert out.exists()
    assert str(out) in capsys.readouterr().out
