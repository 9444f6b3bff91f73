"""
Kalends
=======

UK statutory deadline and accountancy workflow engine: year ends,
Corporation Tax and accounts deadlines, VAT quarters, workflow stage
transitions, deadline bucketing and staff workload.

Import structure
----------------
`import kalends` is intentionally cheap: no sub-module is imported by
default.  Heavy dependencies such as *matplotlib* and *sqlmodel* are
only imported when you explicitly access :pymod:`kalends.viz` or
:pymod:`kalends.db`.

Sub-modules
~~~~~~~~~~~
- :pymod:`kalends.models`        - dataclasses and enums (facts, VAT quarters, CT state, workflow periods)
- :pymod:`kalends.dates`         - pure statutory date arithmetic in the London calendar
- :pymod:`kalends.ct_tracking`   - CT due-date update policy
- :pymod:`kalends.stages`        - stage enums and per-workflow definitions
- :pymod:`kalends.stage_graph`   - transition graph (NetworkX) and `validate_transition`
- :pymod:`kalends.lifecycle`     - stage changes with history and milestones (`advance_stage`)
- :pymod:`kalends.buckets`       - overdue / due-soon / upcoming bucketing
- :pymod:`kalends.workload`      - per-staff workload aggregation
- :pymod:`kalends.registry`      - in-memory workflow period registry
- :pymod:`kalends.registry_db`   - SQLite-backed registry
- :pymod:`kalends.viz`           - plotting helpers

Quick start
-----------
>>> from datetime import date
>>> from kalends.dates import calculate_vat_quarter
>>> q = calculate_vat_quarter("2_5_8_11", date(2025, 3, 15))
>>> q.quarter_end, q.filing_due
(datetime.date(2025, 5, 31), datetime.date(2025, 6, 30))

"""

__all__ = [
    "models",
    "dates",
    "ct_tracking",
    "stages",
    "stage_graph",
    "lifecycle",
    "buckets",
    "workload",
    "registry",
    "registry_db",
    "viz",
]

__version__ = "0.1.0"
