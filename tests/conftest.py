"""
Pytest configuration: make sure `import kalends` and `import api` work
regardless of where pytest is invoked, plus the shared database fixtures.

The project root (one directory above *tests/*) is prepended to
``sys.path`` **before** any tests are collected.
"""

import sys
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

# /path/to/project/tests -> project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared by every connection of one test."""
    from kalends.db import create_all

    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s
