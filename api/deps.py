"""
api.deps
========

FastAPI dependency providers.

`get_registry` yields a **DBWorkflowRegistry** over a session of its own
for each request, so concurrent requests in the threadpool never share
a Session; the session is closed when the response is done.  `get_now`
is the only place the HTTP layer reads the clock; tests override it.
"""

from datetime import datetime
from functools import lru_cache
from typing import Iterator

from kalends.dates import LONDON
from kalends.db import SessionLocal, create_all
from kalends.registry_db import DBWorkflowRegistry
from kalends.settings import settings


@lru_cache
def init_db() -> None:
    """Create the tables once per process."""
    create_all()


def get_registry() -> Iterator[DBWorkflowRegistry]:
    """Request-scoped DB-backed workflow registry."""
    init_db()
    with DBWorkflowRegistry(SessionLocal()) as registry:
        yield registry


@lru_cache
def get_settings():
    """Return application settings."""
    return settings


def get_now() -> datetime:
    """Current London time, for requests that do not pin "now"."""
    return datetime.now(LONDON)
