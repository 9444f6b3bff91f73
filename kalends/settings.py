"""
kalends.settings
================

Configuration settings for the kalends deadline engine.

Two layers, both overridable via environment variables:

* plain module constants for the process (database file, API host,
  log level);
* a pydantic ``Settings`` model holding the engine tunables (civil
  timezone, bucket thresholds, CT warning delta).  Pure functions read
  their defaults from :pydata:`settings` but always accept an explicit
  value, so tests never depend on the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings

# ---------------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# Database settings
# ---------------------------------------------------------------------------
DB_FILE = os.environ.get("KALENDS_DB_FILE", BASE_DIR / "kalends.db")
DB_URL = f"sqlite:///{DB_FILE}"
DB_ECHO = os.environ.get("KALENDS_DB_ECHO", "False").lower() == "true"

# API settings
# ---------------------------------------------------------------------------
API_HOST = os.environ.get("KALENDS_API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("KALENDS_API_PORT", "8000"))
API_DEBUG = os.environ.get("KALENDS_API_DEBUG", "False").lower() == "true"

# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = os.environ.get("KALENDS_LOG_LEVEL", "INFO").upper()


# ---------------------------------------------------------------------------
# Pydantic settings model for engine tunables
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Engine tunables, loaded from ``KALENDS_*`` environment variables."""

    timezone: str = Field("Europe/London", description="Civil calendar used for every date comparison")

    # Two-tier dashboard buckets
    due_soon_days: int = Field(7, description="Upper bound (inclusive) of the due-soon bucket")
    upcoming_days: int = Field(30, description="Upper bound (inclusive) of the upcoming bucket")

    # Five-tier deadline breakdown
    breakdown_windows: List[int] = Field(
        default_factory=lambda: [7, 15, 30, 60, 90],
        description="Ascending day windows for the deadline breakdown widget",
    )

    # CT tracking
    ct_warning_threshold_days: int = Field(
        30, description="Recomputed CT due delta that blocks an auto-update while the prior period is pending"
    )

    # UK first accounting period
    first_period_min_months: int = Field(6, description="Shortest allowed first accounting period")
    first_period_max_months: int = Field(18, description="Longest allowed first accounting period")

    class Config:
        """Configuration for the settings model."""
        env_prefix = "KALENDS_"
        env_file = ".env"
        case_sensitive = False


# Initialize settings
settings = Settings()
