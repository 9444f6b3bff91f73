"""
kalends.exceptions
==================

Errors raised by the deadline engine.

Only genuinely exceptional input fails loudly here: unknown enum
values, malformed reference dates, rejected transitions the caller did
not override, and stale writes.  Stage-skip detection and refused CT
auto-updates are ordinary results, not exceptions.
"""

from __future__ import annotations


class KalendsError(Exception):
    """Base class for every error raised by kalends."""


class UnknownQuarterGroupError(KalendsError, ValueError):
    """Raised when a VAT stagger group is not one of the three UK groups."""


class UnknownStageError(KalendsError, ValueError):
    """Raised when a stage name does not belong to the workflow type."""


class InvalidReferenceDateError(KalendsError, ValueError):
    """Raised when an accounting reference day/month cannot exist."""


class IllegalTransitionError(KalendsError, ValueError):
    """Raised when a stage change is rejected and was not overridden."""

    def __init__(self, message: str, result=None) -> None:
        super().__init__(message)
        self.result = result


class WorkflowCompletedError(IllegalTransitionError):
    """Raised when a completed period is asked to change stage."""


class StaleWorkflowError(KalendsError):
    """Raised when a workflow record changed between read and write."""


class UnknownClientError(KalendsError, KeyError):
    """Raised when a workflow period references a client nobody registered."""
