"""
Ledger error taxonomy.

Every failure the ledger core reports to its callers is one of these.
Validation problems are raised before any write; persistence problems
are raised after an atomic commit failed, so in both cases no partial
state exists.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """
    An intent is structurally or semantically invalid.

    Carries the individual issues so the UI can render them inline.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class NotFoundError(LedgerError):
    """A referenced book, account, transaction or schedule does not exist."""
    pass


class PersistenceError(LedgerError):
    """The atomic backend write failed. Safe to retry the whole operation."""
    pass


class ScheduleConsistencyError(PersistenceError):
    """
    A recurring materialize+advance unit could not be committed.

    The unit failed closed; `report` lists what the processing pass
    did manage to materialize and which schedules need reconciliation.
    """

    def __init__(self, message: str, report: Any = None):
        super().__init__(message)
        self.report = report
