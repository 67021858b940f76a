"""Exception hierarchy raised by tidyflow operations."""

from __future__ import annotations


class TidyflowError(Exception):
    """Base class for all tidyflow failures."""


class WorkflowNotFoundError(TidyflowError):
    """Raised when a workflow or project id has no persisted record."""

    def __init__(self, identifier: str, kind: str = "Workflow") -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.identifier = identifier


class InvalidWorkflowStateError(TidyflowError):
    """Raised when an operation's precondition on the current state is not met."""


class UnsupportedEventError(TidyflowError):
    """Raised when an external event has no handler for the workflow."""


class UnsupportedOperationError(TidyflowError):
    """Raised when an operation is not available on this host."""
