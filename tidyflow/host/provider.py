"""Capability contract a workflow family implements to be hosted."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, TypeVar

from ..persistence.models import WorkflowProjection
from .models import WorkflowProgress

RequestT = TypeVar("RequestT", contravariant=True)
ContextT = TypeVar("ContextT")


class WorkflowProvider(Protocol[RequestT, ContextT]):
    """Everything :class:`GenericWorkflowHost` needs to know about a family.

    The host never inspects contexts or live workflows itself; it only calls
    these hooks.
    """

    context_type: type

    def create_context(self, request: RequestT) -> ContextT:
        """Build a fresh context from a create request."""

    def create_workflow(self, context: ContextT) -> Any:
        """Build a live workflow whose state is inferred from ``context``."""

    async def handle_external_event(
        self, workflow: Any, event_type: str, data: Mapping[str, Any]
    ) -> bool:
        """Apply an external event; return whether it was handled."""

    def current_status(self, workflow: Any) -> str:
        """Human readable status text."""

    def current_state(self, workflow: Any) -> str:
        """Current state name as stored on the projection."""

    def context(self, workflow: Any) -> ContextT:
        """The context the live workflow acts on."""

    def calculate_progress(
        self, projection: WorkflowProjection, workflow: Any
    ) -> WorkflowProgress:
        """Progress block for responses."""

    def display_name(self, context: ContextT) -> str:
        """Name shown for the workflow."""

    def workflow_type(self, context: ContextT) -> str:
        """Type tag stored on the projection."""

    def metadata(self, context: ContextT) -> dict[str, str]:
        """Metadata map copied onto the projection."""

    def error_message(self, context: ContextT) -> Optional[str]:
        """Error recorded on the context, if any."""
