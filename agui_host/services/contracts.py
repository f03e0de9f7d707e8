from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from agui_host.api.schemas.run import RunAgentInput


class RunServiceProtocol(Protocol):
    """Run orchestration contract used by the agent HTTP/SSE endpoints."""

    def open_run(self, payload: RunAgentInput) -> AsyncIterator[bytes]:
        """Create the run's agent and return its encoded event stream.

        Raises ``RunConflictError`` before any frame is produced when the run id is already active.
        """

    def abort_run(self, run_id: str) -> bool:
        """Signal an active run to stop; return ``False`` when no such run is streaming."""
