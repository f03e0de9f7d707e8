"""Service layer orchestrating agent runs and their streaming transport."""

from agui_host.services.run_service import RunConflictError, RunRegistry, RunService
from agui_host.services.stream_transport import SSE_RESPONSE_HEADERS, SSEStreamTransport

__all__ = ["RunConflictError", "RunRegistry", "RunService", "SSEStreamTransport", "SSE_RESPONSE_HEADERS"]
