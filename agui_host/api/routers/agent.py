import json
import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from agui_host.api.schemas.run import AbortRunResponse, RunAgentInput
from agui_host.dependency_injection import get_container
from agui_host.protocol.encoder import SSE_MEDIA_TYPE
from agui_host.services.contracts import RunServiceProtocol
from agui_host.services.run_service import RunConflictError
from agui_host.services.stream_transport import SSE_RESPONSE_HEADERS

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/agent", tags=["agent"])


async def _parse_run_input(request: Request) -> RunAgentInput:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.info("rejecting agent run with unparsable body")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="request body must be JSON") from exc

    try:
        return RunAgentInput.model_validate(body)
    except ValidationError as exc:
        logger.info("rejecting agent run with invalid body", extra={"error_count": exc.error_count()})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


@router.post(
    "",
    summary="Run the agent and stream AG-UI events",
    description="Validates the run input, then streams the agent's response as server-sent WireEvents.",
)
async def run_agent(request: Request) -> StreamingResponse:
    # Validation happens before the response starts so malformed input is a plain 400, not a broken stream.
    payload = await _parse_run_input(request)
    service = get_container(request).resolve(RunServiceProtocol)

    try:
        frames = service.open_run(payload)
    except RunConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return StreamingResponse(frames, media_type=SSE_MEDIA_TYPE, headers=SSE_RESPONSE_HEADERS)


@router.delete(
    "/runs/{run_id}",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=AbortRunResponse,
    summary="Abort an active run",
)
async def abort_run(run_id: str, request: Request) -> AbortRunResponse:
    service = get_container(request).resolve(RunServiceProtocol)
    if not service.abort_run(run_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="run not active")
    return AbortRunResponse(run_id=run_id)
