from fastapi import APIRouter, Request

from agui_host.dependency_injection import get_container
from agui_host.services.run_service import RunRegistry

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    registry = get_container(request).resolve(RunRegistry)
    return {"status": "ok", "active_runs": len(registry.active_runs())}
