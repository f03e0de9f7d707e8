from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from agui_host.agents.base import AgentFactory
from agui_host.agents.factory import build_agent_factory
from agui_host.api.router import api_router
from agui_host.api.routers.health import router as health_router
from agui_host.core.logging import configure_logging
from agui_host.core.settings import Settings, get_settings
from agui_host.dependency_injection import build_container
from agui_host.protocol.observer import StreamObserver
from agui_host.services.run_service import RunRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    agent_factory: AgentFactory | None = None,
    observer: StreamObserver | None = None,
) -> FastAPI:
    """Build the agent host; the agent endpoint is mounted under ``AGENT_ROUTE_PREFIX``."""

    settings = settings or get_settings()
    container = build_container(
        settings,
        agent_factory if agent_factory is not None else build_agent_factory(settings),
        observer,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("starting agent host", extra={"app_env": settings.app_env, "agent_name": settings.agent_name})
        try:
            yield
        finally:
            active = container.resolve(RunRegistry).active_runs()
            logger.info("agent host shutdown complete", extra={"active_runs": len(active)})

    app = FastAPI(
        title="AG-UI Agent Host",
        version="0.1.0",
        docs_url="/docs" if settings.enable_swagger else None,
        redoc_url="/redoc" if settings.enable_swagger else None,
        openapi_url="/openapi.json" if settings.enable_swagger else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.agent_route_prefix)
    return app


settings = get_settings()
configure_logging(settings.effective_log_level)
app = create_app(settings)
