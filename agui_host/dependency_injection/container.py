from __future__ import annotations

import punq
from fastapi import Request

from agui_host.agents.base import AgentFactory
from agui_host.core.settings import Settings
from agui_host.protocol.observer import LoggingStreamObserver, StreamObserver
from agui_host.services.contracts import RunServiceProtocol
from agui_host.services.run_service import RunRegistry, RunService


def build_container(
    settings: Settings,
    agent_factory: AgentFactory,
    observer: StreamObserver | None = None,
) -> punq.Container:
    container = punq.Container()
    container.register(Settings, instance=settings)
    container.register(AgentFactory, instance=agent_factory)
    container.register(StreamObserver, instance=observer if observer is not None else LoggingStreamObserver())
    container.register(RunRegistry, factory=RunRegistry, scope=punq.Scope.singleton)
    container.register(RunServiceProtocol, factory=RunService, scope=punq.Scope.singleton)
    return container


def get_container(request: Request) -> punq.Container:
    return request.app.state.container
