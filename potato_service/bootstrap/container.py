from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path

from potato_service.app.settings import Settings
from potato_service.bridge.coordinator import TurnCoordinator
from potato_service.bridge.launcher import resolve_executable
from potato_service.bridge.registry import ProcessRegistry
from potato_service.modules.agents.service import AgentCatalogService
from potato_service.modules.chat.service import ChatService
from potato_service.modules.chat.worker import TurnWorkerPool


@dataclass(slots=True)
class RuntimeComponents:
    registry: ProcessRegistry
    coordinator: TurnCoordinator
    worker_pool: TurnWorkerPool
    chat_service: ChatService
    agent_catalog: AgentCatalogService


def build_runtime_components(settings: Settings, *, home_dir: Path | None = None) -> RuntimeComponents:
    executable_resolver = partial(
        resolve_executable,
        settings.agent_executable or None,
        settings.agent_command_name,
    )

    registry = ProcessRegistry()
    coordinator = TurnCoordinator(
        registry=registry,
        executable_resolver=executable_resolver,
        line_limit_bytes=settings.stream_line_limit_bytes,
        timeout_seconds=settings.turn_timeout_seconds,
    )
    worker_pool = TurnWorkerPool(
        coordinator,
        worker_count=settings.turn_worker_count,
        queue_size=settings.turn_queue_size,
    )
    chat_service = ChatService(
        worker_pool=worker_pool,
        registry=registry,
        executable_resolver=executable_resolver,
    )
    agent_catalog = AgentCatalogService(
        executable_resolver=executable_resolver,
        probe_timeout_seconds=settings.agent_probe_timeout_seconds,
        home_dir=home_dir,
    )

    return RuntimeComponents(
        registry=registry,
        coordinator=coordinator,
        worker_pool=worker_pool,
        chat_service=chat_service,
        agent_catalog=agent_catalog,
    )
