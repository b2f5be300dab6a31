from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from libs.common.logging import get_logger
from potato_service.app.settings import Settings
from potato_service.bootstrap.container import RuntimeComponents, build_runtime_components

logger = get_logger("potato_service.lifespan")


def create_lifespan(settings: Settings, runtime: RuntimeComponents | None = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        components = runtime or build_runtime_components(settings)
        await components.worker_pool.start()

        app.state.settings = settings
        app.state.chat_service = components.chat_service
        app.state.agent_catalog = components.agent_catalog
        logger.info("service_started", service_name=settings.service_name, workers=settings.turn_worker_count)

        try:
            yield
        finally:
            await components.worker_pool.stop()
            logger.info("service_stopped", leftover_processes=len(components.registry))

    return lifespan
