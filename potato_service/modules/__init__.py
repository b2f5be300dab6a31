from __future__ import annotations

from fastapi import APIRouter


def build_api_router() -> APIRouter:
    from potato_service.modules.agents.api import router as agents_router
    from potato_service.modules.chat.api import router as chat_router
    from potato_service.modules.health.api import router as health_router

    api_router = APIRouter(prefix="/v1")
    api_router.include_router(chat_router)
    api_router.include_router(agents_router)
    api_router.include_router(health_router)
    return api_router


__all__ = ["build_api_router"]
