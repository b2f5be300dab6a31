from __future__ import annotations

from fastapi import HTTPException, Request, status

from potato_service.app.settings import Settings, settings
from potato_service.modules.agents.service import AgentCatalogService
from potato_service.modules.chat.service import ChatService


def get_settings(request: Request) -> Settings:
    configured = getattr(request.app.state, "settings", None)
    if isinstance(configured, Settings):
        return configured
    return settings


def require_auth(request: Request, authorization: str) -> None:
    if authorization != f"Bearer {get_settings(request).api_token}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="인증에 실패했어요.")


def get_chat_service(request: Request) -> ChatService:
    chat_service = getattr(request.app.state, "chat_service", None)
    if not isinstance(chat_service, ChatService):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="채팅 서비스를 사용할 수 없어요.")
    return chat_service


def get_agent_catalog(request: Request) -> AgentCatalogService:
    return request.app.state.agent_catalog  # type: ignore[no-any-return]
