from __future__ import annotations

from potato_service.modules.common.deps import (
    get_agent_catalog,
    get_chat_service,
    get_settings,
    require_auth,
)

__all__ = [
    "get_agent_catalog",
    "get_chat_service",
    "get_settings",
    "require_auth",
]
