from __future__ import annotations

from fastapi import APIRouter, Header, Query, Request

from potato_service.app.models import AgentDefinitionResponse, AgentStatusResponse
from potato_service.modules.common.deps import get_agent_catalog, require_auth

router = APIRouter()


@router.get("/agent/status", response_model=AgentStatusResponse)
async def agent_status(
    request: Request,
    authorization: str = Header(default=""),
) -> AgentStatusResponse:
    require_auth(request, authorization)
    agent_status = await get_agent_catalog(request).status()
    return AgentStatusResponse(
        installed=agent_status.installed,
        path=agent_status.path,
        version=agent_status.version,
    )


@router.get("/agents", response_model=list[AgentDefinitionResponse])
async def list_agents(
    request: Request,
    path: str = Query(default=""),
    authorization: str = Header(default=""),
) -> list[AgentDefinitionResponse]:
    require_auth(request, authorization)
    definitions = get_agent_catalog(request).list_agents(path)
    return [
        AgentDefinitionResponse(
            name=definition.name,
            description=definition.description,
            model=definition.model,
            tools=definition.tools,
            source_path=definition.source_path,
        )
        for definition in definitions
    ]
