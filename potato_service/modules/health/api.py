from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from potato_service.modules.common.deps import get_chat_service

router = APIRouter()


@router.get("/health/live")
async def health_live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request) -> dict[str, str]:
    if not get_chat_service(request).ready:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="턴 워커가 실행 중이 아니에요.")
    return {"status": "ok"}
