from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Header, Request
from fastapi.responses import StreamingResponse

from libs.common.logging import get_logger
from potato_service.app.models import ActiveTurnsResponse, CancelTurnResponse, SendMessageRequest
from potato_service.modules.common.deps import get_chat_service, get_settings, require_auth

router = APIRouter()
logger = get_logger("potato_service.modules.chat")

NDJSON_MEDIA_TYPE = "application/x-ndjson"


@router.post("/chat/turns")
async def send_message(
    request: Request,
    req: SendMessageRequest,
    authorization: str = Header(default=""),
) -> StreamingResponse:
    require_auth(request, authorization)

    chat_service = get_chat_service(request)
    turn = req.to_turn(default_model=get_settings(request).default_model)

    logger.info(
        "turn_received",
        process_id=turn.process_id,
        resume=bool(turn.session_id),
        model=turn.model,
        working_dir=turn.working_dir,
        allowed_tool_count=len(turn.allowed_tools) if turn.allowed_tools is not None else None,
        message_length=len(turn.message),
    )
    records = await chat_service.start_stream(turn)
    return StreamingResponse(_encode_ndjson(records), media_type=NDJSON_MEDIA_TYPE)


@router.post("/chat/turns/{process_id}/cancel", response_model=CancelTurnResponse)
async def cancel_turn(
    request: Request,
    process_id: str,
    authorization: str = Header(default=""),
) -> CancelTurnResponse:
    require_auth(request, authorization)
    get_chat_service(request).cancel(process_id)
    return CancelTurnResponse(process_id=process_id, status="cancelling")


@router.get("/chat/turns", response_model=ActiveTurnsResponse)
async def list_active_turns(
    request: Request,
    authorization: str = Header(default=""),
) -> ActiveTurnsResponse:
    require_auth(request, authorization)
    return ActiveTurnsResponse(process_ids=get_chat_service(request).active_process_ids())


async def _encode_ndjson(records: AsyncIterator[dict[str, Any]]) -> AsyncIterator[str]:
    async for record in records:
        yield json.dumps(record, ensure_ascii=False) + "\n"
