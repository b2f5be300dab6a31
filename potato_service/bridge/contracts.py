from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from potato_service.bridge.chunks import OutgoingChunk, ToolActivity, Usage


class ChunkSinkProtocol(Protocol):
    async def publish(self, chunk: OutgoingChunk) -> None: ...


@dataclass(slots=True, frozen=True)
class ConversationTurn:
    message: str
    process_id: str
    session_id: str | None = None
    model: str | None = None
    working_dir: str | None = None
    allowed_tools: frozenset[str] | None = None
    system_prompt: str | None = None


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class TurnResult:
    text: str
    outcome: TurnOutcome
    session_id: str | None = None
    usage: Usage | None = None
    pending_tool: ToolActivity | None = None
