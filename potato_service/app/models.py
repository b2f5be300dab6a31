from __future__ import annotations

from pydantic import BaseModel, Field

from potato_service.bridge.contracts import ConversationTurn


class SendMessageRequest(BaseModel):
    message: str = Field(min_length=1)
    process_id: str = Field(min_length=1)
    session_id: str | None = None
    model: str | None = None
    working_dir: str | None = None
    allowed_tools: list[str] | None = None
    system_prompt: str | None = None

    def to_turn(self, *, default_model: str = "") -> ConversationTurn:
        return ConversationTurn(
            message=self.message,
            process_id=self.process_id,
            session_id=self.session_id or None,
            model=self.model or default_model or None,
            working_dir=self.working_dir or None,
            allowed_tools=frozenset(self.allowed_tools) if self.allowed_tools is not None else None,
            system_prompt=self.system_prompt or None,
        )


class CancelTurnResponse(BaseModel):
    process_id: str
    status: str


class ActiveTurnsResponse(BaseModel):
    process_ids: list[str]


class AgentStatusResponse(BaseModel):
    installed: bool
    path: str | None = None
    version: str | None = None


class AgentDefinitionResponse(BaseModel):
    name: str
    description: str
    model: str
    tools: list[str] = Field(default_factory=list)
    source_path: str
