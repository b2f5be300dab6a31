from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ToolPhase(str, Enum):
    START = "start"
    APPROVAL = "approval"
    ASK = "ask"
    RESULT = "result"


@dataclass(slots=True, frozen=True)
class Usage:
    input_tokens: int
    output_tokens: int

    @classmethod
    def aggregate(
        cls,
        *,
        input_tokens: int,
        cache_creation_input_tokens: int,
        cache_read_input_tokens: int,
        output_tokens: int,
    ) -> "Usage":
        """입력 측 세 카운터는 같은 과금 자원이라 하나로 합쳐요."""
        return cls(
            input_tokens=input_tokens + cache_creation_input_tokens + cache_read_input_tokens,
            output_tokens=output_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass(slots=True, frozen=True)
class ToolActivity:
    tool_name: str
    tool_id: str
    phase: ToolPhase
    input: Any = None
    result: Any = None
    is_error: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "tool_name": self.tool_name,
            "tool_id": self.tool_id,
            "phase": self.phase.value,
        }
        if self.input is not None:
            payload["input"] = self.input
        if self.result is not None:
            payload["result"] = self.result
        if self.is_error is not None:
            payload["is_error"] = self.is_error
        return payload


@dataclass(slots=True, frozen=True)
class OutgoingChunk:
    """호출자에게 전달되는 유일한 스트림 단위예요. 턴마다 done=True 청크로 끝나요."""

    content: str = ""
    done: bool = False
    session_id: str | None = None
    usage: Usage | None = None
    tool: ToolActivity | None = None

    @classmethod
    def text(cls, content: str) -> "OutgoingChunk":
        return cls(content=content)

    @classmethod
    def session(cls, session_id: str) -> "OutgoingChunk":
        return cls(session_id=session_id)

    @classmethod
    def tool_activity(cls, activity: ToolActivity) -> "OutgoingChunk":
        return cls(tool=activity)

    @classmethod
    def terminal(cls, usage: Usage | None) -> "OutgoingChunk":
        return cls(done=True, usage=usage)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": self.content, "done": self.done}
        if self.session_id is not None:
            payload["session_id"] = self.session_id
        if self.usage is not None:
            payload["usage"] = self.usage.to_dict()
        if self.tool is not None:
            payload["tool"] = self.tool.to_dict()
        return payload
