"""에이전트 이벤트 스트림을 호출자용 청크로 재구성하는 상태 기계예요.

파서는 프로세스나 레지스트리를 직접 건드리지 않아요. 줄 하나를 처리할 때마다
`StepOutcome`(발행할 청크 + 다음 상태)을 돌려주고, 멈출지 여부는 코디네이터가 판단해요.

도구 블록은 턴마다 하나만 추적해요. 새 `ToolBlockStart`가 오면 이전 블록은 버려지고,
인덱스가 다른 `ToolBlockStop`은 아무 일도 하지 않아요.
"""

from __future__ import annotations

import json
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from libs.common.logging import get_logger
from potato_service.bridge.approval import decide_tool_phase, halts_stream
from potato_service.bridge.chunks import OutgoingChunk, ToolActivity, ToolPhase, Usage
from potato_service.bridge.stream_events import (
    MalformedRecordError,
    SessionStarted,
    StreamEvent,
    TextDelta,
    ToolBlockStart,
    ToolBlockStop,
    ToolInputDelta,
    ToolResult,
    UsageReport,
    decode_line,
)

logger = get_logger("potato_service.stream_parser")


class StreamState(str, Enum):
    STREAMING = "streaming"
    HALTED_FOR_INTERACTION = "halted_for_interaction"
    END_OF_STREAM = "end_of_stream"


@dataclass(slots=True)
class ActiveToolBlock:
    index: int | None
    tool_name: str
    tool_id: str
    input_buffer: list[str] = field(default_factory=list)

    def parsed_input(self) -> Any:
        raw = "".join(self.input_buffer)
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None


@dataclass(slots=True)
class StepOutcome:
    chunks: list[OutgoingChunk]
    state: StreamState


class StreamParser:
    def __init__(self, *, allowed_tools: Collection[str] | None = None) -> None:
        self._allowed_tools = allowed_tools
        self._state = StreamState.STREAMING
        self._text_parts: list[str] = []
        self._session_id: str | None = None
        self._usage: Usage | None = None
        self._active_block: ActiveToolBlock | None = None
        self._tool_names: dict[str, str] = {}
        self._pending_tool: ToolActivity | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def usage(self) -> Usage | None:
        return self._usage

    @property
    def pending_tool(self) -> ToolActivity | None:
        """스트림을 멈추게 만든 도구 활동이에요. 멈추지 않았으면 None이에요."""
        return self._pending_tool

    @property
    def active_block(self) -> ActiveToolBlock | None:
        return self._active_block

    def feed_line(self, line: str) -> StepOutcome:
        if self._state is not StreamState.STREAMING:
            return StepOutcome(chunks=[], state=self._state)

        try:
            events = decode_line(line)
        except MalformedRecordError as exc:
            logger.debug("stream_record_skipped", reason=str(exc))
            return StepOutcome(chunks=[], state=self._state)

        chunks: list[OutgoingChunk] = []
        for event in events:
            chunk = self._apply(event)
            if chunk is not None:
                chunks.append(chunk)
            if self._state is not StreamState.STREAMING:
                break
        return StepOutcome(chunks=chunks, state=self._state)

    def finish(self) -> StreamState:
        """stdout이 닫혔을 때 호출해요. 이미 멈춘 상태는 그대로 유지해요."""
        if self._state is StreamState.STREAMING:
            self._state = StreamState.END_OF_STREAM
        return self._state

    def _apply(self, event: StreamEvent) -> OutgoingChunk | None:
        if isinstance(event, SessionStarted):
            if self._session_id is not None:
                return None
            self._session_id = event.session_id
            return OutgoingChunk.session(event.session_id)

        if isinstance(event, TextDelta):
            self._text_parts.append(event.text)
            return OutgoingChunk.text(event.text)

        if isinstance(event, ToolInputDelta):
            if self._active_block is not None:
                self._active_block.input_buffer.append(event.partial_json)
            return None

        if isinstance(event, ToolBlockStart):
            self._active_block = ActiveToolBlock(
                index=event.index,
                tool_name=event.tool_name,
                tool_id=event.tool_id,
            )
            if event.tool_id:
                self._tool_names[event.tool_id] = event.tool_name
            return None

        if isinstance(event, ToolBlockStop):
            return self._close_block(event)

        if isinstance(event, ToolResult):
            return OutgoingChunk.tool_activity(
                ToolActivity(
                    tool_name=event.tool_name or self._tool_names.get(event.tool_id, ""),
                    tool_id=event.tool_id,
                    phase=ToolPhase.RESULT,
                    result=event.content,
                    is_error=event.is_error,
                )
            )

        if isinstance(event, UsageReport):
            self._usage = Usage.aggregate(
                input_tokens=event.input_tokens,
                cache_creation_input_tokens=event.cache_creation_input_tokens,
                cache_read_input_tokens=event.cache_read_input_tokens,
                output_tokens=event.output_tokens,
            )
            return None

        return None

    def _close_block(self, event: ToolBlockStop) -> OutgoingChunk | None:
        block = self._active_block
        if block is None or block.index != event.index:
            return None

        phase = decide_tool_phase(block.tool_name, self._allowed_tools)
        activity = ToolActivity(
            tool_name=block.tool_name,
            tool_id=block.tool_id,
            phase=phase,
            input=block.parsed_input(),
        )
        if halts_stream(phase):
            logger.info(
                "tool_approval_required",
                tool_name=block.tool_name,
                tool_id=block.tool_id,
                phase=phase.value,
            )
            self._pending_tool = activity
            self._state = StreamState.HALTED_FOR_INTERACTION
        else:
            self._active_block = None
        return OutgoingChunk.tool_activity(activity)
