"""에이전트 stdout의 NDJSON 레코드를 타입이 있는 스트림 이벤트로 변환해요.

레코드 한 줄은 한 번만 해석해요. 하나의 레코드에서 여러 이벤트가 나올 수 있어서
(세션 id + 본문, tool_result 여러 개) 항상 순서가 보장된 리스트를 반환해요.
알 수 없는 레코드는 버리지 않고 `Unrecognized`로 표현해요.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(slots=True, frozen=True)
class SessionStarted:
    session_id: str


@dataclass(slots=True, frozen=True)
class TextDelta:
    text: str


@dataclass(slots=True, frozen=True)
class ToolBlockStart:
    index: int | None
    tool_name: str
    tool_id: str


@dataclass(slots=True, frozen=True)
class ToolInputDelta:
    index: int | None
    partial_json: str


@dataclass(slots=True, frozen=True)
class ToolBlockStop:
    index: int | None


@dataclass(slots=True, frozen=True)
class ToolResult:
    tool_id: str
    tool_name: str
    content: Any
    is_error: bool


@dataclass(slots=True, frozen=True)
class UsageReport:
    input_tokens: int
    cache_creation_input_tokens: int
    cache_read_input_tokens: int
    output_tokens: int


@dataclass(slots=True, frozen=True)
class Unrecognized:
    kind: str


StreamEvent = Union[
    SessionStarted,
    TextDelta,
    ToolBlockStart,
    ToolInputDelta,
    ToolBlockStop,
    ToolResult,
    UsageReport,
    Unrecognized,
]


class MalformedRecordError(ValueError):
    """JSON 객체로 해석할 수 없는 줄이에요. 파서가 잡아서 건너뛰어요."""


def decode_line(line: str) -> list[StreamEvent]:
    """NDJSON 한 줄을 이벤트 리스트로 변환해요.

    빈 줄은 빈 리스트를 반환하고, JSON 객체가 아니면 `MalformedRecordError`를 던져요.
    """
    stripped = line.strip()
    if not stripped:
        return []
    try:
        record = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise MalformedRecordError(f"JSON으로 해석할 수 없어요: {exc.msg}") from exc
    if not isinstance(record, dict):
        raise MalformedRecordError(f"JSON 객체가 아니에요: {type(record).__name__}")
    return decode_record(record)


def decode_record(record: dict[str, Any]) -> list[StreamEvent]:
    events: list[StreamEvent] = []

    session_id = record.get("session_id")
    if isinstance(session_id, str) and session_id:
        events.append(SessionStarted(session_id=session_id))

    kind = record.get("type")
    if kind == "stream_event":
        events.append(_decode_stream_event(record.get("event")))
    elif kind == "user":
        events.extend(_decode_tool_results(record))
    elif kind == "result":
        events.append(_decode_usage(record.get("usage")))
    else:
        events.append(Unrecognized(kind=str(kind)))
    return events


def _decode_stream_event(event: object) -> StreamEvent:
    if not isinstance(event, dict):
        return Unrecognized(kind="stream_event")

    event_type = event.get("type")
    index = _optional_int(event.get("index"))

    if event_type == "content_block_delta":
        delta = event.get("delta")
        if not isinstance(delta, dict):
            return Unrecognized(kind="content_block_delta")
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            return TextDelta(text=_str(delta.get("text")))
        if delta_type == "input_json_delta":
            return ToolInputDelta(index=index, partial_json=_str(delta.get("partial_json")))
        return Unrecognized(kind=f"content_block_delta.{delta_type}")

    if event_type == "content_block_start":
        block = event.get("content_block")
        if isinstance(block, dict) and block.get("type") == "tool_use":
            return ToolBlockStart(
                index=index,
                tool_name=_str(block.get("name")),
                tool_id=_str(block.get("id")),
            )
        return Unrecognized(kind="content_block_start")

    if event_type == "content_block_stop":
        return ToolBlockStop(index=index)

    return Unrecognized(kind=str(event_type))


def _decode_tool_results(record: dict[str, Any]) -> list[StreamEvent]:
    message = record.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, list):
        return [Unrecognized(kind="user")]

    tool_use_result = record.get("tool_use_result")
    tool_name = ""
    if isinstance(tool_use_result, dict):
        tool_name = _str(tool_use_result.get("tool_name"))

    results: list[StreamEvent] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "tool_result":
            continue
        results.append(
            ToolResult(
                tool_id=_str(item.get("tool_use_id")),
                tool_name=tool_name,
                content=item.get("content"),
                is_error=item.get("is_error") is True,
            )
        )
    return results or [Unrecognized(kind="user")]


def _decode_usage(usage: object) -> StreamEvent:
    if not isinstance(usage, dict):
        return Unrecognized(kind="result")
    return UsageReport(
        input_tokens=_count(usage.get("input_tokens")),
        cache_creation_input_tokens=_count(usage.get("cache_creation_input_tokens")),
        cache_read_input_tokens=_count(usage.get("cache_read_input_tokens")),
        output_tokens=_count(usage.get("output_tokens")),
    )


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _optional_int(value: object) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _count(value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return 0
