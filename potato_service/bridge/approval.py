from __future__ import annotations

from collections.abc import Collection

from potato_service.bridge.chunks import ToolPhase

# 사용자에게 직접 질문하는 도구예요. 허용 목록과 관계없이 항상 사람 입력이 필요해요.
INTERACTIVE_QUESTION_TOOL = "AskUserQuestion"


def decide_tool_phase(tool_name: str, allowed_tools: Collection[str] | None) -> ToolPhase:
    if tool_name == INTERACTIVE_QUESTION_TOOL:
        return ToolPhase.ASK
    if allowed_tools is not None and tool_name not in allowed_tools:
        return ToolPhase.APPROVAL
    return ToolPhase.START


def halts_stream(phase: ToolPhase) -> bool:
    """사람의 응답을 기다려야 하는 단계면 스트림을 멈춰요."""
    return phase in (ToolPhase.ASK, ToolPhase.APPROVAL)
