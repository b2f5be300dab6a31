from __future__ import annotations

import json
import stat
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from potato_service.bridge.chunks import OutgoingChunk

# 테스트용 가짜 에이전트예요. 환경변수로 받은 파일 내용을 stdout으로 흘려보내요.
_FAKE_AGENT_SOURCE = """
import json
import os
import sys
import time

args_out = os.environ.get("FAKE_AGENT_ARGS_OUT")
if args_out:
    with open(args_out, "w", encoding="utf-8") as handle:
        json.dump({"argv": sys.argv[1:], "cwd": os.getcwd()}, handle)

stderr_text = os.environ.get("FAKE_AGENT_STDERR", "") * int(os.environ.get("FAKE_AGENT_STDERR_REPEAT", "1"))
stderr_first = os.environ.get("FAKE_AGENT_STDERR_FIRST") == "1"
if stderr_text and stderr_first:
    sys.stderr.write(stderr_text)
    sys.stderr.flush()

records_path = os.environ.get("FAKE_AGENT_RECORDS")
if records_path:
    with open(records_path, encoding="utf-8") as handle:
        for line in handle:
            sys.stdout.write(line)
            sys.stdout.flush()

if stderr_text and not stderr_first:
    sys.stderr.write(stderr_text)
    sys.stderr.flush()

if os.environ.get("FAKE_AGENT_HANG") == "1":
    time.sleep(60)

sys.exit(int(os.environ.get("FAKE_AGENT_EXIT_CODE", "0")))
"""


class RecordingSink:
    def __init__(self) -> None:
        self.chunks: list[OutgoingChunk] = []

    async def publish(self, chunk: OutgoingChunk) -> None:
        self.chunks.append(chunk)

    @property
    def texts(self) -> list[str]:
        return [chunk.content for chunk in self.chunks if chunk.content]


@dataclass(slots=True)
class FakeAgent:
    path: Path
    workdir: Path
    monkeypatch: pytest.MonkeyPatch

    def configure(
        self,
        records: list[Any],
        *,
        stderr: str = "",
        stderr_first: bool = False,
        stderr_repeat: int = 1,
        exit_code: int = 0,
        hang: bool = False,
    ) -> None:
        records_path = self.workdir / "records.ndjson"
        lines = [item if isinstance(item, str) else json.dumps(item) for item in records]
        records_path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        self.monkeypatch.setenv("FAKE_AGENT_RECORDS", str(records_path))
        self.monkeypatch.setenv("FAKE_AGENT_STDERR", stderr)
        self.monkeypatch.setenv("FAKE_AGENT_STDERR_FIRST", "1" if stderr_first else "0")
        self.monkeypatch.setenv("FAKE_AGENT_STDERR_REPEAT", str(stderr_repeat))
        self.monkeypatch.setenv("FAKE_AGENT_EXIT_CODE", str(exit_code))
        self.monkeypatch.setenv("FAKE_AGENT_HANG", "1" if hang else "0")

    def capture_args(self) -> Path:
        args_path = self.workdir / "args.json"
        self.monkeypatch.setenv("FAKE_AGENT_ARGS_OUT", str(args_path))
        return args_path


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fake_agent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeAgent:
    """파이썬 스크립트를 감싼 실행 가능한 가짜 에이전트 CLI예요."""
    workdir = tmp_path / "fake-agent"
    workdir.mkdir()
    script_path = workdir / "fake_agent.py"
    script_path.write_text(_FAKE_AGENT_SOURCE, encoding="utf-8")

    launcher_path = workdir / "claude"
    launcher_path.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{script_path}" "$@"\n',
        encoding="utf-8",
    )
    launcher_path.chmod(launcher_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    monkeypatch.delenv("FAKE_AGENT_ARGS_OUT", raising=False)
    agent = FakeAgent(path=launcher_path, workdir=workdir, monkeypatch=monkeypatch)
    agent.configure([])
    return agent


def stream_event(event: dict[str, Any], session_id: str = "sess-1") -> dict[str, Any]:
    return {"type": "stream_event", "session_id": session_id, "event": event}


def text_event(text: str, session_id: str = "sess-1") -> dict[str, Any]:
    return stream_event(
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}},
        session_id,
    )


def tool_start_event(index: int, name: str, tool_id: str) -> dict[str, Any]:
    return stream_event(
        {
            "type": "content_block_start",
            "index": index,
            "content_block": {"type": "tool_use", "name": name, "id": tool_id, "input": {}},
        }
    )


def tool_input_event(index: int, partial_json: str) -> dict[str, Any]:
    return stream_event(
        {"type": "content_block_delta", "index": index, "delta": {"type": "input_json_delta", "partial_json": partial_json}}
    )


def tool_stop_event(index: int) -> dict[str, Any]:
    return stream_event({"type": "content_block_stop", "index": index})


def tool_result_record(tool_id: str, content: Any, *, is_error: bool = False, tool_name: str | None = None) -> dict[str, Any]:
    record: dict[str, Any] = {
        "type": "user",
        "session_id": "sess-1",
        "message": {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": tool_id, "content": content, "is_error": is_error}],
        },
    }
    if tool_name is not None:
        record["tool_use_result"] = {"tool_name": tool_name}
    return record


def result_record(input_tokens: int = 10, cache_creation: int = 5, cache_read: int = 3, output_tokens: int = 7) -> dict[str, Any]:
    return {
        "type": "result",
        "subtype": "success",
        "session_id": "sess-1",
        "usage": {
            "input_tokens": input_tokens,
            "cache_creation_input_tokens": cache_creation,
            "cache_read_input_tokens": cache_read,
            "output_tokens": output_tokens,
        },
    }


def init_record(session_id: str = "sess-1") -> dict[str, Any]:
    return {"type": "system", "subtype": "init", "session_id": session_id, "tools": ["Read", "Write"]}
