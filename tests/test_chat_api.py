from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from potato_service.app.main import create_app
from potato_service.app.settings import Settings
from potato_service.bootstrap import build_runtime_components
from tests.conftest import FakeAgent, init_record, result_record, text_event

_TOKEN = "test-token"
_AUTH = {"Authorization": f"Bearer {_TOKEN}"}


def _build_app(tmp_path: Path, agent_path: Path) -> FastAPI:
    app_settings = Settings(api_token=_TOKEN, agent_executable=str(agent_path), turn_worker_count=1)
    runtime = build_runtime_components(app_settings, home_dir=tmp_path / "home")
    return create_app(app_settings, runtime=runtime)


@asynccontextmanager
async def _serve(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """lifespan까지 돌린 앱에 붙는 클라이언트예요."""
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://bridge.test") as client:
            yield client


@pytest_asyncio.fixture
async def client(tmp_path: Path, fake_agent: FakeAgent) -> AsyncIterator[httpx.AsyncClient]:
    async with _serve(_build_app(tmp_path, fake_agent.path)) as api_client:
        yield api_client


def _records(body: str) -> list[dict[str, Any]]:
    return [json.loads(line) for line in body.splitlines() if line.strip()]


@pytest.mark.asyncio
async def test_send_message_requires_bearer_token(client: httpx.AsyncClient) -> None:
    response = await client.post("/v1/chat/turns", json={"message": "hi", "process_id": "turn-1"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_send_message_streams_chunks_then_result(client: httpx.AsyncClient, fake_agent: FakeAgent) -> None:
    fake_agent.configure([init_record("sess-9"), text_event("Hola "), text_event("mundo"), result_record(1, 0, 0, 2)])

    response = await client.post(
        "/v1/chat/turns",
        json={"message": "hi", "process_id": "turn-1"},
        headers=_AUTH,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    records = _records(response.text)
    chunk_records = [record["data"] for record in records if record["type"] == "chunk"]
    assert chunk_records[0] == {"content": "", "done": False, "session_id": "sess-9"}
    assert [chunk["content"] for chunk in chunk_records[1:3]] == ["Hola ", "mundo"]
    assert chunk_records[-1]["done"] is True
    assert chunk_records[-1]["usage"] == {"input_tokens": 1, "output_tokens": 2}

    final = records[-1]
    assert final["type"] == "result"
    assert final["data"]["text"] == "Hola mundo"
    assert final["data"]["outcome"] == "completed"
    assert final["data"]["session_id"] == "sess-9"


@pytest.mark.asyncio
async def test_failed_turn_ends_stream_with_error_record(client: httpx.AsyncClient, fake_agent: FakeAgent) -> None:
    fake_agent.configure([], stderr="Error: bad flag\n", exit_code=1)

    response = await client.post(
        "/v1/chat/turns",
        json={"message": "hi", "process_id": "turn-1"},
        headers=_AUTH,
    )

    records = _records(response.text)
    assert records[-2] == {"type": "chunk", "data": {"content": "", "done": True}}
    assert records[-1]["type"] == "error"
    assert records[-1]["data"]["error_code"] == "AGENT_PROCESS_FAILED"
    assert records[-1]["data"]["message"] == "Error: bad flag"


@pytest.mark.asyncio
async def test_send_message_reports_missing_agent_before_streaming(tmp_path: Path) -> None:
    app = _build_app(tmp_path, tmp_path / "not-there" / "claude")
    async with _serve(app) as client:
        response = await client.post(
            "/v1/chat/turns",
            json={"message": "hi", "process_id": "turn-1"},
            headers=_AUTH,
        )

        assert response.status_code == 503
        assert response.json()["error_code"] == "AGENT_NOT_INSTALLED"

        status_response = await client.get("/v1/agent/status", headers=_AUTH)
        assert status_response.json() == {"installed": False, "path": None, "version": None}


@pytest.mark.asyncio
async def test_cancel_unknown_process_returns_not_found(client: httpx.AsyncClient) -> None:
    response = await client.post("/v1/chat/turns/ghost/cancel", headers=_AUTH)

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "NO_ACTIVE_PROCESS"
    assert body["retryable"] is False
    assert body["trace_id"]


@pytest.mark.asyncio
async def test_active_turns_is_empty_when_idle(client: httpx.AsyncClient) -> None:
    response = await client.get("/v1/chat/turns", headers=_AUTH)
    assert response.json() == {"process_ids": []}


@pytest.mark.asyncio
async def test_agent_status_reports_path_and_version(client: httpx.AsyncClient, fake_agent: FakeAgent) -> None:
    fake_agent.configure(["1.2.3 (fake agent)", "second line"])

    response = await client.get("/v1/agent/status", headers=_AUTH)

    assert response.status_code == 200
    assert response.json() == {"installed": True, "path": str(fake_agent.path), "version": "1.2.3 (fake agent)"}


@pytest.mark.asyncio
async def test_list_agents_merges_home_and_project(client: httpx.AsyncClient, tmp_path: Path) -> None:
    home_agents = tmp_path / "home" / ".claude" / "agents"
    project_agents = tmp_path / "vault" / ".claude" / "agents"
    home_agents.mkdir(parents=True)
    project_agents.mkdir(parents=True)
    (home_agents / "writer.md").write_text("---\nname: writer\nmodel: haiku\n---\n", encoding="utf-8")
    (project_agents / "writer.md").write_text(
        "---\nname: writer\ndescription: 프로젝트 작가예요.\ntools: [Read, Write]\n---\n",
        encoding="utf-8",
    )

    response = await client.get("/v1/agents", params={"path": str(tmp_path / "vault")}, headers=_AUTH)

    assert response.status_code == 200
    [writer] = response.json()
    assert writer["description"] == "프로젝트 작가예요."
    assert writer["model"] == "inherit"
    assert writer["tools"] == ["Read", "Write"]


@pytest.mark.asyncio
async def test_list_agents_rejects_missing_directory(client: httpx.AsyncClient, tmp_path: Path) -> None:
    response = await client.get("/v1/agents", params={"path": str(tmp_path / "nope")}, headers=_AUTH)

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_health_endpoints(client: httpx.AsyncClient) -> None:
    live = await client.get("/v1/health/live")
    ready = await client.get("/v1/health/ready")

    assert live.json() == {"status": "ok"}
    assert ready.status_code == 200
