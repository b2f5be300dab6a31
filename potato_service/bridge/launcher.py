"""에이전트 CLI 실행 파일을 찾고 턴별 인자로 프로세스를 띄워요."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from libs.common.logging import get_logger
from potato_service.bridge.contracts import ConversationTurn
from potato_service.bridge.errors import AgentLaunchError, AgentNotInstalledError

logger = get_logger("potato_service.launcher")

# 비대화형 + 구조화 스트리밍 출력 + 부분 메시지 포함 + 권한 확인 생략이에요.
BASE_AGENT_FLAGS: tuple[str, ...] = (
    "-p",
    "--output-format",
    "stream-json",
    "--verbose",
    "--include-partial-messages",
    "--dangerously-skip-permissions",
)

DEFAULT_LINE_LIMIT_BYTES = 16 * 1024 * 1024


def resolve_executable(configured_path: str | None, command_name: str = "claude") -> Path:
    """설정된 경로를 먼저 보고, 없으면 PATH에서 찾아요."""
    if configured_path:
        candidate = Path(configured_path).expanduser()
        if candidate.is_file():
            return candidate
        raise AgentNotInstalledError(f"설정된 에이전트 경로에 실행 파일이 없어요: {candidate}")

    found = shutil.which(command_name)
    if found is None:
        raise AgentNotInstalledError(f"PATH에서 `{command_name}` 실행 파일을 찾지 못했어요.")
    return Path(found)


def build_agent_args(turn: ConversationTurn) -> list[str]:
    args = list(BASE_AGENT_FLAGS)
    if turn.session_id:
        args.extend(["--resume", turn.session_id])
    if turn.model:
        args.extend(["--model", turn.model])
    if turn.system_prompt:
        args.extend(["--append-system-prompt", turn.system_prompt])
    # 메시지는 항상 마지막 위치 인자예요
    args.append(turn.message)
    return args


async def launch_agent(
    executable: Path,
    turn: ConversationTurn,
    *,
    line_limit_bytes: int = DEFAULT_LINE_LIMIT_BYTES,
) -> asyncio.subprocess.Process:
    args = build_agent_args(turn)
    try:
        process = await asyncio.create_subprocess_exec(
            str(executable),
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=turn.working_dir or None,
            limit=line_limit_bytes,
        )
    except OSError as exc:
        logger.error(
            "agent_launch_failed",
            process_id=turn.process_id,
            executable=str(executable),
            working_dir=turn.working_dir,
            error=str(exc),
        )
        raise AgentLaunchError(f"에이전트 프로세스를 시작하지 못했어요: {exc}") from exc

    logger.info(
        "agent_launched",
        process_id=turn.process_id,
        pid=process.pid,
        resume=bool(turn.session_id),
        model=turn.model,
        working_dir=turn.working_dir,
    )
    return process


async def probe_agent_version(executable: Path, *, timeout_seconds: float = 10.0) -> str | None:
    """`--version` 출력의 첫 줄을 반환해요. 실행이 실패하면 None이에요."""
    try:
        process = await asyncio.create_subprocess_exec(
            str(executable),
            "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.warning("agent_probe_failed", executable=str(executable), error=str(exc))
        return None

    try:
        stdout_bytes, _ = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass  # 이미 종료됐어요
        await process.wait()
        logger.warning("agent_probe_timeout", executable=str(executable), timeout_seconds=timeout_seconds)
        return None

    if process.returncode != 0:
        return None
    lines = stdout_bytes.decode("utf-8", errors="replace").strip().splitlines()
    return lines[0].strip() if lines else None
