"""대화 턴 하나를 처음부터 끝까지 책임지는 코디네이터예요.

상태 흐름은 Launching → Streaming → {Completed | Interrupted | Cancelled | Failed}예요.

- 실행 단계에서 실패하면 청크 없이 예외만 던져요.
- 스트리밍 중에는 stderr 수집 태스크가 동시에 돌아서 파이프가 가득 차 멈추는 일을 막아요.
- 어떤 경로로 끝나든 프로세스 수거, stderr 태스크 join, 레지스트리 해제를 먼저 하고
  그다음에 done 청크를 딱 한 번 발행해요.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from libs.common.logging import get_logger
from potato_service.bridge.chunks import OutgoingChunk
from potato_service.bridge.contracts import (
    ChunkSinkProtocol,
    ConversationTurn,
    TurnOutcome,
    TurnResult,
)
from potato_service.bridge.errors import (
    AgentInternalError,
    AgentProcessError,
    AgentTimeoutError,
    NoActiveProcessError,
    ProcessAlreadyActiveError,
)
from potato_service.bridge.launcher import DEFAULT_LINE_LIMIT_BYTES, launch_agent
from potato_service.bridge.registry import ProcessRegistry
from potato_service.bridge.stream_parser import StreamParser, StreamState

logger = get_logger("potato_service.turn_coordinator")

# terminate 이후 이 시간 안에 끝나지 않으면 kill로 넘어가요
TERMINATE_GRACE_SECONDS = 5.0


@dataclass(slots=True)
class _ProcessExit:
    exit_code: int
    stderr_text: str
    drain_error: BaseException | None
    cancelled_externally: bool


class TurnCoordinator:
    def __init__(
        self,
        *,
        registry: ProcessRegistry,
        executable_resolver: Callable[[], Path],
        line_limit_bytes: int = DEFAULT_LINE_LIMIT_BYTES,
        timeout_seconds: float | None = None,
    ) -> None:
        self._registry = registry
        self._executable_resolver = executable_resolver
        self._line_limit_bytes = line_limit_bytes
        self._timeout_seconds = timeout_seconds

    async def run(self, turn: ConversationTurn, sink: ChunkSinkProtocol) -> TurnResult:
        process = await self._launch(turn)
        parser = StreamParser(allowed_tools=turn.allowed_tools)
        stderr_task = asyncio.create_task(_drain_stream(process.stderr))

        timed_out = False
        try:
            timed_out = await self._stream(turn, process, parser, sink)
        finally:
            exit_info = await self._reap(turn, process, parser, stderr_task)

        await sink.publish(OutgoingChunk.terminal(parser.usage))

        if exit_info.drain_error is not None:
            raise AgentInternalError(
                f"stderr 수집 태스크가 실패했어요: {exit_info.drain_error}"
            ) from exit_info.drain_error

        return self._resolve(turn, parser, exit_info, timed_out)

    async def _launch(self, turn: ConversationTurn) -> asyncio.subprocess.Process:
        executable = self._executable_resolver()
        process = await launch_agent(executable, turn, line_limit_bytes=self._line_limit_bytes)
        try:
            self._registry.register(turn.process_id, process)
        except ProcessAlreadyActiveError:
            logger.warning("turn_duplicate_process_id", process_id=turn.process_id, pid=process.pid)
            await _terminate_and_wait(process)
            raise
        logger.info("turn_started", process_id=turn.process_id, pid=process.pid)
        return process

    async def _stream(
        self,
        turn: ConversationTurn,
        process: asyncio.subprocess.Process,
        parser: StreamParser,
        sink: ChunkSinkProtocol,
    ) -> bool:
        """스트림을 끝까지 읽어요. 타임아웃으로 끊겼으면 True를 반환해요."""
        consume = self._consume(turn, process, parser, sink)
        if self._timeout_seconds is None:
            await consume
            return False
        try:
            await asyncio.wait_for(consume, timeout=self._timeout_seconds)
        except TimeoutError:
            logger.warning(
                "turn_timeout",
                process_id=turn.process_id,
                timeout_seconds=self._timeout_seconds,
            )
            return True
        return False

    async def _consume(
        self,
        turn: ConversationTurn,
        process: asyncio.subprocess.Process,
        parser: StreamParser,
        sink: ChunkSinkProtocol,
    ) -> None:
        stdout = process.stdout
        if stdout is None:
            parser.finish()
            return

        while True:
            try:
                raw_line = await stdout.readline()
            except ValueError as exc:
                # 한 줄이 버퍼 한도를 넘었어요. 해당 레코드만 버리고 계속 읽어요.
                logger.warning("stream_record_too_large", process_id=turn.process_id, error=str(exc))
                continue
            if not raw_line:
                break

            outcome = parser.feed_line(raw_line.decode("utf-8", errors="replace"))
            for chunk in outcome.chunks:
                await sink.publish(chunk)
            if outcome.state is StreamState.HALTED_FOR_INTERACTION:
                self._halt_for_interaction(turn)
                return

        parser.finish()

    def _halt_for_interaction(self, turn: ConversationTurn) -> None:
        try:
            self._registry.cancel(turn.process_id)
        except NoActiveProcessError:
            # 바깥에서 먼저 취소한 경우예요
            logger.debug("turn_halt_already_cancelled", process_id=turn.process_id)

    async def _reap(
        self,
        turn: ConversationTurn,
        process: asyncio.subprocess.Process,
        parser: StreamParser,
        stderr_task: asyncio.Task[str],
    ) -> _ProcessExit:
        if parser.state is not StreamState.END_OF_STREAM:
            exit_code = await _terminate_and_wait(process)
        else:
            exit_code = await process.wait()

        stderr_text = ""
        drain_error: BaseException | None = None
        try:
            stderr_text = await stderr_task
        except Exception as exc:
            drain_error = exc
            logger.error("turn_stderr_drain_failed", process_id=turn.process_id, error=str(exc))

        cancelled_externally = not self._registry.unregister(turn.process_id)
        return _ProcessExit(
            exit_code=exit_code,
            stderr_text=stderr_text,
            drain_error=drain_error,
            cancelled_externally=cancelled_externally,
        )

    def _resolve(
        self,
        turn: ConversationTurn,
        parser: StreamParser,
        exit_info: _ProcessExit,
        timed_out: bool,
    ) -> TurnResult:
        text = parser.text

        if parser.state is StreamState.HALTED_FOR_INTERACTION:
            outcome = TurnOutcome.INTERRUPTED
        elif timed_out:
            raise AgentTimeoutError(self._timeout_seconds or 0.0)
        # 정상 종료한 뒤에 들어온 취소는 완료로 봐요
        elif exit_info.cancelled_externally and exit_info.exit_code != 0:
            outcome = TurnOutcome.CANCELLED
        elif exit_info.exit_code == 0 or text:
            outcome = TurnOutcome.COMPLETED
        else:
            message = exit_info.stderr_text.strip() or f"exited with code {exit_info.exit_code}"
            logger.warning(
                "turn_failed",
                process_id=turn.process_id,
                exit_code=exit_info.exit_code,
                error=message,
            )
            raise AgentProcessError(message, exit_code=exit_info.exit_code)

        usage = parser.usage
        logger.info(
            "turn_completed",
            process_id=turn.process_id,
            outcome=outcome.value,
            exit_code=exit_info.exit_code,
            text_length=len(text),
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
        )
        return TurnResult(
            text=text,
            outcome=outcome,
            session_id=parser.session_id,
            usage=usage,
            pending_tool=parser.pending_tool,
        )


async def _drain_stream(stream: asyncio.StreamReader | None) -> str:
    if stream is None:
        return ""
    data = await stream.read()
    return data.decode("utf-8", errors="replace")


async def _terminate_and_wait(process: asyncio.subprocess.Process) -> int:
    if process.returncode is None:
        try:
            process.terminate()
        except ProcessLookupError:
            pass  # 이미 종료됐어요
        try:
            return await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            logger.warning("process_kill_after_grace", pid=process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass  # 유예 시간 직후에 스스로 종료했어요
    return await process.wait()
