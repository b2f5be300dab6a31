from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from libs.common.errors import DomainError, envelope_from_error
from libs.common.logging import get_logger
from potato_service.bridge.chunks import OutgoingChunk
from potato_service.bridge.contracts import ChunkSinkProtocol, ConversationTurn, TurnResult
from potato_service.bridge.errors import AgentInternalError, ProcessAlreadyActiveError
from potato_service.bridge.registry import ProcessRegistry
from potato_service.modules.chat.worker import TurnWorkerPool

logger = get_logger("potato_service.chat_service")


class QueueChunkSink:
    """코디네이터가 발행한 청크를 HTTP 스트림 쪽으로 넘겨주는 큐예요. None은 스트림 끝이에요."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[OutgoingChunk | None] = asyncio.Queue()

    async def publish(self, chunk: OutgoingChunk) -> None:
        await self._queue.put(chunk)

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def next_chunk(self) -> OutgoingChunk | None:
        return await self._queue.get()


class ChatService:
    """대화 턴 제출, 스트리밍, 취소 유스케이스를 담당해요."""

    def __init__(
        self,
        *,
        worker_pool: TurnWorkerPool,
        registry: ProcessRegistry,
        executable_resolver: Callable[[], Path],
    ) -> None:
        self._worker_pool = worker_pool
        self._registry = registry
        self._executable_resolver = executable_resolver

    @property
    def ready(self) -> bool:
        return self._worker_pool.running

    def ensure_can_start(self, turn: ConversationTurn) -> None:
        """스트림을 열기 전에 흔한 실패를 미리 확인해요. 최종 판정은 코디네이터가 해요."""
        self._executable_resolver()
        if self._registry.is_active(turn.process_id) or self._worker_pool.is_reserved(turn.process_id):
            raise ProcessAlreadyActiveError(turn.process_id)

    async def run_turn(self, turn: ConversationTurn, sink: ChunkSinkProtocol) -> TurnResult:
        future = await self._worker_pool.submit(turn, sink)
        return await future

    async def start_stream(self, turn: ConversationTurn) -> AsyncIterator[dict[str, Any]]:
        """턴을 풀에 제출하고 결과 레코드 이터레이터를 돌려줘요.

        제출은 응답을 열기 전에 끝나요. 대기열에 있는 턴도 process_id로 취소할 수 있어요.
        """
        self.ensure_can_start(turn)
        sink = QueueChunkSink()
        future = await self._worker_pool.submit(turn, sink)
        future.add_done_callback(lambda _: sink.close())
        return self._relay(turn, sink, future)

    async def _relay(
        self,
        turn: ConversationTurn,
        sink: QueueChunkSink,
        future: asyncio.Future[TurnResult],
    ) -> AsyncIterator[dict[str, Any]]:
        """청크 레코드들을 내보내고 마지막에 result 또는 error 레코드 하나로 끝내요."""
        try:
            while True:
                chunk = await sink.next_chunk()
                if chunk is None:
                    break
                yield {"type": "chunk", "data": chunk.to_dict()}
            yield self._final_record(future)
        finally:
            if not future.done():
                self._abandon(turn, future)

    def cancel(self, process_id: str) -> None:
        """대기 중인 턴이면 풀에서 빼고, 실행 중이면 프로세스를 종료해요."""
        if self._worker_pool.cancel_queued(process_id):
            return
        self._registry.cancel(process_id)

    def active_process_ids(self) -> list[str]:
        return self._registry.active_ids()

    def _final_record(self, future: asyncio.Future[TurnResult]) -> dict[str, Any]:
        try:
            result = future.result()
        except asyncio.CancelledError:
            error: DomainError = AgentInternalError("서비스가 종료되면서 턴이 중단됐어요.")
            return {"type": "error", "data": envelope_from_error(error).to_dict()}
        except DomainError as exc:
            return {"type": "error", "data": envelope_from_error(exc).to_dict()}

        return {
            "type": "result",
            "data": {
                "text": result.text,
                "outcome": result.outcome.value,
                "session_id": result.session_id,
                "usage": result.usage.to_dict() if result.usage else None,
                "pending_tool": result.pending_tool.to_dict() if result.pending_tool else None,
            },
        }

    def _abandon(self, turn: ConversationTurn, future: asyncio.Future[TurnResult]) -> None:
        """클라이언트가 스트림을 끊었어요. 실행 중인 턴은 취소해서 프로세스를 정리해요."""
        logger.info("turn_stream_abandoned", process_id=turn.process_id)
        self._worker_pool.abandon(future)
