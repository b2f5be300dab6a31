from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass

from libs.common.errors import DomainError
from libs.common.logging import get_logger
from potato_service.bridge.contracts import ChunkSinkProtocol, ConversationTurn, TurnOutcome, TurnResult
from potato_service.bridge.coordinator import TurnCoordinator
from potato_service.bridge.errors import AgentInternalError, ProcessAlreadyActiveError

logger = get_logger("potato_service.turn_worker")


@dataclass(slots=True)
class QueuedTurn:
    turn: ConversationTurn
    sink: ChunkSinkProtocol
    future: asyncio.Future[TurnResult]


class TurnWorkerPool:
    """제출된 턴을 큐에서 꺼내 코디네이터로 실행하는 워커 풀이에요.

    워커 수가 동시에 떠 있을 수 있는 에이전트 프로세스 수의 상한이에요.
    결과와 오류는 제출할 때 받은 future로 돌려줘요.
    process_id는 제출부터 턴이 끝날 때까지 풀에 예약돼요.
    """

    def __init__(self, coordinator: TurnCoordinator, *, worker_count: int, queue_size: int = 100) -> None:
        self._coordinator = coordinator
        self._worker_count = worker_count
        self._queue: asyncio.Queue[QueuedTurn] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task[None]] = []
        self._inflight: dict[asyncio.Future[TurnResult], asyncio.Task[TurnResult]] = {}
        self._reserved: dict[str, QueuedTurn] = {}
        self._closing = False

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._closing

    async def start(self) -> None:
        if self._tasks:
            return
        self._closing = False
        for idx in range(self._worker_count):
            self._tasks.append(asyncio.create_task(self._worker_loop(idx)))

    async def stop(self) -> None:
        """워커를 취소해요. 실행 중인 턴은 코디네이터가 프로세스를 정리하고 끝나요."""
        self._closing = True
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

        while not self._queue.empty():
            queued = self._queue.get_nowait()
            queued.future.cancel()
            self._release(queued)
            self._queue.task_done()

    def is_reserved(self, process_id: str) -> bool:
        return process_id in self._reserved

    async def submit(self, turn: ConversationTurn, sink: ChunkSinkProtocol) -> asyncio.Future[TurnResult]:
        if turn.process_id in self._reserved:
            raise ProcessAlreadyActiveError(turn.process_id)

        future: asyncio.Future[TurnResult] = asyncio.get_running_loop().create_future()
        queued = QueuedTurn(turn=turn, sink=sink, future=future)
        self._reserved[turn.process_id] = queued
        try:
            await self._queue.put(queued)
        except BaseException:
            self._release(queued)
            raise
        logger.debug("turn_enqueued", process_id=turn.process_id, pending=self._queue.qsize())
        return future

    def cancel_queued(self, process_id: str) -> bool:
        """아직 워커가 집어가지 않은 턴을 취소해요. 실행 중이거나 없으면 False예요.

        취소된 턴은 빈 텍스트의 CANCELLED 결과로 끝나고 프로세스는 띄우지 않아요.
        """
        queued = self._reserved.get(process_id)
        if queued is None or queued.future.done() or queued.future in self._inflight:
            return False

        queued.future.set_result(TurnResult(text="", outcome=TurnOutcome.CANCELLED))
        self._release(queued)
        logger.info("queued_turn_cancelled", process_id=process_id)
        return True

    def abandon(self, future: asyncio.Future[TurnResult]) -> None:
        """결과를 기다리는 쪽이 사라졌어요. 대기 중이면 건너뛰고, 실행 중이면 턴을 취소해요."""
        run_task = self._inflight.get(future)
        if run_task is not None:
            run_task.cancel()
        future.cancel()

    async def _worker_loop(self, worker_index: int) -> None:
        while not self._closing:
            queued = await self._queue.get()
            try:
                if queued.future.done():
                    logger.info("turn_skipped", process_id=queued.turn.process_id)
                    continue
                result = await self._run(queued)
            except asyncio.CancelledError:
                queued.future.cancel()
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                logger.info("turn_abandoned", worker_index=worker_index, process_id=queued.turn.process_id)
            except DomainError as exc:
                log_level = logger.warning if exc.retryable else logger.error
                log_level(
                    "turn_domain_error",
                    worker_index=worker_index,
                    process_id=queued.turn.process_id,
                    error_code=exc.error_code,
                    retryable=exc.retryable,
                    error=str(exc),
                )
                if not queued.future.done():
                    queued.future.set_exception(exc)
            except Exception as exc:
                logger.exception(
                    "turn_unexpected_error",
                    worker_index=worker_index,
                    process_id=queued.turn.process_id,
                    error=str(exc),
                )
                if not queued.future.done():
                    queued.future.set_exception(
                        AgentInternalError(f"턴 처리 중 예상치 못한 오류가 발생했어요: {exc}")
                    )
            else:
                if not queued.future.done():
                    queued.future.set_result(result)
            finally:
                self._release(queued)
                self._queue.task_done()

    async def _run(self, queued: QueuedTurn) -> TurnResult:
        run_task = asyncio.create_task(self._coordinator.run(queued.turn, queued.sink))
        self._inflight[queued.future] = run_task
        try:
            return await run_task
        finally:
            self._inflight.pop(queued.future, None)

    def _release(self, queued: QueuedTurn) -> None:
        # 같은 id로 다시 제출된 턴의 예약은 건드리지 않아요
        if self._reserved.get(queued.turn.process_id) is queued:
            del self._reserved[queued.turn.process_id]
