"""턴 id → 에이전트 프로세스 핸들 매핑을 소유하는 레지스트리예요.

모든 조회와 변경은 하나의 락으로 직렬화해요. 내부 dict는 밖으로 노출하지 않아요.
같은 process_id로 두 번 등록하면 `ProcessAlreadyActiveError`를 던져요.
"""

from __future__ import annotations

import threading
from typing import Protocol

from libs.common.logging import get_logger
from potato_service.bridge.errors import NoActiveProcessError, ProcessAlreadyActiveError

logger = get_logger("potato_service.process_registry")


class ProcessHandle(Protocol):
    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    def terminate(self) -> None: ...


class ProcessRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: dict[str, ProcessHandle] = {}

    def register(self, process_id: str, process: ProcessHandle) -> None:
        with self._lock:
            if process_id in self._processes:
                raise ProcessAlreadyActiveError(process_id)
            self._processes[process_id] = process
        logger.debug("process_registered", process_id=process_id, pid=process.pid)

    def unregister(self, process_id: str) -> bool:
        """신호 없이 항목만 제거해요. 이미 취소돼서 없으면 False를 반환해요."""
        with self._lock:
            removed = self._processes.pop(process_id, None)
        return removed is not None

    def cancel(self, process_id: str) -> None:
        """항목을 제거하고 프로세스에 종료 신호를 보내요.

        종료 확인은 기다리지 않아요. 소유 턴이 stdout EOF로 종료를 알아차려요.
        """
        with self._lock:
            process = self._processes.pop(process_id, None)
        if process is None:
            raise NoActiveProcessError(process_id)

        logger.info("turn_cancel_requested", process_id=process_id, pid=process.pid)
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            # wait()로 수거되기 직전에 이미 종료된 경우예요
            logger.debug("process_already_exited", process_id=process_id, pid=process.pid)

    def is_active(self, process_id: str) -> bool:
        with self._lock:
            return process_id in self._processes

    def active_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._processes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)
