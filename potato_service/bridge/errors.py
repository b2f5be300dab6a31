"""에이전트 브리지에서 발생하는 도메인 오류예요."""

from __future__ import annotations

from libs.common.errors import DomainError, InternalError, TimeoutError


class AgentNotInstalledError(DomainError):
    def __init__(self, message: str = "에이전트 CLI를 찾을 수 없어요. 설치 후 다시 시도해 주세요.") -> None:
        super().__init__("AGENT_NOT_INSTALLED", message, retryable=False)


class AgentLaunchError(DomainError):
    def __init__(self, message: str = "에이전트 프로세스를 시작하지 못했어요.") -> None:
        super().__init__("AGENT_LAUNCH_FAILED", message, retryable=False)


class AgentProcessError(DomainError):
    """텍스트 없이 비정상 종료한 경우예요. exit_code를 함께 들고 있어요."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__("AGENT_PROCESS_FAILED", message, retryable=False)
        self.exit_code = exit_code


class NoActiveProcessError(DomainError):
    def __init__(self, process_id: str) -> None:
        super().__init__("NO_ACTIVE_PROCESS", f"실행 중인 프로세스가 없어요: {process_id!r}", retryable=False)
        self.process_id = process_id


class ProcessAlreadyActiveError(DomainError):
    def __init__(self, process_id: str) -> None:
        super().__init__(
            "PROCESS_ALREADY_ACTIVE",
            f"같은 process_id로 이미 실행 중인 턴이 있어요: {process_id!r}",
            retryable=False,
        )
        self.process_id = process_id


class AgentTimeoutError(TimeoutError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"에이전트 응답이 {timeout_seconds:g}초를 초과해 중단했어요.")
        self.timeout_seconds = timeout_seconds


class AgentInternalError(InternalError):
    pass
