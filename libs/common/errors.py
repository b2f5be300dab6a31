from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(slots=True)
class ErrorEnvelope:
    error_code: str
    message: str
    trace_id: str
    retryable: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DomainError(Exception):
    def __init__(self, error_code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.retryable = retryable


class ValidationError(DomainError):
    def __init__(self, message: str = "요청 값이 올바르지 않아요.") -> None:
        super().__init__("VALIDATION_FAILED", message, retryable=False)


class TimeoutError(DomainError):
    def __init__(self, message: str = "작업 시간이 초과됐어요.") -> None:
        super().__init__("TIMEOUT", message, retryable=True)


class InternalError(DomainError):
    """재시도하면 성공할 수도 있는 서비스 내부 오류예요."""

    def __init__(self, message: str = "예상하지 못한 내부 오류가 발생했어요.") -> None:
        super().__init__("INTERNAL_ERROR", message, retryable=True)


def build_error_envelope(error_code: str, message: str, retryable: bool) -> ErrorEnvelope:
    return ErrorEnvelope(
        error_code=error_code,
        message=message,
        trace_id=str(uuid.uuid4()),
        retryable=retryable,
    )


def envelope_from_error(exc: DomainError) -> ErrorEnvelope:
    return build_error_envelope(exc.error_code, exc.message, exc.retryable)
