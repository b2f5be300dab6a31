from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from libs.common.errors import DomainError, ErrorEnvelope, InternalError, envelope_from_error
from libs.common.logging import get_logger

# 목록에 없는 error_code는 400으로 응답해요
_STATUS_BY_ERROR_CODE: dict[str, int] = {
    "NO_ACTIVE_PROCESS": status.HTTP_404_NOT_FOUND,
    "PROCESS_ALREADY_ACTIVE": status.HTTP_409_CONFLICT,
    "AGENT_NOT_INSTALLED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
    "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(error_code: str) -> int:
    return _STATUS_BY_ERROR_CODE.get(error_code, status.HTTP_400_BAD_REQUEST)


def _envelope_response(envelope: ErrorEnvelope) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(envelope.error_code), content=envelope.to_dict())


def register_exception_handlers(app: FastAPI, logger_name: str) -> None:
    """DomainError는 코드별 상태로, 그 밖의 예외는 500 INTERNAL_ERROR 봉투로 응답해요."""
    logger = get_logger(logger_name)

    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
        envelope = envelope_from_error(exc)
        logger.warning(
            "domain_error",
            path=request.url.path,
            method=request.method,
            trace_id=envelope.trace_id,
            error_code=envelope.error_code,
            message=envelope.message,
            retryable=envelope.retryable,
        )
        return _envelope_response(envelope)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        envelope = envelope_from_error(InternalError())
        logger.exception(
            "unhandled_error",
            path=request.url.path,
            method=request.method,
            trace_id=envelope.trace_id,
            error=str(exc),
        )
        return _envelope_response(envelope)
