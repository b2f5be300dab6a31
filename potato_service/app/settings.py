from __future__ import annotations

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_TOKENS = {"dev-potato-token", ""}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="POTATO_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    service_name: str = "potato-agent-bridge"
    host: str = "127.0.0.1"
    port: int = 8765
    api_token: str = "dev-potato-token"
    log_level: str = "INFO"
    # 비워두면 PATH에서 agent_command_name을 찾아요
    agent_executable: str = ""
    agent_command_name: str = "claude"
    agent_probe_timeout_seconds: float = 10.0
    default_model: str = ""
    turn_worker_count: int = 4
    turn_queue_size: int = 100
    # None이면 타임아웃 없이 프로세스 종료를 기다려요
    turn_timeout_seconds: float | None = None
    stream_line_limit_bytes: int = 16 * 1024 * 1024

    @field_validator("turn_timeout_seconds", mode="before")
    @classmethod
    def _parse_timeout(cls, value: object) -> object:
        """빈 문자열이나 0 이하 값은 타임아웃 비활성으로 봐요."""
        if value is None:
            return None
        if isinstance(value, str):
            if not value.strip():
                return None
            value = float(value)
        if isinstance(value, (int, float)) and value <= 0:
            return None
        return value

    @field_validator("turn_worker_count", "turn_queue_size")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, value)

    @model_validator(mode="after")
    def _warn_insecure_token(self) -> "Settings":
        """개발용 기본 토큰이 그대로 쓰이면 경고를 남겨요."""
        import logging

        if self.api_token in _INSECURE_TOKENS:
            logging.getLogger("potato_service.settings").warning(
                "POTATO_API_TOKEN이 기본값이에요. 다른 사용자가 접근할 수 있는 환경에서는 반드시 교체해야 해요."
            )
        return self


settings = Settings()
