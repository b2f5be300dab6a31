from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from libs.common.errors import ValidationError
from libs.common.logging import get_logger
from potato_service.app.agent_spec import AgentDefinition, default_agent_search_paths, discover_agents
from potato_service.bridge.errors import AgentNotInstalledError
from potato_service.bridge.launcher import probe_agent_version

logger = get_logger("potato_service.agent_catalog")


@dataclass(slots=True)
class AgentStatus:
    installed: bool
    path: str | None
    version: str | None


class AgentCatalogService:
    """에이전트 CLI 설치 상태와 사용할 수 있는 서브에이전트 목록을 알려줘요."""

    def __init__(
        self,
        *,
        executable_resolver: Callable[[], Path],
        probe_timeout_seconds: float,
        home_dir: Path | None = None,
    ) -> None:
        self._executable_resolver = executable_resolver
        self._probe_timeout_seconds = probe_timeout_seconds
        self._home_dir = home_dir

    async def status(self) -> AgentStatus:
        try:
            executable = self._executable_resolver()
        except AgentNotInstalledError as exc:
            logger.info("agent_not_installed", reason=exc.message)
            return AgentStatus(installed=False, path=None, version=None)

        version = await probe_agent_version(executable, timeout_seconds=self._probe_timeout_seconds)
        return AgentStatus(installed=True, path=str(executable), version=version)

    def list_agents(self, project_dir: str) -> list[AgentDefinition]:
        if not project_dir.strip():
            raise ValidationError("path 파라미터가 필요해요.")
        base = Path(project_dir).expanduser()
        if not base.is_dir():
            raise ValidationError(f"디렉터리가 아니에요: {base}")
        return discover_agents(default_agent_search_paths(base, home_dir=self._home_dir))
