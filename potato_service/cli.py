from __future__ import annotations

import uvicorn

from potato_service.app.settings import settings


def _run(*, reload_enabled: bool) -> None:
    uvicorn.run(
        "potato_service.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload_enabled,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    _run(reload_enabled=False)


def main_dev() -> None:
    _run(reload_enabled=True)
