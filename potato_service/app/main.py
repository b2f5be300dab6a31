from __future__ import annotations

from fastapi import FastAPI

from libs.common.http_handlers import register_exception_handlers
from libs.common.logging import configure_logging
from potato_service.app.settings import Settings, settings
from potato_service.bootstrap import RuntimeComponents, create_lifespan
from potato_service.modules import build_api_router


def create_app(app_settings: Settings | None = None, *, runtime: RuntimeComponents | None = None) -> FastAPI:
    resolved = app_settings or settings
    application = FastAPI(title=resolved.service_name, lifespan=create_lifespan(resolved, runtime))
    application.include_router(build_api_router())
    register_exception_handlers(application, "potato_service.errors")
    return application


configure_logging(settings.log_level)
app = create_app()
