from __future__ import annotations

from potato_service.bootstrap.container import RuntimeComponents, build_runtime_components
from potato_service.bootstrap.lifespan import create_lifespan

__all__ = [
    "RuntimeComponents",
    "build_runtime_components",
    "create_lifespan",
]
