"""
Core infrastructure package for the CompBench service.

Provides:
- Configuration management via pydantic-settings
- Engine exception hierarchy

FastAPI dependencies live in compbench.core.dependencies and are imported
from there directly, since they depend on the services layer.

    from compbench.core import get_settings, InvalidInputError
"""

from compbench.core.config import Settings, build_optimizer_settings, get_settings
from compbench.core.exceptions import (
    EngineError,
    InvalidInputError,
    RunCancelledError,
    RunNotFoundError,
)


__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "build_optimizer_settings",
    # Exceptions
    "EngineError",
    "InvalidInputError",
    "RunCancelledError",
    "RunNotFoundError",
]
