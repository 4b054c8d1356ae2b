"""
FastAPI dependency injection for the CompBench API.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_run_manager: Returns the RunManager created in the app lifespan
- SettingsDep / RunManagerDep: Annotated aliases for endpoint signatures

Usage:
    @router.get("/runs")
    async def list_runs(manager: RunManagerDep) -> List[RunStatusResponse]:
        ...

In tests, override either dependency:
    app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
"""

from typing import Annotated

from fastapi import Depends, Request

from compbench.core.config import Settings, get_settings
from compbench.services.runner import RunManager


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so the dependency can be overridden.
    """
    return get_settings()


# =============================================================================
# Run Manager Dependency
# =============================================================================

def get_run_manager(request: Request) -> RunManager:
    """Return the RunManager stored on app.state by the lifespan handler."""
    return request.app.state.run_manager


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(manager: RunManagerDep)
RunManagerDep = Annotated[RunManager, Depends(get_run_manager)]


__all__ = [
    "get_settings_dependency",
    "get_run_manager",
    "SettingsDep",
    "RunManagerDep",
]
