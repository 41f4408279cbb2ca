"""
API Dependencies

FastAPI dependencies that hand the shared services to route handlers.
"""

from fastapi import Depends, Request

from ..calls import CallLifecycleManager
from ..container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """
    FastAPI dependency for the service container.

    Usage in routes:
        @router.get("/items")
        async def list_items(container: ServiceContainer = Depends(get_container)):
            ...
    """
    return request.app.state.container


def get_call_manager(
    container: ServiceContainer = Depends(get_container),
) -> CallLifecycleManager:
    return container.call_manager
