"""
FastAPI dependency injection providers.

The ``Hub`` is created by the application lifespan and kept on
``app.state``; routes receive it through the ``HubDep`` alias. Tests
override ``get_hub`` to inject a hub built around a mock store.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from wattnet.src.hub import Hub


def get_hub(request: Request) -> Hub:
    """FastAPI dependency: return the hub created at startup.

    Raises:
        HTTPException: 503 if the lifespan has not created the hub.
    """
    hub = getattr(request.app.state, "hub", None)
    if hub is None:
        raise HTTPException(status_code=503, detail="Hub not initialized.")
    return hub


# Annotated dependency for use in FastAPI route signatures:
#   async def my_endpoint(hub: HubDep): ...
HubDep = Annotated[Hub, Depends(get_hub)]
