"""
API Dependencies - lifecycle access for FastAPI endpoints

Pattern:
1. main_asyncio.py installs the LifecycleSignalHub during initialization
2. main_asyncio.py calls set_lifecycle() with it
3. Endpoints use get_lifecycle() via Depends()

Example:
    @router.post("/exit")
    async def exit_process(hub: LifecycleSignalHub = Depends(get_lifecycle)):
        hub.request_exit(0)
"""

from __future__ import annotations
from typing import Optional, TYPE_CHECKING
from fastapi import HTTPException, status

if TYPE_CHECKING:
    from lifecycle.signal_hub import LifecycleSignalHub


# Set by main_asyncio.py during initialization
_lifecycle: Optional["LifecycleSignalHub"] = None


def set_lifecycle(hub: Optional["LifecycleSignalHub"]) -> None:
    """Store (or clear, with None) the hub the endpoints talk to."""
    global _lifecycle
    _lifecycle = hub


async def get_lifecycle() -> "LifecycleSignalHub":
    """
    FastAPI dependency for accessing the lifecycle hub.

    Raises:
        HTTPException: 503 Service Unavailable if the process is still starting
    """
    if _lifecycle is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Lifecycle not initialized. Process may still be starting."
        )
    return _lifecycle
