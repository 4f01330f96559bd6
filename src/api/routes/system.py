"""
System endpoints - process status, task introspection, exit and restart
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Dict, Any

from api.dependencies import get_lifecycle
from api.schemas.system import LifecycleActionResponse, SystemStatusResponse
from lifecycle.task_registry import TaskRegistry
from runtime.runtime_info import RuntimeInfo
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)

router = APIRouter(prefix="/system", tags=["System"])


@router.get("/status", response_model=SystemStatusResponse)
async def get_status(hub=Depends(get_lifecycle)) -> SystemStatusResponse:
    """Current shutdown state, exit code and startup flags."""
    coordinator = hub.coordinator
    return SystemStatusResponse(
        program=RuntimeInfo.program_identifier(),
        shutdown_state=coordinator.state.name,
        shutdown_reason=coordinator.reason,
        exit_code=coordinator.exit_channel.code,
        background_faults=hub.background_faults,
        startup=coordinator.overrides.to_dict(),
    )


@router.get("/tasks/summary")
async def get_task_summary() -> Dict[str, Any]:
    """
    Get high-level task summary.

    Returns:
        - summary: Human-readable summary string
        - total: Total tasks tracked (all time)
        - active: Currently running tasks
        - failed: Tasks that ended with exceptions
        - cancelled: Tasks that were cancelled
        - active_tasks: Description and category of each running task
    """
    registry = TaskRegistry.instance()
    active = registry.active()
    return {
        "summary": registry.summary(),
        "total": len(registry.list_all()),
        "active": len(active),
        "failed": len(registry.failed()),
        "cancelled": len(registry.cancelled()),
        "active_tasks": [
            {"id": r.info.id, "category": r.info.category.name, "description": r.info.description}
            for r in active
        ],
    }


@router.post(
    "/exit",
    response_model=LifecycleActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Exit the process",
)
async def exit_process(
    code: int = Query(0, ge=0, le=255, description="Process exit code"),
    hub=Depends(get_lifecycle),
) -> LifecycleActionResponse:
    """Start the shutdown sequence; the process exits with `code`."""
    accepted = not hub.coordinator.is_shutting_down
    log.info(f"Exit requested over IPC (code {code})")
    hub.request_exit(code)
    return LifecycleActionResponse(action="exit", accepted=accepted, exit_code=code)


@router.post(
    "/restart",
    response_model=LifecycleActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Restart the process",
)
async def restart_process(hub=Depends(get_lifecycle)) -> LifecycleActionResponse:
    """
    Shut down and relaunch with the same arguments.

    **Errors:**
    - 409: Restarts are disabled (--no-restart)
    """
    if not hub.coordinator.overrides.restart_allowed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Restart is disabled for this process"
        )

    accepted = not hub.coordinator.is_shutting_down
    log.info("Restart requested over IPC")
    hub.request_restart()
    return LifecycleActionResponse(action="restart", accepted=accepted, exit_code=0)
