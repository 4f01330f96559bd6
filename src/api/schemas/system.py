"""
System schemas - Pydantic models for lifecycle requests/responses
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class SystemStatusResponse(BaseModel):
    """Process lifecycle snapshot"""
    program: str = Field(description="Program identifier (name and version)")
    shutdown_state: str = Field(description="NOT_STARTED, IN_PROGRESS or COMPLETED")
    shutdown_reason: Optional[str] = Field(None, description="What started the shutdown sequence")
    exit_code: Optional[int] = Field(None, description="Resolved exit code, if any")
    background_faults: int = Field(description="Background task faults logged so far")
    startup: Dict[str, Any] = Field(description="Resolved startup flags (secrets redacted)")


class LifecycleActionResponse(BaseModel):
    """Result of an exit/restart request"""
    action: str = Field(description="'exit' or 'restart'")
    accepted: bool = Field(description="False when a shutdown was already under way")
    exit_code: Optional[int] = Field(None, description="Requested exit code")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "action": "exit",
            "accepted": True,
            "exit_code": 0
        }
    })
