"""
Lifecycle configuration model.

Loaded from config/botfarm.yaml by ConfigManager. Every field has a default,
so a missing file is a valid configuration.
"""

from pydantic import BaseModel, ConfigDict, Field


class LifecycleConfig(BaseModel):
    """Timeouts, delays, logging and IPC settings for the process host."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    per_worker_stop_allowance: float = Field(
        5.0, gt=0,
        description="Seconds granted to each worker when stopping the fleet"
    )
    worker_ack_grace: float = Field(
        1.0, ge=0,
        description="Pause after fleet stop so in-flight acknowledgements land"
    )
    fatal_grace_delay: float = Field(
        10.0, ge=0,
        description="Pause before a fatal startup abort so logs reach their sink"
    )
    config_error_grace_delay: float = Field(
        5.0, ge=0,
        description="Pause before aborting on an invalid configuration file"
    )
    restart_handover_delay: float = Field(
        2.0, ge=0,
        description="Time given to a restarted process before this one exits"
    )

    log_file: str = Field("log.txt", min_length=1)
    log_level: str = Field("INFO", pattern="^(DEBUG|INFO|WARN|ERROR|FATAL)$")

    ipc_enabled: bool = False
    ipc_host: str = "127.0.0.1"
    ipc_port: int = Field(1242, ge=1, le=65535)
