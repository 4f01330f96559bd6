from __future__ import annotations
from typing import TYPE_CHECKING, Optional

from lifecycle.shutdown_protocol import IShutdownHandler
from utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from lifecycle.shutdown_protocol import IListener

log = get_logger().for_category(LogCategory.SHUTDOWN)


class ListenerShutdownHandler(IShutdownHandler):
    """
    Shutdown handler for the IPC listener (FastAPI + Uvicorn).

    Stops accepting requests and releases the listening socket before any
    worker is touched, so nothing new arrives during fleet teardown.

    Priority: 100 (shutdown first)
    """

    def __init__(self, listener: Optional["IListener"]):
        """
        Args:
            listener: Listener to stop, or None when IPC is disabled
        """
        self.listener = listener

    @property
    def shutdown_priority(self) -> int:
        """Listener shuts down before everything else."""
        return 100

    async def shutdown(self) -> None:
        if self.listener is None or not self.listener.is_running:
            log.debug("IPC listener not running")
            return

        log.info("Stopping IPC listener...")
        await self.listener.stop()
        log.debug("IPC listener stopped")
