from __future__ import annotations
from typing import TYPE_CHECKING

from lifecycle.shutdown_protocol import IShutdownHandler
from utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from lifecycle.shutdown_protocol import IInstanceLock

log = get_logger().for_category(LogCategory.SHUTDOWN)


class InstanceLockHandler(IShutdownHandler):
    """
    Releases the single-instance lock.

    Must be the last step: another instance may start the moment the lock
    is gone.

    Priority: 10 (shutdown last)
    """

    def __init__(self, registrar: "IInstanceLock"):
        """
        Args:
            registrar: InstanceRegistrar holding the lock
        """
        self.registrar = registrar

    @property
    def shutdown_priority(self) -> int:
        """Lock release has the lowest priority (happens last)."""
        return 10

    async def shutdown(self) -> None:
        self.shutdown_sync()

    def shutdown_sync(self) -> None:
        log.info("Releasing instance lock...")
        self.registrar.unregister()
