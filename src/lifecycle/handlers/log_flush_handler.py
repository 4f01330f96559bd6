from __future__ import annotations
from typing import TYPE_CHECKING

from lifecycle.shutdown_protocol import IShutdownHandler
from utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from lifecycle.shutdown_protocol import IDurableLogSink

log = get_logger().for_category(LogCategory.SHUTDOWN)


class LogFlushHandler(IShutdownHandler):
    """
    Flushes pending writes of the durable log sinks.

    Priority: 20
    """

    def __init__(self, sink: "IDurableLogSink"):
        """
        Args:
            sink: Durable sink, normally the global Logger
        """
        self.sink = sink

    @property
    def shutdown_priority(self) -> int:
        return 20

    async def shutdown(self) -> None:
        self.shutdown_sync()

    def shutdown_sync(self) -> None:
        log.debug("Flushing log sinks...")
        self.sink.flush()
