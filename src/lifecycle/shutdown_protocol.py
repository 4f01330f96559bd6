"""
Shutdown handler protocol for component-based graceful shutdown.

Each component that needs cleanup implements IShutdownHandler to participate
in the shutdown sequence. Collaborators stopped by the sequence are described
by the narrow protocols below.
"""

from typing import Protocol


class IShutdownHandler(Protocol):
    """
    Protocol for components that need graceful shutdown.

    The ShutdownCoordinator calls shutdown() on each handler in priority
    order. Handlers that can also run without an event loop (at interpreter
    exit) additionally provide a synchronous shutdown_sync().

    Example:
        class LogFlushHandler:
            @property
            def shutdown_priority(self) -> int:
                return 20

            async def shutdown(self) -> None:
                self.shutdown_sync()

            def shutdown_sync(self) -> None:
                get_logger().flush()
    """

    @property
    def shutdown_priority(self) -> int:
        """
        Higher priority shuts down earlier.
        """
        ...

    async def shutdown(self) -> None:
        """
        Called during coordinated shutdown.
        """
        ...


class IListener(Protocol):
    """IPC/web listener stopped first so no new requests arrive mid-shutdown."""

    @property
    def is_running(self) -> bool:
        ...

    async def stop(self) -> None:
        ...


class IDurableLogSink(Protocol):
    """Anything with buffered log output that must reach disk before exit."""

    def flush(self) -> None:
        ...


class IInstanceLock(Protocol):
    """Single-instance token released last."""

    def unregister(self) -> None:
        ...
