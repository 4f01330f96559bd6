from __future__ import annotations
import asyncio
from typing import TYPE_CHECKING

from lifecycle.shutdown_protocol import IShutdownHandler
from lifecycle.task_registry import create_tracked_task, TaskCategory
from utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from fleet.bot_fleet import BotFleet

log = get_logger().for_category(LogCategory.SHUTDOWN)


class FleetShutdownHandler(IShutdownHandler):
    """
    Shutdown handler for the bot fleet.

    Stops every worker concurrently and races the combined stop against
    len(fleet) * per_worker_allowance seconds. Workers still stopping when
    the timer fires are abandoned: their stop keeps running as a tracked
    task and is never cancelled. A short grace pause follows either way so
    in-flight network acknowledgements can land.

    Priority: 80 (after the listener, before log flush and lock release)
    """

    def __init__(self, fleet: "BotFleet", per_worker_allowance: float = 5.0, ack_grace: float = 1.0):
        """
        Args:
            fleet: Worker set to stop
            per_worker_allowance: Seconds of timeout budget per worker
            ack_grace: Pause after the race resolves (seconds)
        """
        self.fleet = fleet
        self.per_worker_allowance = per_worker_allowance
        self.ack_grace = ack_grace
        self.abandoned: list[str] = []

    @property
    def shutdown_priority(self) -> int:
        """Workers stop once no new requests can arrive."""
        return 80

    async def shutdown(self) -> None:
        count = len(self.fleet)
        if count == 0:
            log.debug("No active workers")
            return

        timeout = count * self.per_worker_allowance
        log.info("Stopping bot fleet...", workers=count, timeout=f"{timeout:.1f}s")

        stop_task = create_tracked_task(
            self.fleet.stop_all(graceful=True),
            category=TaskCategory.WORKER,
            description=f"Fleet stop ({count} workers)"
        )

        done, _ = await asyncio.wait({stop_task}, timeout=timeout)

        if stop_task in done:
            log.info("✓ All workers stopped")
        else:
            self.abandoned = self.fleet.stopping()
            log.warn(
                "Fleet stop timed out, abandoning remaining workers",
                timeout=f"{timeout:.1f}s",
                abandoned=", ".join(self.abandoned) or "-",
            )

        await asyncio.sleep(self.ack_grace)
