"""
Shutdown coordinator that runs the process shutdown sequence exactly once.

Every trigger (exit request, termination signal, unhandled fault, restart)
ends up in run_sequence(). The first caller wins an atomic
NOT_STARTED → IN_PROGRESS transition and executes the registered handlers
in priority order; every other caller returns False at once without
waiting. The winner then resolves the exit channel the entry point awaits.
"""

import asyncio
import subprocess
import sys
from typing import Callable, List, Optional, Sequence

from lifecycle.exit_channel import ExitResultChannel, MAX_EXIT_CODE, MIN_EXIT_CODE
from lifecycle.shutdown_state import AtomicShutdownState
from models.enums import ShutdownState
from models.startup import StartupOverrides
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)

Spawner = Callable[[Sequence[str]], object]


def restart_command() -> List[str]:
    """Command line that relaunches this process with the same arguments."""
    orig_argv = getattr(sys, "orig_argv", None) or [sys.executable, *sys.argv]
    return [sys.executable, *orig_argv[1:]]


class ShutdownCoordinator:
    """
    Coordinates graceful shutdown of multiple components.

    Maintains a list of shutdown handlers and executes them in priority order
    when shutdown is triggered. A failing handler is logged and skipped; the
    remaining handlers still run.

    Example:
        coordinator = ShutdownCoordinator(overrides=overrides)
        coordinator.register(ListenerShutdownHandler(api_wrapper))
        coordinator.register(FleetShutdownHandler(fleet))
        coordinator.register(LogFlushHandler(get_logger()))
        coordinator.register(InstanceLockHandler(registrar))

        await coordinator.exit(0)
        code = await coordinator.wait_for_exit()
    """

    def __init__(
        self,
        exit_channel: Optional[ExitResultChannel] = None,
        overrides: Optional[StartupOverrides] = None,
        restart_delay: float = 2.0,
        spawn: Spawner = subprocess.Popen,
    ):
        """
        Initialize shutdown coordinator.

        Args:
            exit_channel: Channel receiving the final exit code
            overrides: Startup flags (restart_allowed is honored here)
            restart_delay: Seconds a restarted process gets before we exit
            spawn: Process launcher used by restart()
        """
        self._handlers: List = []
        self._state = AtomicShutdownState()
        self.exit_channel = exit_channel or ExitResultChannel()
        self.overrides = overrides or StartupOverrides()
        self.restart_delay = restart_delay
        self._spawn = spawn
        self._reason: Optional[str] = None

    # ----------------------------------------------------------------------
    # REGISTRATION
    # ----------------------------------------------------------------------
    def register(self, handler) -> None:
        """
        Register a shutdown handler.

        Handler must have:
        - shutdown_priority property (int)
        - async shutdown() method

        Args:
            handler: Object implementing IShutdownHandler protocol
        """
        if not hasattr(handler, "shutdown_priority"):
            raise ValueError(f"Handler {handler} missing shutdown_priority property")
        if not hasattr(handler, "shutdown"):
            raise ValueError(f"Handler {handler} missing shutdown() method")

        self._handlers.append(handler)
        log.debug(f"Registered shutdown handler: {handler.__class__.__name__}")

    def get_handler(self, handler_type: type):
        """Get a registered handler by type, or None."""
        for handler in self._handlers:
            if isinstance(handler, handler_type):
                return handler
        return None

    def _sorted_handlers(self) -> List:
        return sorted(self._handlers, key=lambda h: h.shutdown_priority, reverse=True)

    # ----------------------------------------------------------------------
    # STATE
    # ----------------------------------------------------------------------
    @property
    def state(self) -> ShutdownState:
        return self._state.value

    @property
    def is_shutting_down(self) -> bool:
        return self.state is not ShutdownState.NOT_STARTED

    @property
    def reason(self) -> Optional[str]:
        """What started the sequence (None while NOT_STARTED)."""
        return self._reason

    # ----------------------------------------------------------------------
    # SEQUENCE
    # ----------------------------------------------------------------------
    async def run_sequence(self, reason: str = "shutdown requested") -> bool:
        """
        Execute the shutdown sequence if nobody else has started it.

        Returns:
            True if this call ran the sequence, False if it was already
            in progress or completed
        """
        if not self._claim(reason):
            return False
        await self._run_handlers()
        return True

    def _claim(self, reason: str) -> bool:
        if not self._state.compare_and_set(ShutdownState.NOT_STARTED, ShutdownState.IN_PROGRESS):
            log.debug(f"Shutdown already {self.state.name.lower()}, ignoring: {reason}")
            return False

        self._reason = reason
        log.info("🛑 Initiating shutdown sequence...")
        log.info(f"   Reason: {reason}")
        return True

    async def _run_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        try:
            for handler in self._sorted_handlers():
                await self._run_handler(handler)
        except asyncio.CancelledError:
            log.warn("Shutdown sequence was cancelled")
            raise

        self._state.compare_and_set(ShutdownState.IN_PROGRESS, ShutdownState.COMPLETED)
        log.info(f"✓ Shutdown sequence complete ({loop.time() - start_time:.2f}s)")

    async def _run_handler(self, handler) -> None:
        handler_name = handler.__class__.__name__
        try:
            log.debug(f"Shutting down {handler_name} (priority={handler.shutdown_priority})...")
            await handler.shutdown()
            log.debug(f"✓ {handler_name} shutdown complete")
        except asyncio.CancelledError:
            # Only a cancellation of the sequence itself ends it; a handler
            # raising CancelledError on its own is a failed step
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                log.debug(f"{handler_name} shutdown was cancelled")
                raise
            log.error(f"❌ {handler_name} shutdown raised CancelledError")
        except Exception as e:
            # Continue with other handlers even if one fails
            log.error(f"❌ Error shutting down {handler_name}: {e}", exc_info=e)

    def release_at_interpreter_exit(self) -> bool:
        """
        Best-effort synchronous cleanup for an interpreter exiting without a
        completed sequence (no event loop is available any more).

        Runs only handlers offering shutdown_sync() (log flush, lock release).
        An IN_PROGRESS state here means the sequence was interrupted, so it
        is finished the same way.

        Returns:
            True if any cleanup was performed
        """
        claimed = self._state.compare_and_set(ShutdownState.NOT_STARTED, ShutdownState.IN_PROGRESS)
        if not claimed and self.state is not ShutdownState.IN_PROGRESS:
            return False

        if claimed:
            self._reason = "interpreter exit"

        for handler in self._sorted_handlers():
            shutdown_sync = getattr(handler, "shutdown_sync", None)
            if shutdown_sync is None:
                continue
            try:
                shutdown_sync()
            except Exception as e:
                log.error(f"Error in {handler.__class__.__name__} at interpreter exit: {e}")

        self._state.compare_and_set(ShutdownState.IN_PROGRESS, ShutdownState.COMPLETED)
        return True

    # ----------------------------------------------------------------------
    # PUBLIC TRIGGERS
    # ----------------------------------------------------------------------
    async def shutdown(self, exit_code: int = 0, reason: Optional[str] = None) -> bool:
        """
        Run the sequence and resolve the exit channel with exit_code.

        Returns:
            True if this call ran the sequence
        """
        _validate_exit_code(exit_code)

        if not self._claim(reason or f"shutdown (code {exit_code})"):
            return False

        # The claim is ours; the code is delivered even if the sequence is cancelled
        try:
            await self._run_handlers()
        finally:
            self.exit_channel.resolve(exit_code)
        return True

    async def exit(self, exit_code: int = 0, reason: Optional[str] = None) -> bool:
        """Explicit exit request; a non-zero code is logged as an error first."""
        _validate_exit_code(exit_code)

        if exit_code != 0:
            log.error(f"Exiting with non-zero exit code: {exit_code}")

        return await self.shutdown(exit_code, reason or f"exit (code {exit_code})")

    async def restart(self) -> bool:
        """
        Shut down, launch a fresh copy of this process, then exit with 0.

        Refused when restarts are disabled (--no-restart).

        Returns:
            True if this call ran the restart
        """
        if not self.overrides.restart_allowed:
            log.warn("Restart requested but restarts are disabled")
            return False

        if not self._claim("restart"):
            return False

        try:
            await self._run_handlers()

            command = restart_command()
            try:
                self._spawn(command)
                log.info("Restarted process launched", command=" ".join(command))
            except (OSError, ValueError) as e:
                log.error(f"Failed to launch restarted process: {e}", exc_info=e)

            # Give the new process time to take over before this one exits
            await asyncio.sleep(self.restart_delay)
        finally:
            self.exit_channel.resolve(0)
        return True

    async def wait_for_exit(self) -> int:
        """Suspend until the exit code is resolved."""
        return await self.exit_channel.wait()


def _validate_exit_code(exit_code: int) -> None:
    if not MIN_EXIT_CODE <= exit_code <= MAX_EXIT_CODE:
        raise ValueError(f"Exit code must be in [{MIN_EXIT_CODE}, {MAX_EXIT_CODE}], got {exit_code}")
