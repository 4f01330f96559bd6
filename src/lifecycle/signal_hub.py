"""
Lifecycle signal hub.

Funnels every asynchronous source of termination into the shutdown
coordinator:

1. explicit exit request        → coordinator.exit(code)
2. OS termination signal        → coordinator.shutdown(0)
3. unhandled fault (main/thread) → FATAL log, coordinator.exit(1)
4. background task fault        → FATAL log only, never escalated

Entry points may be called from any thread (signal fallbacks, thread
excepthooks); the work always runs on the loop the hub was installed on.
"""

from __future__ import annotations

import asyncio
import atexit
import signal
import threading
from concurrent.futures import Future as ConcurrentFuture
from typing import Any, Callable, Coroutine, Dict, List, Optional, Union

from lifecycle.shutdown_coordinator import ShutdownCoordinator
from lifecycle.task_registry import create_tracked_task, TaskCategory, TaskRegistry
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.LIFECYCLE)

TERMINATION_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)
)

Dispatched = Union[asyncio.Task, ConcurrentFuture, None]


class LifecycleSignalHub:
    """
    Subscribes to termination and fault sources and routes them to the
    ShutdownCoordinator.

    Background task faults are logged at FATAL severity and then treated as
    handled. They mostly come from third-party networking internals, and
    tearing the whole fleet down for them would be worse than carrying on.

    Example:
        hub = LifecycleSignalHub(coordinator)
        hub.install(asyncio.get_running_loop())
        ...
        hub.request_exit(0)
    """

    def __init__(self, coordinator: ShutdownCoordinator):
        self.coordinator = coordinator
        self.background_faults: int = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_signals: List[signal.Signals] = []
        self._fallback_signals: Dict[signal.Signals, Any] = {}
        self._previous_thread_hook: Optional[Callable] = None
        self._previous_loop_handler: Optional[Callable] = None
        self._installed = False

    @property
    def is_installed(self) -> bool:
        return self._installed

    # ----------------------------------------------------------------------
    # INSTALLATION
    # ----------------------------------------------------------------------
    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Subscribe to every trigger source.

        Must be called from the thread running `loop`.
        """
        if self._installed:
            return

        self._loop = loop or asyncio.get_running_loop()

        self._install_signal_handlers()

        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._thread_excepthook

        self._previous_loop_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._loop_exception_handler)

        TaskRegistry.instance().set_fault_handler(self.on_background_task_exception)

        atexit.register(self._on_interpreter_exit)

        self._installed = True
        log.info("Lifecycle hooks installed", signals=", ".join(s.name for s in TERMINATION_SIGNALS))

    def uninstall(self) -> None:
        """Restore every hook replaced by install()."""
        if not self._installed:
            return

        loop = self._loop
        for sig in self._loop_signals:
            if loop is not None and not loop.is_closed():
                loop.remove_signal_handler(sig)
        self._loop_signals.clear()

        for sig, previous in self._fallback_signals.items():
            try:
                signal.signal(sig, previous)
            except (ValueError, OSError):
                pass
        self._fallback_signals.clear()

        if threading.excepthook == self._thread_excepthook:
            threading.excepthook = self._previous_thread_hook or threading.__excepthook__

        if loop is not None and not loop.is_closed():
            loop.set_exception_handler(self._previous_loop_handler)

        registry = TaskRegistry.instance()
        if registry.fault_handler == self.on_background_task_exception:
            registry.set_fault_handler(None)

        atexit.unregister(self._on_interpreter_exit)

        self._installed = False
        log.debug("Lifecycle hooks removed")

    def _install_signal_handlers(self) -> None:
        loop = self._loop
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.on_termination_signal, sig)
                self._loop_signals.append(sig)
                continue
            except (NotImplementedError, RuntimeError, ValueError):
                pass

            # Loop cannot own signals (Windows, or not the main thread)
            try:
                self._fallback_signals[sig] = signal.signal(sig, self._fallback_signal_handler)
            except (ValueError, OSError) as e:
                log.warn(f"Cannot install handler for {sig.name}: {e}")

    # ----------------------------------------------------------------------
    # ENTRY POINTS
    # ----------------------------------------------------------------------
    def request_exit(self, exit_code: int = 0) -> Dispatched:
        """Explicit exit request carrying an exit code."""
        log.info(f"Exit requested (code {exit_code})")
        return self._dispatch(self.coordinator.exit, exit_code, f"exit requested (code {exit_code})")

    def request_restart(self) -> Dispatched:
        log.info("Restart requested")
        return self._dispatch(self.coordinator.restart)

    def on_termination_signal(self, sig: signal.Signals) -> Dispatched:
        """OS asked the process to terminate; clean up best-effort with code 0."""
        name = getattr(sig, "name", str(sig))
        log.info(f"Signal {name} received → triggering shutdown")
        return self._dispatch(self.coordinator.shutdown, 0, f"signal {name}")

    def on_unhandled_exception(self, exc: BaseException, source: str = "main") -> Dispatched:
        """Unhandled fault on a primary execution context: always exit 1."""
        log.fatal(f"Unhandled exception in {source}: {exc!r}", exc_info=exc)
        return self._dispatch(self.coordinator.exit, 1, f"unhandled exception in {source}")

    def on_background_task_exception(self, exc: BaseException, source: str = "background task") -> None:
        """Fault in a detached task: logged as fatal, marked observed, not escalated."""
        self.background_faults += 1
        log.fatal(f"Unobserved exception in {source}: {exc!r}", exc_info=exc)

    # ----------------------------------------------------------------------
    # HOOK ADAPTERS
    # ----------------------------------------------------------------------
    def _fallback_signal_handler(self, signum: int, frame) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.on_termination_signal, signal.Signals(signum))

    def _thread_excepthook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        thread_name = args.thread.name if args.thread is not None else "unknown"
        exc = args.exc_value if args.exc_value is not None else args.exc_type()
        self.on_unhandled_exception(exc, source=f"thread {thread_name}")

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            loop.default_exception_handler(context)
            return
        self.on_background_task_exception(exc, source=context.get("message", "event loop"))

    def _on_interpreter_exit(self) -> None:
        if self.coordinator.release_at_interpreter_exit():
            log.warn("Interpreter exiting without a completed shutdown, resources released")

    # ----------------------------------------------------------------------
    # DISPATCH
    # ----------------------------------------------------------------------
    def _dispatch(self, fn: Callable[..., Coroutine], *args) -> Dispatched:
        loop = self._loop
        if loop is None or loop.is_closed():
            log.warn(f"No event loop to run {fn.__name__}(); trigger dropped")
            return None

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            return create_tracked_task(
                fn(*args),
                category=TaskCategory.LIFECYCLE,
                description=f"Lifecycle trigger: {fn.__name__}"
            )

        future = asyncio.run_coroutine_threadsafe(fn(*args), loop)
        future.add_done_callback(self._log_dispatch_failure)
        return future

    def _log_dispatch_failure(self, future: ConcurrentFuture) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.on_background_task_exception(exc, source="lifecycle trigger")
