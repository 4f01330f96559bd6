"""
Bot fleet
---------

Registry of long-lived bot workers. Worker internals (sessions, trading,
idling) live elsewhere; this module only knows how to stop them.

A worker's stop() may be a coroutine function or a plain blocking function.
Blocking stops run in a worker thread so one stuck network socket cannot
freeze the event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.FLEET)


def _settle(future: asyncio.Future, result: Any = None, error: Optional[BaseException] = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


def _run_in_daemon_thread(fn: Callable, *args, name: str) -> asyncio.Future:
    """
    Run a blocking call in a daemon thread.

    Unlike the default executor, a daemon thread that never returns does not
    keep the interpreter alive at exit, so abandoned stops cannot block it.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def runner() -> None:
        try:
            result = fn(*args)
        except BaseException as e:
            outcome = (None, e)
        else:
            outcome = (result, None)
        try:
            loop.call_soon_threadsafe(_settle, future, *outcome)
        except RuntimeError:
            # Loop already closed, nobody is waiting any more
            pass

    threading.Thread(target=runner, name=name, daemon=True).start()
    return future


class IWorker(Protocol):
    """A stateful network worker managed by the fleet."""

    @property
    def name(self) -> str:
        ...

    def stop(self, graceful: bool = True):
        """Disconnect; may return an awaitable."""
        ...


class BotFleet:
    """
    Set of active workers keyed by name.

    Example:
        fleet = BotFleet(on_idle=lambda: hub.request_exit(0))
        fleet.register(bot)
        await fleet.stop_all(graceful=True)
    """

    def __init__(self, on_idle: Optional[Callable[[], object]] = None):
        """
        Args:
            on_idle: Called when the last worker is unregistered
        """
        self._workers: Dict[str, IWorker] = {}
        self._stopping: Dict[str, asyncio.Task] = {}
        self._on_idle = on_idle

    def __len__(self) -> int:
        return len(self._workers)

    def __contains__(self, name: str) -> bool:
        return name in self._workers

    def names(self) -> List[str]:
        return sorted(self._workers)

    def get(self, name: str) -> Optional[IWorker]:
        return self._workers.get(name)

    def register(self, worker: IWorker) -> None:
        if worker.name in self._workers:
            raise ValueError(f"Worker already registered: {worker.name}")
        self._workers[worker.name] = worker
        log.info(f"Worker registered: {worker.name}", workers=len(self._workers))

    def unregister(self, name: str) -> Optional[IWorker]:
        worker = self._workers.pop(name, None)
        if worker is None:
            return None

        log.info(f"Worker unregistered: {name}", workers=len(self._workers))

        if not self._workers and self._on_idle is not None:
            log.info("No workers left")
            self._on_idle()

        return worker

    def stopping(self) -> List[str]:
        """Names of workers whose stop() has not finished yet."""
        return sorted(name for name, task in self._stopping.items() if not task.done())

    async def stop_all(self, graceful: bool = True) -> None:
        """
        Stop every worker concurrently and wait for all of them.

        A failing stop is logged and does not affect the others.
        """
        workers = list(self._workers.values())
        if not workers:
            return

        tasks = []
        for worker in workers:
            task = asyncio.create_task(self._stop_worker(worker, graceful), name=f"stop:{worker.name}")
            self._stopping[worker.name] = task
            tasks.append(task)

        await asyncio.gather(*tasks)

    async def _stop_worker(self, worker: IWorker, graceful: bool) -> None:
        try:
            if inspect.iscoroutinefunction(worker.stop):
                await worker.stop(graceful)
            else:
                result = await _run_in_daemon_thread(worker.stop, graceful, name=f"stop:{worker.name}")
                if inspect.isawaitable(result):
                    await result
            log.debug(f"Worker stopped: {worker.name}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"Error stopping worker {worker.name}: {e}", exc_info=e)
        finally:
            self._stopping.pop(worker.name, None)
