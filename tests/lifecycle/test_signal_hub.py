"""
Signal hub: every trigger source ends in the coordinator with the right code.
"""

import asyncio
import os
import signal
import threading
from concurrent.futures import Future as ConcurrentFuture

import pytest
import pytest_asyncio

from lifecycle.shutdown_coordinator import ShutdownCoordinator
from lifecycle.signal_hub import LifecycleSignalHub
from lifecycle.task_registry import create_tracked_task, TaskCategory, TaskRegistry
from models.enums import ShutdownState
from models.startup import StartupOverrides


@pytest_asyncio.fixture
async def hub():
    coordinator = ShutdownCoordinator()
    hub = LifecycleSignalHub(coordinator)
    hub.install(asyncio.get_running_loop())
    yield hub
    hub.uninstall()


async def wait_code(hub, timeout=2.0):
    return await asyncio.wait_for(hub.coordinator.wait_for_exit(), timeout=timeout)


@pytest.mark.asyncio
async def test_request_exit_carries_code(hub):
    task = hub.request_exit(7)

    assert isinstance(task, asyncio.Task)
    assert await task is True
    assert await wait_code(hub) == 7


@pytest.mark.asyncio
async def test_termination_signal_exits_zero(hub):
    await hub.on_termination_signal(signal.SIGTERM)

    assert await wait_code(hub) == 0
    assert hub.coordinator.reason == "signal SIGTERM"


@pytest.mark.asyncio
async def test_real_sigterm_is_routed_to_shutdown(hub):
    os.kill(os.getpid(), signal.SIGTERM)

    assert await wait_code(hub) == 0


@pytest.mark.asyncio
async def test_unhandled_exception_exits_one(hub):
    await hub.on_unhandled_exception(RuntimeError("main crashed"))

    assert await wait_code(hub) == 1


@pytest.mark.asyncio
async def test_thread_exception_exits_one():
    # Installed inside the test body: pytest swaps threading.excepthook per phase
    hub = LifecycleSignalHub(ShutdownCoordinator())
    hub.install(asyncio.get_running_loop())

    def crash():
        raise ValueError("worker thread crashed")

    try:
        thread = threading.Thread(target=crash, name="crasher")
        thread.start()
        thread.join()

        assert await wait_code(hub) == 1
        assert "thread crasher" in hub.coordinator.reason
    finally:
        hub.uninstall()


@pytest.mark.asyncio
async def test_background_fault_is_not_escalated(hub):
    async def failing():
        raise RuntimeError("socket library internals")

    task = create_tracked_task(failing(), category=TaskCategory.BACKGROUND, description="flaky")
    with pytest.raises(RuntimeError):
        await task
    await asyncio.sleep(0)

    assert hub.background_faults == 1
    assert hub.coordinator.state is ShutdownState.NOT_STARTED
    assert not hub.coordinator.exit_channel.is_resolved


@pytest.mark.asyncio
async def test_loop_exception_handler_counts_background_fault(hub):
    loop = asyncio.get_running_loop()
    loop.call_exception_handler({"message": "Task exception was never retrieved", "exception": OSError("reset")})

    assert hub.background_faults == 1
    assert hub.coordinator.state is ShutdownState.NOT_STARTED


@pytest.mark.asyncio
async def test_trigger_from_foreign_thread(hub):
    dispatched = []
    thread = threading.Thread(target=lambda: dispatched.append(hub.request_exit(9)))
    thread.start()
    thread.join()

    assert isinstance(dispatched[0], ConcurrentFuture)
    assert await wait_code(hub) == 9


@pytest.mark.asyncio
async def test_competing_triggers_first_code_wins(hub):
    first = hub.request_exit(5)
    second = hub.on_unhandled_exception(RuntimeError("late"))

    assert await first is True
    assert await second is False
    assert await wait_code(hub) == 5


@pytest.mark.asyncio
async def test_restart_disabled_keeps_running(hub):
    hub.coordinator.overrides = StartupOverrides(restart_allowed=False)

    assert await hub.request_restart() is False
    assert hub.coordinator.state is ShutdownState.NOT_STARTED


@pytest.mark.asyncio
async def test_uninstall_restores_hooks():
    previous_hook = threading.excepthook
    hub = LifecycleSignalHub(ShutdownCoordinator())

    hub.install(asyncio.get_running_loop())
    assert threading.excepthook == hub._thread_excepthook
    assert TaskRegistry.instance().fault_handler == hub.on_background_task_exception

    hub.uninstall()
    assert threading.excepthook is previous_hook
    assert TaskRegistry.instance().fault_handler is None
    assert not hub.is_installed
