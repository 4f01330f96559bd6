"""
Shutdown coordinator: one-shot sequence, handler ordering, exit codes, restart.
"""

import asyncio

import pytest

from lifecycle.exit_channel import ExitResultChannel
from lifecycle.shutdown_coordinator import ShutdownCoordinator, restart_command
from models.enums import LogLevel, ShutdownState
from models.startup import StartupOverrides
from utils.logger import configure_logger, FileLogSink, get_logger


@pytest.mark.asyncio
async def test_concurrent_triggers_run_sequence_once(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("fleet", 80, calls, delay=0.05))

    results = await asyncio.gather(
        coordinator.exit(3),
        coordinator.exit(4),
        coordinator.shutdown(0),
        *(coordinator.run_sequence(f"trigger {i}") for i in range(5)),
    )

    assert calls == ["fleet"]
    assert results.count(True) == 1
    assert results[0] is True
    assert coordinator.state is ShutdownState.COMPLETED
    assert await coordinator.wait_for_exit() == 3


@pytest.mark.asyncio
async def test_handlers_run_by_descending_priority(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("lock", 10, calls))
    coordinator.register(recording_handler("listener", 100, calls))
    coordinator.register(recording_handler("logs", 20, calls))
    coordinator.register(recording_handler("fleet", 80, calls))

    await coordinator.shutdown(0)

    assert calls == ["listener", "fleet", "logs", "lock"]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_the_rest(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("listener", 100, calls, error=RuntimeError("boom")))
    coordinator.register(recording_handler("lock", 10, calls))

    assert await coordinator.exit(2) is True

    assert calls == ["listener", "lock"]
    assert coordinator.exit_channel.code == 2


@pytest.mark.asyncio
async def test_losing_trigger_returns_without_waiting(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("slow", 50, calls, delay=0.5))

    winner = asyncio.create_task(coordinator.shutdown(0))
    await asyncio.sleep(0.01)
    assert coordinator.state is ShutdownState.IN_PROGRESS

    loop = asyncio.get_running_loop()
    start = loop.time()
    assert await coordinator.exit(1) is False
    assert loop.time() - start < 0.1

    assert await winner is True
    # The loser does not overwrite the winner's code
    assert coordinator.exit_channel.code == 0


@pytest.mark.asyncio
async def test_invalid_exit_code_leaves_state_untouched():
    coordinator = ShutdownCoordinator()

    with pytest.raises(ValueError):
        await coordinator.exit(256)

    assert coordinator.state is ShutdownState.NOT_STARTED
    assert not coordinator.exit_channel.is_resolved


@pytest.mark.asyncio
async def test_cancelled_sequence_stays_in_progress_but_resolves_code(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("slow", 50, calls, delay=5.0))

    task = asyncio.create_task(coordinator.shutdown(5))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert coordinator.state is ShutdownState.IN_PROGRESS
    assert await coordinator.run_sequence("again") is False
    assert await asyncio.wait_for(coordinator.wait_for_exit(), timeout=1.0) == 5


@pytest.mark.asyncio
async def test_handler_raising_cancelled_error_is_a_failed_step(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("listener", 100, calls, error=asyncio.CancelledError()))
    coordinator.register(recording_handler("lock", 10, calls))

    assert await coordinator.shutdown(0) is True

    assert calls == ["listener", "lock"]
    assert coordinator.state is ShutdownState.COMPLETED
    assert coordinator.exit_channel.code == 0


@pytest.mark.asyncio
async def test_broken_log_file_does_not_stop_the_sequence(recording_handler, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    configure_logger(LogLevel.INFO, use_colors=False)
    get_logger().add_sink(FileLogSink(blocker / "log.txt", buffer_limit=1))

    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("lock", 10, calls))

    assert await coordinator.shutdown(0) is True

    assert calls == ["lock"]
    assert coordinator.state is ShutdownState.COMPLETED
    assert coordinator.exit_channel.code == 0


def test_register_rejects_incomplete_handler():
    coordinator = ShutdownCoordinator()

    class NoPriority:
        async def shutdown(self):
            pass

    with pytest.raises(ValueError):
        coordinator.register(NoPriority())


def test_get_handler_by_type(recording_handler):
    coordinator = ShutdownCoordinator()
    handler = recording_handler("a", 1, [])
    coordinator.register(handler)

    assert coordinator.get_handler(type(handler)) is handler
    assert coordinator.get_handler(int) is None


# ---------------------------------------------------------------------------
# RESTART
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_restart_refused_when_disabled(recording_handler):
    spawned = []
    coordinator = ShutdownCoordinator(
        overrides=StartupOverrides(restart_allowed=False),
        spawn=spawned.append,
    )

    assert await coordinator.restart() is False

    assert spawned == []
    assert coordinator.state is ShutdownState.NOT_STARTED


@pytest.mark.asyncio
async def test_restart_shuts_down_spawns_and_exits_zero(recording_handler):
    calls = []
    spawned = []
    coordinator = ShutdownCoordinator(restart_delay=0.0, spawn=spawned.append)
    coordinator.register(recording_handler("fleet", 80, calls))

    assert await coordinator.restart() is True

    assert calls == ["fleet"]
    assert spawned == [restart_command()]
    assert await coordinator.wait_for_exit() == 0


@pytest.mark.asyncio
async def test_restart_spawn_failure_still_exits():
    def broken_spawn(command):
        raise OSError("no such file")

    coordinator = ShutdownCoordinator(restart_delay=0.0, spawn=broken_spawn)

    assert await coordinator.restart() is True
    assert coordinator.exit_channel.code == 0


# ---------------------------------------------------------------------------
# INTERPRETER EXIT
# ---------------------------------------------------------------------------

def test_release_at_interpreter_exit_runs_sync_handlers(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator()
    coordinator.register(recording_handler("logs", 20, calls))
    coordinator.register(recording_handler("lock", 10, calls))

    assert coordinator.release_at_interpreter_exit() is True

    assert calls == ["logs:sync", "lock:sync"]
    assert coordinator.state is ShutdownState.COMPLETED
    assert coordinator.release_at_interpreter_exit() is False


@pytest.mark.asyncio
async def test_release_after_completed_sequence_is_noop(recording_handler):
    calls = []
    coordinator = ShutdownCoordinator(exit_channel=ExitResultChannel())
    coordinator.register(recording_handler("lock", 10, calls))

    await coordinator.shutdown(0)

    assert coordinator.release_at_interpreter_exit() is False
    assert calls == ["lock"]
