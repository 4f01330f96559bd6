import sys
from pathlib import Path

import pytest

# Add src to path (also configured in pyproject for pytest runs)
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lifecycle.task_registry import TaskRegistry
from utils.logger import get_logger


@pytest.fixture(autouse=True)
def clean_process_state():
    """Fresh task registry per test; logger sinks and level restored afterwards."""
    TaskRegistry.reset()
    logger = get_logger()
    min_level = logger.min_level
    sinks = logger.sinks

    yield

    for sink in logger.sinks:
        if sink not in sinks:
            logger.remove_sink(sink)
    logger.min_level = min_level
    TaskRegistry.reset()


class RecordingHandler:
    """Shutdown handler that records when it ran."""

    def __init__(self, name: str, priority: int, calls: list, delay: float = 0.0, error: Exception = None):
        self.name = name
        self.priority = priority
        self.calls = calls
        self.delay = delay
        self.error = error
        self.sync_calls = 0

    @property
    def shutdown_priority(self) -> int:
        return self.priority

    async def shutdown(self) -> None:
        import asyncio
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(self.name)
        if self.error is not None:
            raise self.error

    def shutdown_sync(self) -> None:
        self.sync_calls += 1
        self.calls.append(f"{self.name}:sync")


@pytest.fixture
def recording_handler():
    return RecordingHandler
