"""
Task Registry
-------------

Tracks the asyncio tasks the process host starts on its own: lifecycle
trigger dispatches, the fleet stop, the IPC server. Two jobs:

- keep a strong reference to fire-and-forget tasks (an abandoned worker
  stop must not be garbage collected mid-flight)
- observe every task result, so a failure is always reported to the fault
  handler instead of surfacing later as "exception was never retrieved"

The IPC status endpoints read it for introspection.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime, timezone

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.TASK)

FaultHandler = Callable[[BaseException, str], None]


# ---------------------------------------------------------------------------
# TASK CATEGORY ENUM
# ---------------------------------------------------------------------------

class TaskCategory(Enum):
    """What a tracked task belongs to."""
    IPC = auto()
    WORKER = auto()
    LIFECYCLE = auto()
    SHUTDOWN = auto()
    BACKGROUND = auto()
    GENERAL = auto()


# ---------------------------------------------------------------------------
# TASK METADATA
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskInfo:
    """Fixed at registration."""
    id: int
    category: TaskCategory
    description: str
    created_at: str  # ISO UTC
    created_timestamp: float


@dataclass
class TaskRecord:
    """A tracked task and what it ended with."""
    task: asyncio.Task
    info: TaskInfo
    cancelled: bool = False
    finished_with_error: Optional[BaseException] = None
    finished_return: Optional[Any] = None
    finished_at: Optional[str] = None

    @property
    def status(self) -> str:
        if not self.task.done():
            return "running"
        if self.cancelled:
            return "cancelled"
        if self.finished_with_error is not None:
            return "failed"
        return "completed"

    @property
    def running_for(self) -> float:
        """Seconds since the task was registered."""
        return datetime.now(timezone.utc).timestamp() - self.info.created_timestamp


# ---------------------------------------------------------------------------
# TASK REGISTRY SINGLETON
# ---------------------------------------------------------------------------

class TaskRegistry:
    """
    Process-wide record of tracked tasks.

    Example:
        registry = TaskRegistry.instance()
        registry.set_fault_handler(hub.on_background_task_exception)
        task = create_tracked_task(worker_loop(), category=TaskCategory.WORKER,
                                   description="bot-1 session")
        print(registry.summary())
    """

    _instance: Optional["TaskRegistry"] = None

    def __init__(self, max_finished: int = 200) -> None:
        """
        Args:
            max_finished: Finished records kept for introspection; older ones
                are dropped (running tasks are always kept)
        """
        self.max_finished = max_finished
        self._records: Dict[int, TaskRecord] = {}
        self._ids_by_task: Dict[asyncio.Task, int] = {}
        self._next_id = 1
        self._fault_handler: Optional[FaultHandler] = None

    @classmethod
    def instance(cls) -> "TaskRegistry":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the singleton; the next instance() starts empty."""
        cls._instance = None

    # -----------------------------
    # Fault reporting
    # -----------------------------
    def set_fault_handler(self, handler: Optional[FaultHandler]) -> None:
        """handler(exception, task description) is called for each failed task."""
        self._fault_handler = handler

    @property
    def fault_handler(self) -> Optional[FaultHandler]:
        return self._fault_handler

    # -----------------------------
    # Registration
    # -----------------------------
    def register(self, task: asyncio.Task, category: TaskCategory, description: str) -> int:
        task_id = self._next_id
        self._next_id += 1

        now = datetime.now(timezone.utc)
        info = TaskInfo(
            id=task_id,
            category=category,
            description=description,
            created_at=now.isoformat(),
            created_timestamp=now.timestamp(),
        )
        self._records[task_id] = TaskRecord(task=task, info=info)
        self._ids_by_task[task] = task_id

        log.debug(f"[Task {task_id}] {category.name}: {description}")

        task.add_done_callback(self._on_task_done)
        return task_id

    def _on_task_done(self, task: asyncio.Task) -> None:
        task_id = self._ids_by_task.pop(task, None)
        record = self._records.get(task_id) if task_id is not None else None
        if record is None:
            return

        record.finished_at = datetime.now(timezone.utc).isoformat()
        self._prune_finished()

        if task.cancelled():
            record.cancelled = True
            log.debug(f"[Task {task_id}] Cancelled")
            return

        # Retrieving the exception marks it as observed
        exc = task.exception()
        if exc is None:
            record.finished_return = task.result()
            log.debug(f"[Task {task_id}] Done")
            return

        record.finished_with_error = exc
        if self._fault_handler is None:
            log.error(f"[Task {task_id}] {record.info.description} failed: {exc}", exc_info=exc)
            return
        self._fault_handler(exc, record.info.description)

    def _prune_finished(self) -> None:
        # Only records whose completion was already observed
        finished = [task_id for task_id, r in self._records.items() if r.finished_at is not None]
        for task_id in finished[:max(0, len(finished) - self.max_finished)]:
            del self._records[task_id]

    # -----------------------------
    # Introspection
    # -----------------------------
    def list_all(self) -> List[TaskRecord]:
        return list(self._records.values())

    def active(self) -> List[TaskRecord]:
        return [r for r in self._records.values() if r.status == "running"]

    def failed(self) -> List[TaskRecord]:
        return [r for r in self._records.values() if r.status == "failed"]

    def cancelled(self) -> List[TaskRecord]:
        return [r for r in self._records.values() if r.status == "cancelled"]

    def by_category(self, category: TaskCategory) -> List[TaskRecord]:
        return [r for r in self._records.values() if r.info.category is category]

    def summary(self) -> str:
        """One line for logs and the status endpoint."""
        return (
            f"Tasks: total={len(self._records)}, running={len(self.active())}, "
            f"failed={len(self.failed())}, cancelled={len(self.cancelled())}"
        )


def create_tracked_task(
    coro,
    *,
    category: TaskCategory,
    description: str,
    loop: Optional[asyncio.AbstractEventLoop] = None
) -> asyncio.Task:
    """Create a task on `loop` (default: the running loop) and track it."""
    loop = loop or asyncio.get_running_loop()
    task = loop.create_task(coro, name=description)
    TaskRegistry.instance().register(task, category, description)
    return task
