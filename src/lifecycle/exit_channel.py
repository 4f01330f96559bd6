"""
Exit result channel.

One-shot settable exit code. Any thread may resolve it; the first writer
wins and later writers are ignored. The entry point awaits it exactly once
and terminates the process with the result.
"""

from __future__ import annotations

import asyncio
import threading
from typing import List, Optional, Tuple

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.LIFECYCLE)

MIN_EXIT_CODE = 0
MAX_EXIT_CODE = 255


def _set_if_pending(future: asyncio.Future, code: int) -> None:
    if not future.done():
        future.set_result(code)


class ExitResultChannel:
    """
    Single-assignment exit code.

    Example:
        channel = ExitResultChannel()
        channel.resolve(5)   # True
        channel.resolve(7)   # False, code stays 5
        code = await channel.wait()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._code: Optional[int] = None
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    @property
    def is_resolved(self) -> bool:
        with self._lock:
            return self._code is not None

    @property
    def code(self) -> Optional[int]:
        with self._lock:
            return self._code

    def resolve(self, code: int) -> bool:
        """
        Set the exit code unless one is already set.

        Returns:
            True if this call set the code

        Raises:
            ValueError: Code outside 0-255
        """
        if not MIN_EXIT_CODE <= code <= MAX_EXIT_CODE:
            raise ValueError(f"Exit code must be in [{MIN_EXIT_CODE}, {MAX_EXIT_CODE}], got {code}")

        with self._lock:
            if self._code is not None:
                log.debug(f"Exit code already resolved to {self._code}, ignoring {code}")
                return False
            self._code = code
            waiters, self._waiters = self._waiters, []

        log.debug(f"Exit code resolved: {code}")

        for loop, future in waiters:
            try:
                loop.call_soon_threadsafe(_set_if_pending, future, code)
            except RuntimeError:
                # Waiter's loop already closed
                pass

        return True

    async def wait(self) -> int:
        """Suspend until resolved, then return the exit code."""
        loop = asyncio.get_running_loop()

        with self._lock:
            if self._code is not None:
                return self._code
            future: asyncio.Future = loop.create_future()
            self._waiters.append((loop, future))

        return await future
