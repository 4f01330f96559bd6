"""
Single-instance registrar.

File lock keyed by installation identity (and optional network group) that
keeps two BotFarm processes from sharing the same persisted state.

Uses POSIX `fcntl.flock`, so the OS drops the lock when the holder dies and
no stale-lock recovery is needed. flock locks belong to the open file
description, so a second registrar in the same process is rejected too.

Usage:
    registrar = InstanceRegistrar(identity=str(home), network_group=group)
    if not registrar.register():
        ...  # another instance is running
    ...
    registrar.unregister()
"""

from __future__ import annotations

import fcntl
import hashlib
import os
import tempfile
from pathlib import Path
from typing import IO, Optional, Union

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.INSTANCE)

LOCK_PREFIX = "botfarm"


class InstanceRegistrar:
    """
    Holds the system-wide exclusivity token for one installation.

    Attributes:
        lock_file: Path to the lock file
    """

    def __init__(
        self,
        identity: str,
        network_group: Optional[str] = None,
        lock_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            identity: Installation identity, normally the resolved home directory
            network_group: Optional group name; instances in different
                groups may run side by side
            lock_dir: Directory for the lock file (default: system temp dir)
        """
        self.identity = identity
        self.network_group = network_group
        self.lock_dir = Path(lock_dir) if lock_dir is not None else Path(tempfile.gettempdir())
        self.lock_file = self.lock_dir / self.lock_name(identity, network_group)
        self._file: Optional[IO[str]] = None

    @staticmethod
    def lock_name(identity: str, network_group: Optional[str] = None) -> str:
        key = f"{identity}:{network_group}" if network_group else identity
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
        return f"{LOCK_PREFIX}-{digest}.lock"

    @property
    def is_registered(self) -> bool:
        return self._file is not None

    def register(self) -> bool:
        """
        Try to become the sole holder of the lock.

        Never raises: any failure to acquire is reported as False.

        Returns:
            True if this registrar now holds the lock
        """
        if self._file is not None:
            return True

        handle: Optional[IO[str]] = None
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            # "a+" keeps the current holder's PID if we lose the race
            handle = open(self.lock_file, "a+", encoding="utf-8")
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            if handle is not None:
                handle.close()
            holder = self.holder_pid()
            log.warn(
                "Another instance already holds the lock",
                lock=str(self.lock_file),
                pid=holder if holder is not None else "unknown",
            )
            return False
        except OSError as e:
            if handle is not None:
                handle.close()
            log.error(f"Failed to acquire instance lock: {e}", lock=str(self.lock_file))
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()

        self._file = handle
        log.debug(f"Acquired instance lock (PID {os.getpid()})", lock=str(self.lock_file))
        return True

    def unregister(self) -> None:
        """
        Release the lock.

        Safe to call multiple times or without a successful register().
        """
        handle, self._file = self._file, None
        if handle is None or handle.closed:
            return

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            log.debug("Released instance lock")
        except OSError as e:
            log.warn(f"Error releasing instance lock: {e}")
        finally:
            handle.close()

    def holder_pid(self) -> Optional[int]:
        """PID recorded by the current (or last) holder, if readable."""
        try:
            return int(self.lock_file.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None
