import os
import sys
import importlib.metadata
from pathlib import Path

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.STARTUP)

PROGRAM_NAME = "BotFarm"
DISTRIBUTION_NAME = "botfarm"
ENV_HOME = "BOTFARM_HOME"
CONFIG_DIRECTORY = "config"
MINIMUM_PYTHON = (3, 11)

# SetThreadExecutionState flags
ES_CONTINUOUS = 0x80000000
ES_SYSTEM_REQUIRED = 0x00000001


class RuntimeInfo:
    @classmethod
    def is_linux(cls) -> bool:
        return sys.platform.startswith("linux")

    @classmethod
    def is_windows(cls) -> bool:
        return sys.platform.startswith("win")

    @classmethod
    def is_macos(cls) -> bool:
        return sys.platform == "darwin"

    @classmethod
    def version(cls) -> str:
        try:
            return importlib.metadata.version(DISTRIBUTION_NAME)
        except importlib.metadata.PackageNotFoundError:
            return "dev"

    @classmethod
    def program_identifier(cls) -> str:
        return f"{PROGRAM_NAME} V{cls.version()}"

    @classmethod
    def home_directory(cls) -> Path:
        """Installation directory: $BOTFARM_HOME, else the launch directory."""
        home = os.environ.get(ENV_HOME)
        return Path(home).resolve() if home else Path.cwd().resolve()

    @classmethod
    def config_directory(cls) -> Path:
        """Config directory relative to the current working directory."""
        return Path.cwd() / CONFIG_DIRECTORY

    @classmethod
    def verify_environment(cls) -> bool:
        """True on a supported OS and interpreter."""
        if sys.version_info[:2] < MINIMUM_PYTHON:
            return False
        return cls.is_linux() or cls.is_macos() or cls.is_windows()

    @classmethod
    def variant(cls) -> str:
        return f"{sys.platform} / Python {sys.version_info.major}.{sys.version_info.minor}"

    @classmethod
    def apply_system_required(cls, required: bool) -> bool:
        """
        Ask the OS to keep the system awake while the process runs.

        Only Windows exposes this; elsewhere the request is logged and ignored.

        Returns:
            True if the request was applied
        """
        if not required:
            return False

        if not cls.is_windows():
            log.warn("System-required mode is not supported on this platform")
            return False

        import ctypes
        result = ctypes.windll.kernel32.SetThreadExecutionState(  # type: ignore[attr-defined]
            ES_CONTINUOUS | ES_SYSTEM_REQUIRED
        )
        if result == 0:
            log.error("SetThreadExecutionState failed")
            return False

        log.info("System-required mode enabled")
        return True
