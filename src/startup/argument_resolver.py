"""
Argument resolver
-----------------

Turns environment variables and command-line tokens into a StartupOverrides
value. Environment is applied first, then tokens left to right, so the last
word for a field always wins.

Malformed input never aborts startup: unknown tokens and invalid values are
logged and skipped.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from models.startup import StartupOverrides
from startup.errors import InvalidArgumentError
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.STARTUP)

ENV_CRYPT_KEY = "BOTFARM_CRYPTKEY"
ENV_NETWORK_GROUP = "BOTFARM_NETWORK_GROUP"
ENV_PATH = "BOTFARM_PATH"

# Flags taking the following token (or "=value") as their value
VALUE_FLAGS: Dict[str, str] = {
    "--cryptkey": "crypt_key",
    "--network-group": "network_group",
    "--path": "working_directory",
}

# Flags setting a boolean field, consuming nothing
SWITCH_FLAGS: Dict[str, tuple] = {
    "--ignore-unsupported-environment": ("ignore_unsupported_environment", True),
    "--no-config-watch": ("config_watch", False),
    "--no-restart": ("restart_allowed", False),
    "--process-required": ("process_required", True),
    "--system-required": ("system_required", True),
}

ENV_VARIABLES: Dict[str, str] = {
    ENV_CRYPT_KEY: "crypt_key",
    ENV_NETWORK_GROUP: "network_group",
    ENV_PATH: "working_directory",
}


class ArgumentResolver:
    """
    Resolves StartupOverrides from the environment and argv.

    Example:
        overrides = ArgumentResolver().resolve(sys.argv[1:])
        if not overrides.restart_allowed:
            ...
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        chdir: Callable[[str], None] = os.chdir,
    ):
        """
        Args:
            environ: Environment mapping (default: os.environ)
            chdir: Function applying a working directory override
        """
        self._environ = os.environ if environ is None else environ
        self._chdir = chdir

    def resolve(self, args: Optional[Sequence[str]]) -> StartupOverrides:
        values: Dict[str, Any] = {}

        try:
            self._apply_environment(values)
        except InvalidArgumentError as e:
            log.error(f"Ignoring environment overrides: {e}")

        if args:
            self._apply_arguments(args, values)

        return StartupOverrides(**values)

    # ------------------------------------------------------------------
    # ENVIRONMENT
    # ------------------------------------------------------------------
    def _apply_environment(self, values: Dict[str, Any]) -> None:
        for variable, field_name in ENV_VARIABLES.items():
            value = self._environ.get(variable)
            if value:
                log.debug(f"Applying {variable} from environment")
                self._apply_value(field_name, value, values)

    # ------------------------------------------------------------------
    # COMMAND LINE
    # ------------------------------------------------------------------
    def _apply_arguments(self, args: Sequence[str], values: Dict[str, Any]) -> None:
        # At most one value flag can wait for its value. While it waits, the
        # next token is its value even if that token looks like a flag.
        pending: Optional[str] = None

        for arg in args:
            if pending is not None:
                field_name, pending = pending, None
                self._apply_value_safely(field_name, arg, values)
                continue

            if arg in VALUE_FLAGS:
                pending = VALUE_FLAGS[arg]
                continue

            if arg in SWITCH_FLAGS:
                field_name, flag_value = SWITCH_FLAGS[arg]
                values[field_name] = flag_value
                continue

            if not self._apply_inline_value(arg, values):
                log.warn(f"Unknown command-line argument: {arg}")

        if pending is not None:
            log.debug(f"Dropping trailing flag without value ({pending})")

    def _apply_inline_value(self, arg: str, values: Dict[str, Any]) -> bool:
        """Handle the --flag=value form; the value must be non-empty."""
        for flag, field_name in VALUE_FLAGS.items():
            prefix = flag + "="
            if len(arg) > len(prefix) and arg.startswith(prefix):
                self._apply_value_safely(field_name, arg[len(prefix):], values)
                return True
        return False

    def _apply_value_safely(self, field_name: str, value: str, values: Dict[str, Any]) -> None:
        try:
            self._apply_value(field_name, value, values)
        except InvalidArgumentError as e:
            log.warn(f"Ignoring argument: {e}")

    # ------------------------------------------------------------------
    # VALUE HANDLERS
    # ------------------------------------------------------------------
    def _apply_value(self, field_name: str, value: str, values: Dict[str, Any]) -> None:
        if not value:
            raise InvalidArgumentError(field_name)

        if field_name == "working_directory":
            self._change_directory(value)

        values[field_name] = value

    def _change_directory(self, path: str) -> None:
        try:
            self._chdir(path)
            log.debug(f"Working directory set to {path}")
        except OSError as e:
            log.error(f"Could not change working directory to {path}", exc_info=e)
