"""
main_asyncio.py — Application entry point for BotFarm
----------------------------------------------------

Responsible for:
- resolving startup flags and claiming the single-instance lock
- loading configuration and wiring the shutdown handlers
- routing signals and faults into the shutdown coordinator
- returning the process exit code once the shutdown sequence resolves it
"""

import sys

# ---------------------------------------------------------------------------
# UTF-8 ENCODING FIX
# ---------------------------------------------------------------------------

# Log lines carry symbols; make sure consoles with legacy encodings can print them
if hasattr(sys.stdout, 'reconfigure') and sys.stdout.encoding != 'UTF-8':
    sys.stdout.reconfigure(encoding='utf-8')  # type: ignore
if hasattr(sys.stderr, 'reconfigure') and sys.stderr.encoding != 'UTF-8':
    sys.stderr.reconfigure(encoding='utf-8')  # type: ignore

import asyncio
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from api import create_app, IPCServer
from api.dependencies import set_lifecycle
from fleet import BotFleet
from lifecycle import ExitResultChannel, LifecycleSignalHub, ShutdownCoordinator
from lifecycle.handlers import (
    FleetShutdownHandler,
    InstanceLockHandler,
    ListenerShutdownHandler,
    LogFlushHandler,
)
from managers import ConfigManager, ConfigError
from models.config import LifecycleConfig
from models.enums import LogCategory, LogLevel
from models.startup import StartupOverrides
from runtime import RuntimeInfo
from startup import ArgumentResolver, InstanceRegistrar
from utils.logger import get_logger, configure_logger, FileLogSink

# ---------------------------------------------------------------------------
# LOGGER SETUP
# ---------------------------------------------------------------------------

log = get_logger().for_category(LogCategory.SYSTEM)


class Program:
    """
    One process run: owns the lifecycle objects and performs startup.

    Example:
        program = Program()
        if await program.init(sys.argv[1:]):
            code = await program.coordinator.wait_for_exit()
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        home: Optional[Union[str, Path]] = None,
        lock_dir: Optional[Union[str, Path]] = None,
        defaults: Optional[LifecycleConfig] = None,
        spawn=subprocess.Popen,
    ):
        """
        Args:
            environ: Environment for argument resolution (default: os.environ)
            home: Installation directory (default: RuntimeInfo.home_directory())
            lock_dir: Directory for the instance lock (default: temp dir)
            defaults: Settings used before the configuration file is loaded
            spawn: Process launcher used for restarts
        """
        self.environ = environ
        self.home = Path(home) if home is not None else None
        self.lock_dir = lock_dir
        self.config: LifecycleConfig = defaults or LifecycleConfig()

        self.exit_channel = ExitResultChannel()
        self.coordinator = ShutdownCoordinator(
            self.exit_channel,
            restart_delay=self.config.restart_handover_delay,
            spawn=spawn,
        )
        self.hub = LifecycleSignalHub(self.coordinator)
        self.fleet = BotFleet(on_idle=self._on_fleet_idle)

        self.overrides = StartupOverrides()
        self.registrar: Optional[InstanceRegistrar] = None
        self.log_sink: Optional[FileLogSink] = None
        self.ipc_server: Optional[IPCServer] = None

    # ------------------------------------------------------------------
    # INIT
    # ------------------------------------------------------------------
    async def init(self, argv: Optional[Sequence[str]]) -> bool:
        """
        Bring the process up.

        Returns:
            False when startup must be aborted (caller exits with 1). True
            once running, or when a shutdown began while starting up
        """
        # ========================================================================
        # SIGNALS & FAULTS
        # ========================================================================
        self.hub.install(asyncio.get_running_loop())

        # ========================================================================
        # HOME DIRECTORY & ARGUMENTS
        # ========================================================================
        home = self.home or RuntimeInfo.home_directory()
        try:
            os.chdir(home)
        except OSError as e:
            log.error(f"Cannot change to home directory {home}: {e}")

        self.overrides = ArgumentResolver(self.environ).resolve(argv)
        self.coordinator.overrides = self.overrides

        # ========================================================================
        # SINGLE INSTANCE
        # ========================================================================
        self.registrar = InstanceRegistrar(
            str(Path.cwd().resolve()),
            self.overrides.network_group,
            lock_dir=self.lock_dir,
        )
        unique = self.registrar.register()

        # Only the lock holder may write to the shared log file
        if unique:
            self.log_sink = FileLogSink(Path.cwd() / self.config.log_file)
            get_logger().add_sink(self.log_sink)
            self.coordinator.register(LogFlushHandler(get_logger()))
            self.coordinator.register(InstanceLockHandler(self.registrar))

        if not unique:
            log.fatal("Another instance of this program is already running in this directory")
            await asyncio.sleep(self.config.fatal_grace_delay)
            return False

        if self.overrides.system_required:
            RuntimeInfo.apply_system_required(True)

        log.info(RuntimeInfo.program_identifier(), variant=RuntimeInfo.variant())
        log.debug("Startup flags", **self.overrides.to_dict())

        # ========================================================================
        # ENVIRONMENT & CONFIGURATION
        # ========================================================================
        if not self.overrides.ignore_unsupported_environment and not RuntimeInfo.verify_environment():
            log.fatal(f"Unsupported environment: {RuntimeInfo.variant()}")
            await asyncio.sleep(self.config.fatal_grace_delay)
            return False

        config_dir = RuntimeInfo.config_directory()
        if not config_dir.is_dir():
            log.fatal(f"Config directory could not be found: {config_dir}")
            await asyncio.sleep(self.config.fatal_grace_delay)
            return False

        try:
            self.config = ConfigManager(config_dir).load()
        except ConfigError as e:
            log.fatal(f"Configuration is invalid: {e}")
            await asyncio.sleep(self.config.config_error_grace_delay)
            return False

        configure_logger(LogLevel[self.config.log_level])
        self.coordinator.restart_delay = self.config.restart_handover_delay

        # ========================================================================
        # SHUTDOWN HANDLERS
        # ========================================================================
        # Registered before the listener starts so a signal arriving while it
        # comes up still stops it
        if self.config.ipc_enabled:
            self.ipc_server = IPCServer(create_app(), self.config.ipc_host, self.config.ipc_port)

        self.coordinator.register(ListenerShutdownHandler(self.ipc_server))
        self.coordinator.register(FleetShutdownHandler(
            self.fleet,
            per_worker_allowance=self.config.per_worker_stop_allowance,
            ack_grace=self.config.worker_ack_grace,
        ))

        # ========================================================================
        # IPC
        # ========================================================================
        if self.ipc_server is not None and not self.coordinator.is_shutting_down:
            set_lifecycle(self.hub)
            try:
                await self.ipc_server.start()
            except RuntimeError as e:
                log.error(f"IPC listener disabled: {e}")

        if self.coordinator.is_shutting_down:
            log.info("Shutdown started during initialization")
            return True

        log.info("🏁 Process initialized. Waiting for exit...")
        return True

    def _on_fleet_idle(self) -> None:
        if self.overrides.process_required:
            log.info("Fleet is idle, staying up (--process-required)")
            return
        self.hub.request_exit(0)

    def close(self) -> None:
        """Detach process-wide hooks; called once the exit code is known."""
        self.hub.uninstall()
        set_lifecycle(None)
        if self.log_sink is not None:
            get_logger().remove_sink(self.log_sink)
            self.log_sink.close()


# ---------------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------------

async def main(argv: Optional[Sequence[str]] = None, program: Optional[Program] = None) -> int:
    """Run the process and return its exit code."""
    program = program or Program()

    try:
        if not await program.init(argv):
            await program.coordinator.exit(1, "initialization failed")
    except Exception as e:
        if program.hub.on_unhandled_exception(e, source="initialization") is None:
            await program.coordinator.exit(1, "unhandled exception in initialization")

    code = await program.coordinator.wait_for_exit()
    program.close()

    log.info(f"👋 BotFarm exiting with code {code}")
    return code


# ---------------------------------------------------------------------------
# ENTRY POINT
# ---------------------------------------------------------------------------

def run() -> None:
    sys.exit(asyncio.run(main(sys.argv[1:])))


if __name__ == "__main__":
    run()
