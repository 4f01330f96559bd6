from __future__ import annotations
import asyncio
import contextlib
import socket
import uvicorn
from fastapi import FastAPI
from typing import Optional
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)


class IPCServer:
    """
    IPC listener: Uvicorn running inside an asyncio task, with Uvicorn's own
    signal handlers disabled so the lifecycle signal hub owns SIGINT/SIGTERM.

    Behaviour:
      - start() launches uvicorn.Server.serve() as a background task and
        returns once the server is listening (or the start timeout passed).
      - stop() asks uvicorn to exit, waits a bounded time, then closes the
        listening sockets and cancels the serve task. Safe to call twice
        or without start().
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "127.0.0.1",
        port: int = 1242,
        shutdown_timeout: float = 2.0,
    ):
        self.app = app
        self.host = host
        self.port = port
        self.shutdown_timeout = shutdown_timeout
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None

    # ----------------------------------------------------------------------
    # INTERNAL
    # ----------------------------------------------------------------------
    def _create_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=self.port,
            loop="asyncio",
            log_level="warning",
            access_log=False,
            server_header=False,
        )

        server = uvicorn.Server(config)
        # Older uvicorn installs handlers here, newer ones in capture_signals()
        server.install_signal_handlers = lambda: None  # type: ignore
        server.capture_signals = contextlib.nullcontext  # type: ignore

        return server

    def _bind_socket(self) -> socket.socket:
        # Bound here rather than by uvicorn, which calls sys.exit() on bind errors
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        return sock

    # ----------------------------------------------------------------------
    # PUBLIC API
    # ----------------------------------------------------------------------
    async def start(self, *, wait_started_timeout: float = 5.0) -> None:
        """
        Start serving in the background.

        Raises:
            RuntimeError: Already running, the port cannot be bound, or the
                server exited during startup
        """
        if self.is_running:
            raise RuntimeError("IPC server already started")

        # Deferred import: lifecycle.task_registry is not needed to build the app
        from lifecycle.task_registry import create_tracked_task, TaskCategory

        try:
            self._socket = self._bind_socket()
        except OSError as e:
            raise RuntimeError(f"IPC server cannot bind {self.host}:{self.port}: {e}") from e

        # Port 0 asks the OS for a free port
        self.port = self._socket.getsockname()[1]
        server = self._create_server()
        self._server = server

        log.info(f"🌐 Starting IPC server on http://{self.host}:{self.port}")

        serve_task = create_tracked_task(
            server.serve(sockets=[self._socket]),
            category=TaskCategory.IPC,
            description="IPC server (uvicorn)"
        )
        self._serve_task = serve_task

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_started_timeout
        while loop.time() < deadline:
            if self._serve_task is not serve_task:
                log.info("🌐 IPC server stopped while starting")
                return
            if server.started:
                log.info("🌐 IPC server ready")
                return
            if serve_task.done():
                break
            await asyncio.sleep(0.05)

        if serve_task.done() and self._serve_task is serve_task:
            self._server = None
            self._serve_task = None
            self._close_socket()
            raise RuntimeError(f"IPC server failed to start on {self.host}:{self.port}")

        log.warn(f"🌐 IPC server not reported ready after {wait_started_timeout}s")

    async def stop(self) -> None:
        """Stop accepting requests and release the port."""
        server, serve_task = self._server, self._serve_task
        self._server = None
        self._serve_task = None

        if server is None or serve_task is None or serve_task.done():
            self._close_socket()
            log.debug("IPC server stop() called but server was not running")
            return

        log.info("🌐 Stopping IPC server...")

        # should_exit ends serve() gracefully; force_exit skips waiting for
        # lingering connections and lifespan tasks
        server.should_exit = True
        server.force_exit = True

        try:
            await asyncio.wait_for(asyncio.shield(serve_task), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            log.warn("🌐 IPC server shutdown timeout; force-closing sockets")
        except Exception as e:
            log.error(f"Error during IPC server shutdown: {e}", exc_info=e)

        for listener in getattr(server, "servers", None) or []:
            try:
                listener.close()
            except Exception as e:
                log.debug(f"Error closing listening socket: {e}")

        if not serve_task.done():
            serve_task.cancel()
            try:
                await asyncio.wait_for(serve_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                log.debug("IPC serve task cancelled")

        self._close_socket()
        log.info("🌐 IPC server stopped and port released")

    def _close_socket(self) -> None:
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()

    # ----------------------------------------------------------------------
    # PROPERTIES
    # ----------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        """Return whether a uvicorn serve task is active."""
        return self._serve_task is not None and not self._serve_task.done()

    @property
    def server(self) -> Optional[uvicorn.Server]:
        return self._server
