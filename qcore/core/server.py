"""
Process bootstrap: database connection, port binding with retry, uvicorn
serving, process-level error handlers and a run-once graceful shutdown.

    server = ApiServer(app, database, settings)
    server.start(3000)   # blocks until SIGINT / SIGTERM, then exits
"""
from __future__ import annotations

import asyncio
import errno
import logging
import socket
import sys
import threading
from types import TracebackType
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI

from qcore.core.config import Settings, get_settings
from qcore.db.database import DatabaseService

logger = logging.getLogger(__name__)


class ApiServer:
    def __init__(
        self,
        app: FastAPI,
        database: Optional[DatabaseService] = None,
        settings: Optional[Settings] = None,
        host: Optional[str] = None,
        max_retries: Optional[int] = None,
    ):
        self.app = app
        self.database = database
        self.settings = settings or get_settings()
        self.host = host or self.settings.HOST
        self.max_retries = max_retries if max_retries is not None else self.settings.PORT_RETRIES
        self.attempts = 0
        self.port: Optional[int] = None

        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._exit_code = 0
        self._lock = threading.Lock()
        self._shut_down = False

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def start(self, port: Optional[int] = None) -> None:
        if self.database is not None:
            try:
                self.database.connect()
            except Exception:
                logger.critical("Database connection fatal error", exc_info=True)
                sys.exit(1)

        self.install_process_handlers()
        sock = self.bind(port if port is not None else self.settings.PORT)

        config = uvicorn.Config(self.app, log_config=None, lifespan="on")
        self._server = uvicorn.Server(config)
        logger.info("Server listening on port %d", self.port)
        try:
            asyncio.run(self._serve(sock))
        except Exception:
            logger.exception("Server error")
            self._exit_code = 1
        self.shutdown(self._exit_code)

    async def _serve(self, sock: socket.socket) -> None:
        asyncio.get_running_loop().set_exception_handler(self._handle_loop_exception)
        await self._server.serve(sockets=[sock])

    def bind(self, port: int) -> socket.socket:
        """
        Bind a listening socket, moving to the next port while the current one
        is in use. Shuts the process down after `max_retries` failed attempts.
        """
        while True:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.bind((self.host, port))
                sock.listen(socket.SOMAXCONN)
            except OSError as exc:
                sock.close()
                if exc.errno != errno.EADDRINUSE:
                    logger.error("Server error: %s", exc)
                    self.shutdown(1)
                    raise
                self.attempts += 1
                if self.attempts >= self.max_retries:
                    logger.error("Max retries (%d) exceeded. Exiting.", self.max_retries)
                    self.shutdown(1)
                    raise
                logger.warning("Port %d in use. Trying %d...", port, port + 1)
                port += 1
                continue

            sock.setblocking(False)
            self._socket = sock
            self.port = port
            return sock

    # ------------------------------------------------------------------
    # Process-level error handling
    # ------------------------------------------------------------------

    def install_process_handlers(self) -> None:
        sys.excepthook = self._handle_uncaught_exception
        threading.excepthook = self._handle_thread_exception

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """Unhandled errors in background tasks are logged; the server keeps running."""
        exc = context.get("exception")
        logger.error(
            "Unhandled async error: %s", context.get("message", exc),
            exc_info=(type(exc), exc, exc.__traceback__) if exc else None,
        )

    def _handle_uncaught_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
        self.shutdown(1)

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        logger.critical(
            "Uncaught exception in thread %s",
            args.thread.name if args.thread else "?",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        # Only the main thread can exit the process; ask the server to stop.
        self._exit_code = 1
        if self._server is not None:
            self._server.should_exit = True
        else:
            self.shutdown(1)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, exit_code: int = 0) -> None:
        """Stop listening, disconnect the database and exit. Runs once."""
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True

        try:
            if self._server is not None:
                self._server.should_exit = True
            if self._socket is not None:
                self._socket.close()
                self._socket = None
            if self.database is not None:
                self.database.disconnect()
            logger.info("Graceful shutdown complete")
        except Exception:
            logger.exception("Shutdown error")
            exit_code = exit_code or 1
        finally:
            sys.exit(exit_code)
