"""
Loopback listeners backed by a uvicorn server running in a daemon thread.

The socket is bound up front on an OS-assigned port so the port is known
before the server starts and bind failures surface synchronously.
"""

import logging
import socket
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI

from webview_bridge.vars import LISTENER_STARTUP_TIMEOUT, PROXY_HOST

logger = logging.getLogger("uvicorn.error")


class BindError(OSError):
    """Raised when a listener cannot bind or fails to start serving."""


def create_app() -> FastAPI:
    # No generated docs routes: they would shadow upstream paths
    return FastAPI(docs_url=None, redoc_url=None, openapi_url=None)


def bind_loopback(host: str = PROXY_HOST, port: int = 0) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise BindError(f"Cannot bind listener on {host}:{port}: {e}") from e
    return sock


class BackgroundListener:
    """A uvicorn server serving ``app`` on a pre-bound socket from a daemon thread."""

    def __init__(self, app: FastAPI, name: str, host: str = PROXY_HOST):
        self.name = name
        self.host = host
        self._sock = bind_loopback(host)
        self.port: int = self._sock.getsockname()[1]
        config = uvicorn.Config(
            app,
            log_config=None,
            access_log=False,
            lifespan="off",
            # Responses carry the upstream's own Server and Date headers
            server_header=False,
            date_header=False,
        )
        self._server = uvicorn.Server(config)
        self._thread: Optional[threading.Thread] = None

    def start(self, timeout: float = LISTENER_STARTUP_TIMEOUT) -> "BackgroundListener":
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._sock]},
            name=f"{self.name}-{self.port}",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.close()
                self._sock.close()
                raise BindError(
                    f"{self.name} failed to start serving on {self.host}:{self.port}"
                )
            time.sleep(0.01)

        logger.info(f"[{self.name}] Listening on {self.host}:{self.port}")
        return self

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def close(self) -> None:
        """Stop accepting connections. In-flight requests are not drained or awaited."""
        if not self._server.should_exit:
            logger.info(f"[{self.name}] Closing listener on {self.host}:{self.port}")
        self._server.should_exit = True

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread:
            self._thread.join(timeout)
