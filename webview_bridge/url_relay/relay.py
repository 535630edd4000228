"""
Lightweight loopback listener that receives URLs to open from an external
script (``GET /open?url=...``), for hosts where custom URI schemes are not
dispatched reliably.
"""

import logging
from typing import Callable

import httpx
from fastapi import Request
from fastapi.responses import PlainTextResponse
from opentelemetry import trace

from webview_bridge.listener import BackgroundListener, create_app
from webview_bridge.utils.traced_requests import traced_request
from webview_bridge.vars import PROXY_HOST

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

OnUrl = Callable[[str], None]


# Any method on any path is routed here; everything but GET /open?url= is a 404
RELAY_PATH = "/{path:path}"


async def relay(request: Request):
    target_url = request.query_params.get("url")
    if request.method != "GET" or request.url.path != "/open" or not target_url:
        logger.debug(f"[UrlRelay] Ignoring {request.method} {request.url.path}")
        return PlainTextResponse("not found", status_code=404)

    with traced_request(
        tracer,
        operation="url_relay.open",
        start_message=f"[UrlRelay] Open requested for {target_url}",
        extra_attrs={"relay.url": target_url},
        level=logging.INFO,
    ):
        request.app.state.on_url(target_url)
    return PlainTextResponse("ok")


class UrlRelay:
    def __init__(self, listener: BackgroundListener):
        self._listener = listener

    @property
    def port(self) -> int:
        return self._listener.port

    @property
    def host(self) -> str:
        return self._listener.host

    def close(self) -> None:
        self._listener.close()


def build_relay_app(on_url: OnUrl):
    app = create_app()
    app.state.on_url = on_url
    app.add_route(RELAY_PATH, relay)
    return app


def start_url_relay(on_url: OnUrl, host: str = PROXY_HOST) -> UrlRelay:
    """Start the relay on an OS-assigned loopback port; ``BindError`` on failure."""
    listener = BackgroundListener(build_relay_app(on_url), "UrlRelay", host=host)
    listener.start()
    return UrlRelay(listener)


def send_open_request(url: str, port: int, host: str = PROXY_HOST) -> bool:
    """Ask a running relay to open ``url``. Returns whether the relay accepted it."""
    try:
        response = httpx.get(
            f"http://{host}:{port}/open",
            params={"url": url},
            timeout=5.0,
            trust_env=False,
        )
    except httpx.TransportError as e:
        logger.error(f"[UrlRelay] Relay on {host}:{port} unreachable: {e!r}")
        return False
    return response.status_code == 200
