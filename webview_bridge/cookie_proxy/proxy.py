import logging
from typing import Optional
from urllib.parse import urlsplit

from webview_bridge.cookie_proxy.events import EventChannel
from webview_bridge.cookie_proxy.route import CATCH_ALL_PATH, proxy_all, router
from webview_bridge.cookie_proxy.state import (
    CookieProxyOptions,
    CookieProxyState,
    origin_of,
)
from webview_bridge.listener import BackgroundListener, create_app
from webview_bridge.vars import PROXY_HOST, PROXY_TIMEOUT

logger = logging.getLogger("uvicorn.error")


def build_proxy_app(state: CookieProxyState):
    app = create_app()
    app.state.cookie_proxy = state
    app.include_router(router)
    app.add_route(CATCH_ALL_PATH, proxy_all)
    return app


class CookieProxy:
    """
    A running proxy instance for one browser-view session.

    Traffic to ``http://<host>:<port>/...`` is forwarded to whichever
    upstream origin the last ``rewrite_url`` call registered.
    """

    def __init__(self, state: CookieProxyState, listener: BackgroundListener):
        self._state = state
        self._listener = listener

    @property
    def port(self) -> int:
        return self._listener.port

    @property
    def host(self) -> str:
        return self._listener.host

    @property
    def events(self) -> EventChannel:
        return self._state.events

    @property
    def upstream(self) -> Optional[str]:
        return self._state.upstream.get()

    @property
    def base_url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"http://{host}:{self.port}"

    def rewrite_url(self, original_url: str) -> str:
        """
        Make ``original_url``'s origin the upstream and return the same
        path and query on the proxy's own address.

        Each call replaces the previous upstream.
        """
        origin = origin_of(original_url)
        parsed = urlsplit(original_url)
        self._state.upstream.set(origin)
        logger.info(f"[CookieProxy] Upstream set to {origin}")

        path = parsed.path or "/"
        query = f"?{parsed.query}" if parsed.query else ""
        return f"{self.base_url}{path}{query}"

    def close(self) -> None:
        self._listener.close()


def start_cookie_proxy(
    options: CookieProxyOptions,
    host: str = PROXY_HOST,
    timeout: Optional[float] = PROXY_TIMEOUT,
) -> CookieProxy:
    """
    Start a proxy on an OS-assigned loopback port.

    Raises ``BindError`` when the listener cannot be brought up; nothing is
    left running in that case.
    """
    state = CookieProxyState(options=options, timeout=timeout)
    listener = BackgroundListener(build_proxy_app(state), "CookieProxy", host=host)
    listener.start()
    return CookieProxy(state, listener)
