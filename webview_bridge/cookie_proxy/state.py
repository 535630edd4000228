import threading
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import urlsplit

from webview_bridge.cookie_proxy.events import EventChannel

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass
class CookieProxyOptions:
    """Callbacks supplied by the owner of a proxy instance."""

    load_cookies: Callable[[], str]
    on_save_cookies: Callable[[str], None]
    on_close: Optional[Callable[[], None]] = None


def origin_of(url: str) -> str:
    """
    Return ``scheme://host[:port]`` for an absolute http(s) URL.

    Default ports and userinfo are dropped, IPv6 hosts are bracketed.
    Raises ``ValueError`` for anything that is not an absolute http(s) URL.
    """
    parsed = urlsplit(url)
    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parsed.hostname:
        raise ValueError(f"Not an absolute http(s) URL: {url!r}")
    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is not None and port != DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


class UpstreamOrigin:
    """
    The single active upstream of a proxy instance.

    One writer (``rewrite_url``) replaces the value wholesale, many request
    handlers read it. Reads and writes are single reference swaps; there is
    no atomicity between a rewrite and requests already in flight, which may
    go to either the old or the new origin.
    """

    def __init__(self, origin: Optional[str] = None):
        self._origin = origin
        self._write_lock = threading.Lock()

    def get(self) -> Optional[str]:
        return self._origin

    def set(self, origin: str) -> None:
        with self._write_lock:
            self._origin = origin


@dataclass
class CookieProxyState:
    options: CookieProxyOptions
    upstream: UpstreamOrigin = field(default_factory=UpstreamOrigin)
    events: EventChannel = field(default_factory=EventChannel)
    timeout: Optional[float] = None
