from .cookies import (
    parse_cookie_string,
    serialize_cookies,
    build_set_cookie_headers,
)
from .events import EventChannel
from .injector import build_cookie_script, inject_script
from .proxy import CookieProxy, start_cookie_proxy, build_proxy_app
from .state import CookieProxyOptions, CookieProxyState, UpstreamOrigin

__all__ = [
    "parse_cookie_string",
    "serialize_cookies",
    "build_set_cookie_headers",
    "EventChannel",
    "build_cookie_script",
    "inject_script",
    "CookieProxy",
    "start_cookie_proxy",
    "build_proxy_app",
    "CookieProxyOptions",
    "CookieProxyState",
    "UpstreamOrigin",
]
