from .listener import BindError
from .cookie_proxy import CookieProxy, CookieProxyOptions, start_cookie_proxy
from .url_relay import UrlRelay, start_url_relay

__all__ = [
    "BindError",
    "CookieProxy",
    "CookieProxyOptions",
    "start_cookie_proxy",
    "UrlRelay",
    "start_url_relay",
]
