from .relay import UrlRelay, start_url_relay, send_open_request

__all__ = ["UrlRelay", "start_url_relay", "send_open_request"]
