"""
Conversions between the flat cookie string used for persistence, a name/value
mapping, and the ``Set-Cookie`` headers restored on HTML responses.
"""

from typing import Dict, List, Optional

from webview_bridge.vars import COOKIE_MAX_AGE, COOKIE_NAMESPACE_PREFIX

SEPARATOR = "; "


def parse_cookie_string(cookies: Optional[str]) -> Dict[str, str]:
    """
    Parse ``"a=1; b=2"`` into ``{"a": "1", "b": "2"}``.

    Segments without ``=`` or with an empty name are skipped. A later
    duplicate name overwrites the earlier value.
    """
    store: Dict[str, str] = {}
    if not cookies:
        return store
    for segment in cookies.split(SEPARATOR):
        name, sep, value = segment.partition("=")
        if sep and name:
            store[name] = value
    return store


def serialize_cookies(store: Dict[str, str]) -> str:
    return SEPARATOR.join(f"{name}={value}" for name, value in store.items())


def build_set_cookie_headers(
    cookies: Optional[str], prefix: str = COOKIE_NAMESPACE_PREFIX
) -> List[str]:
    """
    Build ``Set-Cookie`` values for the namespaced cookies only.

    Cookies outside the namespace stay in the in-page jar and are never
    written as real browser cookies.
    """
    if not cookies:
        return []
    return [
        f"{segment}; Path=/; Max-Age={COOKIE_MAX_AGE}; SameSite=Lax"
        for segment in cookies.split(SEPARATOR)
        if segment.startswith(prefix)
    ]
