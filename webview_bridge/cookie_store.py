import logging
import os

from webview_bridge.utils import cookie_fingerprint

logger = logging.getLogger("uvicorn.error")


class FileCookieStore:
    """Persists the proxy's cookie string in a plain UTF-8 text file."""

    def __init__(self, path: str):
        if not path:
            raise ValueError("Cookie store path is required")
        self.path = os.path.abspath(os.path.expanduser(path))

    def load(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError:
            return ""

    def save(self, cookies: str) -> None:
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(cookies)
        os.replace(tmp_path, self.path)
        logger.debug(
            f"[CookieStore] Saved {cookie_fingerprint(cookies)} to {self.path}"
        )
