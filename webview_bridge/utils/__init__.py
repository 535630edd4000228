import hashlib
from typing import Optional


def cookie_fingerprint(cookies: Optional[str]) -> str:
    """Describe a cookie string for logs without leaking its values."""
    if not cookies:
        return "<empty>"
    names = [segment.split("=", 1)[0] for segment in cookies.split("; ")]
    digest = hashlib.sha256(cookies.encode("utf-8")).hexdigest()[:12]
    return f"len={len(cookies)} sha256={digest} names={','.join(names)}"
