import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "webview-cookie-bridge")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Loopback address every listener binds to and rewritten URLs point at
PROXY_HOST = os.environ.get("PROXY_HOST", "127.0.0.1")
# Upstream timeout in seconds; unset means requests may hang indefinitely
PROXY_TIMEOUT = (
    float(os.environ["PROXY_TIMEOUT"]) if os.environ.get("PROXY_TIMEOUT") else None
)
LISTENER_STARTUP_TIMEOUT = float(os.getenv("LISTENER_STARTUP_TIMEOUT", "10"))

COOKIE_NAMESPACE_PREFIX = os.environ.get("COOKIE_NAMESPACE_PREFIX", "plannotator-")
COOKIE_MAX_AGE = int(os.getenv("COOKIE_MAX_AGE", "31536000"))
COOKIE_FILE = os.getenv(
    "COOKIE_FILE", os.path.expanduser("~/.local/state/webview-bridge/cookies.txt")
)

COMPLETION_MARKER = os.environ.get("COMPLETION_MARKER", "Your response has been sent")
COOKIE_SYNC_DELAY_MS = int(os.getenv("COOKIE_SYNC_DELAY_MS", "500"))
COOKIE_SYNC_INTERVAL_MS = int(os.getenv("COOKIE_SYNC_INTERVAL_MS", "2000"))
COMPLETION_POLL_INTERVAL_MS = int(os.getenv("COMPLETION_POLL_INTERVAL_MS", "500"))

SAVE_COOKIES_PATH = "/___ext/cookies"
CLOSE_PATH = "/___ext/close"

# Relay port used by the `open` command when --port is not given
RELAY_PORT = os.getenv("WEBVIEW_BRIDGE_RELAY_PORT", "")
