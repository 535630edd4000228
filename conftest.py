# Ensure tests import the package from this checkout first, even when it is
# not installed, and share the fake upstream servers between test modules.
import os
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)


class _UpstreamHandler(BaseHTTPRequestHandler):
    """Serves the canned response configured on the server, recording requests."""

    def _respond(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(
            {
                "method": self.command,
                "path": self.path,
                "headers": self.headers,
                "body": body,
            }
        )
        status, headers, payload = self.server.reply
        self.send_response(status)
        for name, value in headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = _respond
    do_POST = _respond
    do_PUT = _respond
    do_DELETE = _respond
    do_PROPFIND = _respond

    def log_message(self, format, *args):
        pass  # suppress upstream access logs


@pytest.fixture
def upstream_server():
    """Factory for loopback upstreams returning a fixed (status, headers, body)."""
    servers = []

    def _start(status=200, headers=None, body=b""):
        server = ThreadingHTTPServer(("127.0.0.1", 0), _UpstreamHandler)
        server.daemon_threads = True
        server.reply = (status, headers or [], body)
        server.requests = []
        server.url = f"http://127.0.0.1:{server.server_address[1]}"
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.shutdown()
        server.server_close()
