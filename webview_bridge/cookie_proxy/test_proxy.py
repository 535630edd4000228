"""End-to-end tests against a running proxy instance and real loopback upstreams."""

import socket
from unittest.mock import Mock

import httpx
import pytest

from webview_bridge.cookie_proxy.proxy import start_cookie_proxy
from webview_bridge.cookie_proxy.state import CookieProxyOptions, origin_of
from webview_bridge.listener import BindError, bind_loopback

HTML = b"<html><head><title>Test</title></head><body>Hello</body></html>"


@pytest.fixture
def make_proxy():
    proxies = []

    def _start(load_cookies=lambda: "", on_save_cookies=None, on_close=None):
        proxy = start_cookie_proxy(
            CookieProxyOptions(
                load_cookies=load_cookies,
                on_save_cookies=on_save_cookies or Mock(),
                on_close=on_close,
            )
        )
        proxies.append(proxy)
        return proxy

    yield _start

    for proxy in proxies:
        proxy.close()


@pytest.fixture
def http():
    with httpx.Client(trust_env=False, timeout=10.0) as client:
        yield client


def test_starts_on_a_random_port(make_proxy):
    proxy = make_proxy()
    assert proxy.port > 0
    assert proxy.upstream is None


def test_rewrite_url(make_proxy):
    proxy = make_proxy()

    rewritten = proxy.rewrite_url("http://localhost:3000/review?id=42")

    assert rewritten == f"http://127.0.0.1:{proxy.port}/review?id=42"
    assert proxy.upstream == "http://localhost:3000"


@pytest.mark.parametrize(
    "original, path_and_query",
    [
        ("https://example.com", "/"),
        ("https://example.com/", "/"),
        ("https://example.com/a/b%20c?x=1&y=%2F", "/a/b%20c?x=1&y=%2F"),
        ("http://user:pw@example.com:8080/p#frag", "/p"),
    ],
)
def test_rewrite_url_keeps_path_and_query(make_proxy, original, path_and_query):
    proxy = make_proxy()
    assert proxy.rewrite_url(original) == f"http://127.0.0.1:{proxy.port}{path_and_query}"


def test_rewrite_url_rejects_relative(make_proxy):
    proxy = make_proxy()
    proxy.rewrite_url("http://localhost:3000/")

    with pytest.raises(ValueError):
        proxy.rewrite_url("/relative/path")

    assert proxy.upstream == "http://localhost:3000"


@pytest.mark.parametrize(
    "url, origin",
    [
        ("http://localhost:3000/x", "http://localhost:3000"),
        ("https://Example.com:443/x", "https://example.com"),
        ("http://example.com:80", "http://example.com"),
        ("http://[::1]:8080/x", "http://[::1]:8080"),
        ("HTTPS://example.com:8443/x", "https://example.com:8443"),
    ],
)
def test_origin_of(url, origin):
    assert origin_of(url) == origin


@pytest.mark.parametrize("url", ["", "localhost:3000", "ftp://example.com/x", "http://"])
def test_origin_of_rejects(url):
    with pytest.raises(ValueError):
        origin_of(url)


def test_saves_cookies(make_proxy, http):
    on_save = Mock()
    proxy = make_proxy(on_save_cookies=on_save)

    response = http.post(
        f"http://127.0.0.1:{proxy.port}/___ext/cookies",
        content="plannotator-identity=tater-123; plannotator-save-enabled=true",
    )

    assert response.status_code == 200
    on_save.assert_called_once_with(
        "plannotator-identity=tater-123; plannotator-save-enabled=true"
    )


def test_close_endpoint(make_proxy, http):
    on_close = Mock()
    proxy = make_proxy(on_close=on_close)
    listener = Mock()
    proxy.events.subscribe("close", listener)

    response = http.post(f"http://127.0.0.1:{proxy.port}/___ext/close")

    assert response.status_code == 200
    on_close.assert_called_once_with()
    listener.assert_called_once_with()


def test_no_upstream(make_proxy, http):
    proxy = make_proxy()

    response = http.get(f"http://127.0.0.1:{proxy.port}/some-path")

    assert response.status_code == 502


def test_injects_script_into_html(make_proxy, upstream_server, http):
    upstream = upstream_server(headers=[("Content-Type", "text/html")], body=HTML)
    proxy = make_proxy(
        load_cookies=lambda: "plannotator-identity=tater-42; other-cookie=ignore"
    )

    response = http.get(proxy.rewrite_url(f"{upstream.url}/"))
    html = response.text

    assert "/___ext/cookies" in html
    assert "/___ext/close" in html
    assert '"plannotator-identity":"tater-42"' in html
    assert '"other-cookie":"ignore"' in html
    assert "<title>Test</title>" in html
    assert "Hello" in html
    assert response.headers.get_list("set-cookie") == [
        "plannotator-identity=tater-42; Path=/; Max-Age=31536000; SameSite=Lax"
    ]
    assert upstream.requests[0]["headers"]["Accept-Encoding"] == "identity"
    assert upstream.requests[0]["headers"]["Host"] == upstream.url[len("http://") :]


def test_passes_through_non_html(make_proxy, upstream_server, http):
    upstream = upstream_server(
        headers=[("Content-Type", "application/json")], body=b'{"status":"ok"}'
    )
    proxy = make_proxy(load_cookies=lambda: "plannotator-identity=tater-42")

    response = http.get(proxy.rewrite_url(f"{upstream.url}/api/plan"))

    assert response.content == b'{"status":"ok"}'
    assert response.headers["content-type"] == "application/json"
    assert response.json() == {"status": "ok"}
    assert upstream.requests[0]["path"] == "/api/plan"


def test_forwards_nonstandard_method(make_proxy, upstream_server, http):
    upstream = upstream_server(headers=[("Content-Type", "text/plain")], body=b"hi")
    proxy = make_proxy()

    response = http.request("PROPFIND", proxy.rewrite_url(f"{upstream.url}/dav"))

    assert response.status_code == 200
    assert response.text == "hi"
    assert upstream.requests[0]["method"] == "PROPFIND"
    assert upstream.requests[0]["path"] == "/dav"


def test_server_and_date_headers_not_duplicated(make_proxy, upstream_server, http):
    upstream = upstream_server(headers=[("Content-Type", "application/json")], body=b"{}")
    proxy = make_proxy()

    response = http.get(proxy.rewrite_url(f"{upstream.url}/api"))

    assert len(response.headers.get_list("date")) == 1
    servers = response.headers.get_list("server")
    assert len(servers) == 1
    assert servers[0].startswith("BaseHTTP/")


def test_forwards_request_body(make_proxy, upstream_server, http):
    upstream = upstream_server(headers=[("Content-Type", "text/plain")], body=b"done")
    proxy = make_proxy()

    response = http.post(
        proxy.rewrite_url(f"{upstream.url}/api/submit?draft=1"), content=b"payload"
    )

    assert response.text == "done"
    assert upstream.requests[0]["method"] == "POST"
    assert upstream.requests[0]["path"] == "/api/submit?draft=1"
    assert upstream.requests[0]["body"] == b"payload"


def test_last_rewrite_wins(make_proxy, upstream_server, http):
    first = upstream_server(headers=[("Content-Type", "text/plain")], body=b"first")
    second = upstream_server(headers=[("Content-Type", "text/plain")], body=b"second")
    proxy = make_proxy()

    proxy.rewrite_url(f"{first.url}/")
    url = proxy.rewrite_url(f"{second.url}/")

    assert http.get(url).text == "second"
    assert first.requests == []


def test_unreachable_upstream(make_proxy, http):
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        free_port = probe.getsockname()[1]
    proxy = make_proxy()

    response = http.get(proxy.rewrite_url(f"http://127.0.0.1:{free_port}/"))

    assert response.status_code == 502
    assert response.text == "proxy error"


def test_close_stops_listening(make_proxy, http):
    proxy = make_proxy()
    port = proxy.port

    proxy.close()
    proxy._listener.join(timeout=5)

    with pytest.raises(httpx.ConnectError):
        http.get(f"http://127.0.0.1:{port}/")


def test_bind_failure_raises():
    with pytest.raises(BindError):
        start_cookie_proxy(
            CookieProxyOptions(load_cookies=lambda: "", on_save_cookies=Mock()),
            host="256.256.256.256",
        )


def test_bind_port_in_use():
    blocker = bind_loopback("127.0.0.1")
    blocker.listen(1)
    try:
        with pytest.raises(BindError):
            bind_loopback("127.0.0.1", blocker.getsockname()[1])
    finally:
        blocker.close()
