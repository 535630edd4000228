import logging
from typing import AsyncIterator, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from opentelemetry import trace
from prometheus_client import Counter

from webview_bridge.cookie_proxy.cookies import build_set_cookie_headers
from webview_bridge.cookie_proxy.injector import inject_script
from webview_bridge.cookie_proxy.state import CookieProxyState
from webview_bridge.utils import cookie_fingerprint
from webview_bridge.utils.traced_requests import traced_request
from webview_bridge.vars import CLOSE_PATH, SAVE_COOKIES_PATH

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Invalidated by the rewritten body and the forced identity encoding
STRIPPED_HTML_HEADERS = {b"content-length", b"content-encoding", b"transfer-encoding"}

# Overridden on every forwarded request
OVERRIDDEN_REQUEST_HEADERS = {"host", "accept-encoding"}

CONTROL_CALLS = Counter(
    "cookie_proxy_control_calls", "Control endpoint calls handled", ["endpoint"]
)
FORWARDED_REQUESTS = Counter(
    "cookie_proxy_forwarded_requests",
    "Requests relayed to the upstream, by response handling",
    ["branch"],
)
UPSTREAM_ERRORS = Counter(
    "cookie_proxy_upstream_errors", "Requests answered with 502", ["reason"]
)

RawHeaders = List[Tuple[bytes, bytes]]


def get_proxy_state(request: Request) -> CookieProxyState:
    return request.app.state.cookie_proxy


def get_target_url(origin: str, request: Request) -> str:
    """
    Append the raw inbound path and query to the upstream origin.

    The path is appended rather than resolved, so a path such as
    ``//elsewhere/x`` stays on the configured origin.
    """
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    if not path.startswith("/"):
        path = "/" + path
    query = request.scope.get("query_string", b"").decode("latin-1")
    if query:
        return f"{origin}{path}?{query}"
    return f"{origin}{path}"


def prepare_headers(request: Request, target_url: str) -> List[Tuple[str, str]]:
    """Copy all inbound headers, then point Host at the upstream and force identity encoding."""
    headers = [
        (name, value)
        for name, value in request.headers.items()
        if name.lower() not in OVERRIDDEN_REQUEST_HEADERS
    ]
    headers.append(("host", urlsplit(target_url).netloc))
    headers.append(("accept-encoding", "identity"))
    return headers


def _has_body(request: Request) -> bool:
    return "content-length" in request.headers or "transfer-encoding" in request.headers


def is_html(content_type: Optional[str]) -> bool:
    return bool(content_type) and "text/html" in content_type.lower()


def build_html_headers(upstream_headers: RawHeaders, saved_cookies: str) -> RawHeaders:
    """
    Drop the framing headers of the upstream response and restore the
    namespaced cookies as real ``Set-Cookie`` headers.

    When restored cookies exist they replace the upstream's own
    ``Set-Cookie`` headers.
    """
    headers = [
        (name, value)
        for name, value in upstream_headers
        if name.lower() not in STRIPPED_HTML_HEADERS
    ]
    set_cookies = build_set_cookie_headers(saved_cookies)
    if set_cookies:
        headers = [(name, value) for name, value in headers if name.lower() != b"set-cookie"]
        headers.extend((b"set-cookie", cookie.encode("utf-8")) for cookie in set_cookies)
    return headers


def _build_client(timeout: Optional[float]) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=False,
        trust_env=False,
    )


async def _close_upstream(
    upstream_response: httpx.Response, client: httpx.AsyncClient
) -> None:
    await upstream_response.aclose()
    await client.aclose()


async def stream_response(
    upstream_response: httpx.Response, client: httpx.AsyncClient
) -> AsyncIterator[bytes]:
    """Relay the upstream body chunk by chunk, without decoding or buffering."""
    try:
        async for chunk in upstream_response.aiter_raw():
            yield chunk
    finally:
        await _close_upstream(upstream_response, client)


def bad_gateway(detail: str, reason: str) -> Response:
    UPSTREAM_ERRORS.labels(reason=reason).inc()
    return PlainTextResponse(detail, status_code=502)


async def transform_html_response(
    upstream_response: httpx.Response,
    client: httpx.AsyncClient,
    state: CookieProxyState,
) -> Response:
    """
    Buffer an HTML response, inject the cookie script and fix up headers.

    The whole document is held in memory; there is no size cap.
    """
    try:
        raw = await upstream_response.aread()
    finally:
        await _close_upstream(upstream_response, client)

    html = raw.decode("utf-8", errors="replace")
    saved_cookies = state.options.load_cookies()
    body = inject_script(html, saved_cookies).encode("utf-8")

    response = Response(content=body, status_code=upstream_response.status_code)
    response.raw_headers = [
        (b"content-length", str(len(body)).encode("latin-1"))
    ] + build_html_headers(upstream_response.headers.raw, saved_cookies)
    FORWARDED_REQUESTS.labels(branch="html").inc()
    return response


async def forward_to_upstream(request: Request, state: CookieProxyState) -> Response:
    """
    Forward the inbound request to the current upstream origin.

    A single attempt is made; any transport failure is answered with 502.
    The origin is read once, at dispatch time.
    """
    origin = state.upstream.get()
    if not origin:
        logger.warning(
            f"[CookieProxy] No upstream configured, rejecting {request.method} {request.url.path}"
        )
        return bad_gateway("no upstream configured", "no_upstream")

    target_url = get_target_url(origin, request)
    with traced_request(
        tracer,
        operation="cookie_proxy.forward",
        start_message=f"[CookieProxy] Proxying {request.method} {request.url.path} -> {target_url}",
        extra_attrs={"proxy.target_url": target_url, "proxy.method": request.method},
    ) as span:
        client = _build_client(state.timeout)
        try:
            upstream_request = client.build_request(
                request.method,
                target_url,
                headers=prepare_headers(request, target_url),
                content=request.stream() if _has_body(request) else None,
            )
            upstream_response = await client.send(upstream_request, stream=True)
        except (httpx.TransportError, httpx.InvalidURL) as e:
            await client.aclose()
            logger.error(f"[CookieProxy] Upstream request to {target_url} failed: {e!r}")
            span.set_attribute("proxy.error", type(e).__name__)
            return bad_gateway("proxy error", "transport")

        span.set_attribute("proxy.status_code", upstream_response.status_code)
        content_type = upstream_response.headers.get("content-type", "")

        if is_html(content_type):
            try:
                return await transform_html_response(upstream_response, client, state)
            except httpx.TransportError as e:
                logger.error(
                    f"[CookieProxy] Reading HTML from {target_url} failed: {e!r}"
                )
                span.set_attribute("proxy.error", type(e).__name__)
                return bad_gateway("proxy error", "transport")

        response = StreamingResponse(
            stream_response(upstream_response, client),
            status_code=upstream_response.status_code,
        )
        response.raw_headers = list(upstream_response.headers.raw)
        FORWARDED_REQUESTS.labels(branch="passthrough").inc()
        return response


@router.post(SAVE_COOKIES_PATH)
async def save_cookies(request: Request):
    """Persist the page's virtual cookie jar, passed through verbatim."""
    state = get_proxy_state(request)
    body = (await request.body()).decode("utf-8", errors="replace")
    with traced_request(
        tracer,
        operation="cookie_proxy.save_cookies",
        start_message=f"[CookieProxy] Saving cookies: {cookie_fingerprint(body)}",
        extra_attrs={"proxy.cookies.length": len(body)},
    ):
        state.options.on_save_cookies(body)
    CONTROL_CALLS.labels(endpoint="cookies").inc()
    return PlainTextResponse("ok")


@router.post(CLOSE_PATH)
async def signal_close(request: Request):
    """Session finished in the page: notify the owner, then every close subscriber."""
    state = get_proxy_state(request)
    with traced_request(
        tracer,
        operation="cookie_proxy.close",
        start_message="[CookieProxy] Close signal received",
        level=logging.INFO,
    ):
        if state.options.on_close is not None:
            state.options.on_close()
        state.events.emit("close")
    CONTROL_CALLS.labels(endpoint="close").inc()
    return PlainTextResponse("ok")


# Mounted as a plain Starlette route with no method list, after the control
# endpoints, so every method on every other path reaches the upstream
CATCH_ALL_PATH = "/{path:path}"


async def proxy_all(request: Request):
    """Catch-all endpoint that proxies all requests to the current upstream."""
    return await forward_to_upstream(request, get_proxy_state(request))
