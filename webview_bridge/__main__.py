"""
Run a cookie proxy session from the command line.

Usage:
    python -m webview_bridge serve [--cookie-file PATH] [--panel-file PATH] [--exit-on-close]
    python -m webview_bridge open URL [--port PORT]
"""

import argparse
import logging
import sys
import threading

from webview_bridge.cookie_proxy import CookieProxyOptions, start_cookie_proxy
from webview_bridge.cookie_store import FileCookieStore
from webview_bridge.listener import BindError
from webview_bridge.panel import render_panel_html
from webview_bridge.url_relay import send_open_request, start_url_relay
from webview_bridge.vars import COOKIE_FILE, LOG_LEVEL, PROXY_HOST, RELAY_PORT

logger = logging.getLogger("uvicorn.error")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="webview-bridge",
        description="Same-origin cookie proxy for embedded browser views",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Start the cookie proxy and the URL relay")
    serve.add_argument("--host", default=PROXY_HOST, help="Loopback bind address")
    serve.add_argument(
        "--cookie-file", default=COOKIE_FILE, help="File the cookie jar is persisted to"
    )
    serve.add_argument(
        "--panel-file",
        default=None,
        help="Write the embedding page for each opened URL to this file",
    )
    serve.add_argument(
        "--exit-on-close",
        action="store_true",
        help="Stop once the page signals that the session is complete",
    )

    open_ = sub.add_parser("open", help="Send a URL to a running relay")
    open_.add_argument("url", help="URL to open")
    open_.add_argument("--host", default=PROXY_HOST, help="Relay address")
    open_.add_argument(
        "--port",
        type=int,
        default=int(RELAY_PORT) if RELAY_PORT else None,
        help="Relay port (default: $WEBVIEW_BRIDGE_RELAY_PORT)",
    )
    return parser.parse_args(argv)


def serve(args) -> int:
    store = FileCookieStore(args.cookie_file)
    stop = threading.Event()

    try:
        proxy = start_cookie_proxy(
            CookieProxyOptions(load_cookies=store.load, on_save_cookies=store.save),
            host=args.host,
        )
    except BindError as e:
        logger.error(f"[CLI] {e}")
        return 1

    def on_session_close() -> None:
        logger.info("[CLI] Session complete")
        if args.exit_on_close:
            stop.set()

    proxy.events.subscribe("close", on_session_close)

    def on_url(url: str) -> None:
        try:
            proxied = proxy.rewrite_url(url)
        except ValueError as e:
            logger.warning(f"[CLI] Ignoring URL: {e}")
            return
        if args.panel_file:
            with open(args.panel_file, "w", encoding="utf-8") as handle:
                handle.write(render_panel_html(proxied))
            logger.info(f"[CLI] Panel written to {args.panel_file}")
        print(proxied, flush=True)

    try:
        relay = start_url_relay(on_url, host=args.host)
    except BindError as e:
        logger.error(f"[CLI] {e}")
        proxy.close()
        return 1

    logger.info(f"[CLI] Cookie proxy on {proxy.base_url}, cookies in {store.path}")
    print(f"export WEBVIEW_BRIDGE_RELAY_PORT={relay.port}", file=sys.stderr)

    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("[CLI] Interrupted")
    finally:
        relay.close()
        proxy.close()
    return 0


def open_url(args) -> int:
    if not args.port:
        logger.error("[CLI] No relay port given and WEBVIEW_BRIDGE_RELAY_PORT is unset")
        return 1
    if send_open_request(args.url, args.port, host=args.host):
        return 0
    logger.error(f"[CLI] Relay on port {args.port} did not accept {args.url}")
    return 1


def main(argv=None) -> int:
    logging.basicConfig(format="%(levelname)s - %(message)s", level=LOG_LEVEL)
    args = parse_args(argv)
    if args.command == "serve":
        return serve(args)
    return open_url(args)


if __name__ == "__main__":
    sys.exit(main())
