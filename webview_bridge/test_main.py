from unittest.mock import patch

from webview_bridge.__main__ import main, parse_args


def test_parse_serve_defaults():
    args = parse_args(["serve"])

    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.panel_file is None
    assert args.exit_on_close is False


def test_parse_open():
    args = parse_args(["open", "http://localhost:3000", "--port", "4000"])

    assert args.command == "open"
    assert args.url == "http://localhost:3000"
    assert args.port == 4000


def test_open_sends_to_relay():
    with patch("webview_bridge.__main__.send_open_request", return_value=True) as send:
        assert main(["open", "http://localhost:3000", "--port", "4000"]) == 0

    send.assert_called_once_with("http://localhost:3000", 4000, host="127.0.0.1")


def test_open_reports_rejection():
    with patch("webview_bridge.__main__.send_open_request", return_value=False):
        assert main(["open", "http://localhost:3000", "--port", "4000"]) == 1


def test_open_without_port():
    with patch("webview_bridge.__main__.send_open_request") as send:
        assert main(["open", "http://localhost:3000", "--port", "0"]) == 1

    send.assert_not_called()
