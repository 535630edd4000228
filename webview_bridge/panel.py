"""Host page that embeds a proxied URL in a full-size iframe."""

import html
from string import Template

from webview_bridge.cookie_proxy.state import origin_of

PANEL_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta http-equiv="Content-Security-Policy"
        content="default-src 'none'; style-src 'unsafe-inline'; frame-src $frame_origin;">
  <style>
    body { margin: 0; padding: 0; height: 100vh; display: flex; flex-direction: column; overflow: hidden; }
    iframe { flex: 1; width: 100%; border: none; }
  </style>
</head>
<body>
  <iframe src="$src"></iframe>
</body>
</html>
"""
)


def render_panel_html(url: str) -> str:
    """
    Render the embedding page for ``url``.

    Frame sources are restricted to the origin of ``url``. Raises
    ``ValueError`` when ``url`` is not an absolute http(s) URL.
    """
    return PANEL_TEMPLATE.substitute(
        frame_origin=origin_of(url),
        src=html.escape(url, quote=True),
    )
