"""
Virtual cookie jar script and its insertion into proxied HTML documents.

The generated script replaces ``document.cookie`` with an in-memory store
seeded from the persisted cookies, so pages keep working when the browser
blocks third-party cookies inside the embedding iframe. State is pushed back
through the proxy's control endpoints.
"""

import json
import re
from string import Template
from typing import Optional

from webview_bridge.cookie_proxy.cookies import parse_cookie_string
from webview_bridge.vars import (
    CLOSE_PATH,
    COMPLETION_MARKER,
    COMPLETION_POLL_INTERVAL_MS,
    COOKIE_NAMESPACE_PREFIX,
    COOKIE_SYNC_DELAY_MS,
    COOKIE_SYNC_INTERVAL_MS,
    SAVE_COOKIES_PATH,
)

HEAD_TAG = re.compile(r"<head(\s[^>]*)?>")

COOKIE_SCRIPT = Template(
    r"""<script>(function(){
var S=$initial;S[$auto_close_key]="true";
Object.defineProperty(document,"cookie",{configurable:true,
get:function(){return Object.keys(S).map(function(k){return k+"="+S[k];}).join("; ");},
set:function(v){
var p=String(v).split(";"),nv=p[0].trim(),eq=nv.indexOf("=");
if(eq<1)return;
var n=nv.slice(0,eq);
if(/;\s*max-age\s*=\s*0+\s*(;|$$)/i.test(v)){delete S[n];}else{S[n]=nv.slice(eq+1);}
}});
function sc(){var c=document.cookie;if(c)fetch($save_path,{method:"POST",body:c}).catch(function(){});}
setTimeout(sc,$sync_delay);setInterval(sc,$sync_interval);
var ci=setInterval(function(){
if(document.body&&document.body.textContent.indexOf($marker)!==-1){
clearInterval(ci);sc();fetch($close_path,{method:"POST"}).catch(function(){});
}},$poll_interval);
})();</script>"""
)


def _js_literal(value) -> str:
    # Compact JSON, with "</" escaped so the payload cannot end the script tag.
    return json.dumps(value, separators=(",", ":")).replace("</", "<\\/")


def build_cookie_script(saved_cookies: Optional[str]) -> str:
    """Render the inline ``<script>`` seeded with the persisted cookie string."""
    return COOKIE_SCRIPT.substitute(
        initial=_js_literal(parse_cookie_string(saved_cookies)),
        auto_close_key=_js_literal(f"{COOKIE_NAMESPACE_PREFIX}auto-close"),
        save_path=_js_literal(SAVE_COOKIES_PATH),
        close_path=_js_literal(CLOSE_PATH),
        marker=_js_literal(COMPLETION_MARKER),
        sync_delay=COOKIE_SYNC_DELAY_MS,
        sync_interval=COOKIE_SYNC_INTERVAL_MS,
        poll_interval=COMPLETION_POLL_INTERVAL_MS,
    )


def inject_script(html: str, saved_cookies: Optional[str]) -> str:
    """
    Insert the cookie script right after the first ``<head>`` tag.

    Documents without a head element get the script prepended instead, the
    script is never dropped.
    """
    script = build_cookie_script(saved_cookies)
    match = HEAD_TAG.search(html)
    if match:
        idx = match.end()
        return html[:idx] + script + html[idx:]
    return script + html
