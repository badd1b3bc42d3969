"""HTML pages returned to the OAuth popup.

Each page posts its payload to ``window.opener`` (when there is one) at the
page's own origin, then closes the popup. The payload is also rendered into a
``<div id="result">`` so the page is useful when no opener exists.
"""
import html
import json
from typing import Any, Dict

from fastapi.responses import HTMLResponse

MESSAGE_KIND = "oauth-result"
CLOSE_DELAY_MS = 500

_PAGE = """<html>
  <body>
    <script>
      (function(){{
        const payload = {script_payload};
        try {{
          if (window.opener && !window.opener.closed) {{
            window.opener.postMessage(payload, window.location.origin);
          }}
        }} catch(e){{}}
        setTimeout(function(){{ try {{ window.close(); }} catch(e){{}} }}, {delay});
      }})();
    </script>
    <div id="result">{visible_payload}</div>
  </body>
</html>
"""


def script_json(payload: Dict[str, Any]) -> str:
    """JSON safe to embed inside a <script> element."""
    return (
        json.dumps(payload)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def render(payload: Dict[str, Any], status_code: int) -> HTMLResponse:
    payload = {"kind": MESSAGE_KIND, **payload}
    body = _PAGE.format(
        script_payload=script_json(payload),
        visible_payload=html.escape(json.dumps(payload)),
        delay=CLOSE_DELAY_MS,
    )
    return HTMLResponse(content=body, status_code=status_code)


def error_page(error: str, status_code: int = 400, **extra: Any) -> HTMLResponse:
    payload: Dict[str, Any] = {"error": error}
    payload.update({k: v for k, v in extra.items() if v is not None})
    return render(payload, status_code)


def success_page(data: Dict[str, Any]) -> HTMLResponse:
    return render({"success": True, **data}, 200)
