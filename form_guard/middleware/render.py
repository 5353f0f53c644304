"""
Rejection Rendering
===================
Turns a rejected Decision into a JSON or HTML response.
"""

import html
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from starlette.responses import HTMLResponse, JSONResponse, Response

from ..rate_limit import Decision, DecisionReason

RATE_LIMIT_STATUS = 429
DENIED_STATUS = 403

_HTML_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
</head>
<body>
<h1>{title}</h1>
<p>{message}</p>
</body>
</html>
"""


def wants_json(headers: Mapping[str, str]) -> bool:
    """True for API/AJAX style requests."""
    content_type = headers.get("content-type", "")
    accept = headers.get("accept", "")
    requested_with = headers.get("x-requested-with", "")
    return (
        "application/json" in content_type
        or "application/json" in accept
        or requested_with == "XMLHttpRequest"
    )


def rejection_message(decision: Decision, form_identifier: str) -> str:
    if decision.reason == DecisionReason.IP_DENIED:
        return "IP address is blocked"
    if decision.retry_after_seconds is not None:
        return (
            f'Rate limit exceeded for form "{form_identifier}". '
            f"Try again in {decision.retry_after_seconds} seconds."
        )
    return f'Rate limit exceeded for form "{form_identifier}".'


def rejection_status(decision: Decision) -> int:
    return DENIED_STATUS if decision.reason == DecisionReason.IP_DENIED else RATE_LIMIT_STATUS


def retry_headers(decision: Decision) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    if decision.limit is not None:
        headers["X-RateLimit-Limit"] = str(decision.limit)
        headers["X-RateLimit-Remaining"] = "0"
    return headers


class ResponseRenderer(ABC):
    """Renders a rejected decision."""

    @abstractmethod
    def render(self, decision: Decision, form_identifier: str) -> Response:
        pass


class JsonRenderer(ResponseRenderer):
    def render(self, decision: Decision, form_identifier: str) -> Response:
        return JSONResponse(
            status_code=rejection_status(decision),
            content={
                "error": rejection_message(decision, form_identifier),
                "formIdentifier": form_identifier,
                "retryAfter": decision.retry_after_seconds,
            },
            headers=retry_headers(decision),
        )


class HtmlRenderer(ResponseRenderer):
    """Plain error page; pass ``title`` to brand it."""

    def __init__(self, title: str = "Rate Limit Exceeded"):
        self.title = title

    def render(self, decision: Decision, form_identifier: str) -> Response:
        message = rejection_message(decision, form_identifier)
        if decision.retry_after_seconds is not None and decision.reason != DecisionReason.IP_DENIED:
            message = f"Too many submissions. Please try again in {decision.retry_after_seconds} seconds."
        content = _HTML_PAGE.format(title=html.escape(self.title), message=html.escape(message))
        return HTMLResponse(
            content=content,
            status_code=rejection_status(decision),
            headers=retry_headers(decision),
        )


def select_renderer(
    headers: Mapping[str, str],
    json_renderer: Optional[ResponseRenderer] = None,
    html_renderer: Optional[ResponseRenderer] = None,
) -> ResponseRenderer:
    if wants_json(headers):
        return json_renderer or JsonRenderer()
    return html_renderer or HtmlRenderer()
