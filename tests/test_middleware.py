"""
Tests for the Starlette form rate limit middleware.
"""

import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient
from structlog.testing import capture_logs

from form_guard.config import Configuration
from form_guard.limiter import FormRateLimiter
from form_guard.middleware import (
    FormRateLimitMiddleware,
    HtmlRenderer,
    JsonRenderer,
    form_identifier_from_names,
    select_renderer,
    wants_json,
)
from form_guard.rate_limit import Decision, DecisionReason

FORM_DATA = {"tx_form_formframework[contact-1][email]": "a@example.com"}


async def echo(request: Request):
    # Read the body to ensure the middleware didn't consume it
    body = await request.body()
    return JSONResponse({"status": "ok", "body_size": len(body)})


def create_client(storage, clock, **options):
    options.setdefault("limit", 2)
    options.setdefault("interval", 60)
    trust_forwarded_for = options.pop("trust_forwarded_for", False)
    guard = FormRateLimiter(Configuration(**options), storage=storage, clock=clock)
    app = Starlette(
        routes=[Route("/submit", echo, methods=["GET", "POST"])],
        middleware=[Middleware(FormRateLimitMiddleware, guard=guard, trust_forwarded_for=trust_forwarded_for)],
    )
    return TestClient(app)


class TestPassThrough:
    def test_get_requests_are_not_limited(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        
        for _ in range(3):
            assert client.get("/submit").status_code == 200
        assert storage.writes == 0
    
    def test_posts_without_form_field_are_not_limited(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        
        for _ in range(3):
            response = client.post("/submit", data={"q": "search"})
            assert response.status_code == 200
        assert storage.writes == 0
    
    def test_body_stays_readable_downstream(self, storage, clock):
        client = create_client(storage, clock)
        
        response = client.post("/submit", data=FORM_DATA)
        
        assert response.status_code == 200
        assert response.json()["body_size"] > 0


class TestRejection:
    def test_html_response_after_limit(self, storage, clock):
        client = create_client(storage, clock)
        
        assert client.post("/submit", data=FORM_DATA).status_code == 200
        assert client.post("/submit", data=FORM_DATA).status_code == 200
        clock.advance(1)
        response = client.post("/submit", data=FORM_DATA)
        
        assert response.status_code == 429
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["retry-after"] == "59"
        assert response.headers["x-ratelimit-limit"] == "2"
        assert response.headers["x-ratelimit-remaining"] == "0"
        assert "Please try again in 59 seconds." in response.text
    
    def test_json_response_for_ajax_requests(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        headers = {"Accept": "application/json"}
        
        client.post("/submit", data=FORM_DATA, headers=headers)
        response = client.post("/submit", data=FORM_DATA, headers=headers)
        
        assert response.status_code == 429
        body = response.json()
        assert body["formIdentifier"] == "contact-1"
        assert body["retryAfter"] == 60
        assert body["error"] == 'Rate limit exceeded for form "contact-1". Try again in 60 seconds.'
    
    def test_json_body_submissions(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        payload = {"tx_form_formframework": {"contact-1": {"email": "a@example.com"}}}
        
        assert client.post("/submit", json=payload).status_code == 200
        response = client.post("/submit", json=payload)
        
        assert response.status_code == 429
        assert response.json()["formIdentifier"] == "contact-1"
    
    def test_multipart_submissions(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        files = {"upload": ("cv.txt", b"hello", "text/plain")}
        
        assert client.post("/submit", data=FORM_DATA, files=files).status_code == 200
        assert client.post("/submit", data=FORM_DATA, files=files).status_code == 429
    
    def test_forms_are_limited_independently(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        other = {"tx_form_formframework[newsletter][email]": "a@example.com"}
        
        assert client.post("/submit", data=FORM_DATA).status_code == 200
        assert client.post("/submit", data=other).status_code == 200
        assert client.post("/submit", data=FORM_DATA).status_code == 429
    
    def test_denied_address_gets_403_without_retry_after(self, storage, clock):
        client = create_client(storage, clock, deny_list="198.51.100.0/24", trust_forwarded_for=True)
        headers = {"X-Forwarded-For": "198.51.100.23, 10.0.0.1", "Accept": "application/json"}
        
        response = client.post("/submit", data=FORM_DATA, headers=headers)
        
        assert response.status_code == 403
        assert "retry-after" not in response.headers
        assert response.json()["error"] == "IP address is blocked"
        assert response.json()["retryAfter"] is None
    
    def test_forwarded_for_ignored_unless_trusted(self, storage, clock):
        client = create_client(storage, clock, deny_list="198.51.100.0/24")
        
        response = client.post("/submit", data=FORM_DATA, headers={"X-Forwarded-For": "198.51.100.23"})
        
        assert response.status_code == 200


class TestDecisionLogging:
    def test_rejections_logged_when_enabled(self, storage, clock):
        client = create_client(storage, clock, limit=1, logging_enabled=True)
        
        with capture_logs() as logs:
            client.post("/submit", data=FORM_DATA, headers={"User-Agent": "pytest-agent"})
            client.post("/submit", data=FORM_DATA, headers={"User-Agent": "pytest-agent"})
        
        events = [entry for entry in logs if entry["event"] == "rate_limit_exceeded"]
        assert len(events) == 1
        assert events[0]["form"] == "contact-1"
        assert events[0]["retry_after_seconds"] == 60
        assert events[0]["user_agent"] == "pytest-agent"
        assert events[0]["log_level"] == "warning"
    
    def test_denied_logged_as_error(self, storage, clock):
        client = create_client(
            storage, clock, logging_enabled=True, deny_list="198.51.100.23", trust_forwarded_for=True
        )
        
        with capture_logs() as logs:
            client.post("/submit", data=FORM_DATA, headers={"X-Forwarded-For": "198.51.100.23"})
        
        denied = [entry for entry in logs if entry["event"] == "ip_denied"]
        assert denied and denied[0]["log_level"] == "error"
        assert denied[0]["ip"] == "198.51.100.23"
    
    def test_nothing_logged_when_disabled(self, storage, clock):
        client = create_client(storage, clock, limit=1)
        
        with capture_logs() as logs:
            client.post("/submit", data=FORM_DATA)
            client.post("/submit", data=FORM_DATA)
        
        assert not [entry for entry in logs if entry["event"] == "rate_limit_exceeded"]


class TestHelpers:
    """Request classification and rendering helpers."""
    
    @pytest.mark.parametrize("headers,expected", [
        ({"content-type": "application/json"}, True),
        ({"accept": "application/json, text/plain"}, True),
        ({"x-requested-with": "XMLHttpRequest"}, True),
        ({"accept": "text/html"}, False),
        ({}, False),
    ])
    def test_wants_json(self, headers, expected):
        assert wants_json(headers) is expected
    
    def test_select_renderer(self):
        assert isinstance(select_renderer({"accept": "application/json"}), JsonRenderer)
        assert isinstance(select_renderer({"accept": "text/html"}), HtmlRenderer)
        
        custom = HtmlRenderer(title="Slow down")
        assert select_renderer({}, html_renderer=custom) is custom
    
    def test_form_identifier_from_names(self):
        names = ["__trustedProperties", "tx_form_formframework[contact-1][name]"]
        assert form_identifier_from_names(names) == "contact-1"
        assert form_identifier_from_names(["tx_form_formframework[]"]) is None
        assert form_identifier_from_names(["email"]) is None
    
    def test_html_escapes_identifiers(self):
        decision = Decision(
            accepted=False, remaining=0, reason=DecisionReason.RATE_LIMITED, limit=1, retry_after=5
        )
        response = HtmlRenderer(title="<b>Busy</b>").render(decision, "x")
        
        assert b"&lt;b&gt;Busy&lt;/b&gt;" in response.body
        assert response.headers["retry-after"] == "5"
