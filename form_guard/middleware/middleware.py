"""
Form Rate Limit Middleware
==========================
Starlette middleware guarding form submissions with FormRateLimiter.
"""

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog

from ..config import Configuration
from ..limiter import FormRateLimiter
from ..rate_limit import Decision, DecisionReason, WindowStorage
from .extract import DEFAULT_FORM_FIELD, extract_form_identifier, get_client_address
from .render import ResponseRenderer, select_renderer

logger = structlog.get_logger(__name__)


class FormRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects form submissions that exceed the configured rate.

    Requests that are not form submissions pass straight through. The
    request body stays readable for downstream handlers.

    Example:
        app.add_middleware(
            FormRateLimitMiddleware,
            config=Configuration.from_env(),
            storage=RedisWindowStorage.from_url("redis://localhost:6379/0"),
        )
    """

    def __init__(
        self,
        app,
        guard: Optional[FormRateLimiter] = None,
        config: Optional[Configuration] = None,
        storage: Optional[WindowStorage] = None,
        form_field: str = DEFAULT_FORM_FIELD,
        trust_forwarded_for: bool = False,
        json_renderer: Optional[ResponseRenderer] = None,
        html_renderer: Optional[ResponseRenderer] = None,
    ):
        super().__init__(app)
        self.guard = guard or FormRateLimiter(config or Configuration(), storage=storage)
        self.form_field = form_field
        self.trust_forwarded_for = trust_forwarded_for
        self.json_renderer = json_renderer
        self.html_renderer = html_renderer

    @property
    def logging_enabled(self) -> bool:
        return self.guard.config.logging_enabled

    async def dispatch(self, request: Request, call_next):
        """Process request and enforce form rate limits."""
        form_identifier = await extract_form_identifier(request, self.form_field)
        if form_identifier is None:
            return await call_next(request)

        client_ip = get_client_address(request, self.trust_forwarded_for)
        decision = await self.guard.decide(form_identifier, client_ip)

        if self.logging_enabled:
            self._log_decision(request, decision, form_identifier, client_ip)

        if decision.accepted:
            return await call_next(request)

        renderer = select_renderer(request.headers, self.json_renderer, self.html_renderer)
        return renderer.render(decision, form_identifier)

    def _log_decision(self, request: Request, decision: Decision, form_identifier: str, client_ip: str):
        user_agent = request.headers.get("user-agent", "")

        if decision.reason == DecisionReason.IP_ALLOWED:
            logger.info("ip_allowed", form=form_identifier, ip=client_ip, user_agent=user_agent)
        elif decision.reason == DecisionReason.IP_DENIED:
            logger.error("ip_denied", form=form_identifier, ip=client_ip, user_agent=user_agent)
        elif not decision.accepted:
            logger.warning(
                "rate_limit_exceeded",
                form=form_identifier,
                ip=client_ip,
                retry_after_seconds=decision.retry_after_seconds,
                reason=decision.reason.value,
                user_agent=user_agent,
            )
