"""
HTTP Integration
================
Request extraction, rejection rendering and the Starlette middleware.
"""

from .extract import (
    DEFAULT_FORM_FIELD,
    extract_form_identifier,
    form_identifier_from_names,
    get_client_address,
)
from .render import (
    HtmlRenderer,
    JsonRenderer,
    ResponseRenderer,
    select_renderer,
    wants_json,
)
from .middleware import FormRateLimitMiddleware

__all__ = [
    # Extraction
    "DEFAULT_FORM_FIELD",
    "extract_form_identifier",
    "form_identifier_from_names",
    "get_client_address",
    # Rendering
    "HtmlRenderer",
    "JsonRenderer",
    "ResponseRenderer",
    "select_renderer",
    "wants_json",
    # Middleware
    "FormRateLimitMiddleware",
]
