"""
Request Extraction
==================
Finds the submitted form identifier and the client address in a request.
"""

import json
import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl

from starlette.requests import Request

DEFAULT_FORM_FIELD = "tx_form_formframework"

_MULTIPART_NAME = re.compile(rb'content-disposition:[^\r\n]*?\bname="([^"]*)"', re.IGNORECASE)


def form_identifier_from_names(names: Iterable[str], form_field: str = DEFAULT_FORM_FIELD) -> Optional[str]:
    """
    Return the first key nested under ``form_field``.

    ``tx_form_formframework[contact-1][email]`` yields ``contact-1``.
    """
    prefix = f"{form_field}["
    for name in names:
        if not name.startswith(prefix):
            continue
        identifier = name[len(prefix):].split("]", 1)[0]
        if identifier:
            return identifier
    return None


def _identifier_from_json(body: bytes, form_field: str) -> Optional[str]:
    try:
        data = json.loads(body or b"null")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    form_data = data.get(form_field)
    if not isinstance(form_data, dict):
        return None
    for identifier in form_data:
        if identifier:
            return str(identifier)
    return None


async def extract_form_identifier(request: Request, form_field: str = DEFAULT_FORM_FIELD) -> Optional[str]:
    """
    Identify the form a POST request submits.

    Handles form-urlencoded, multipart and JSON bodies. Returns None for
    anything that is not a form submission, so callers can skip limiting.
    """
    if request.method != "POST":
        return None

    content_type = request.headers.get("content-type", "").lower()
    body = await request.body()
    if not body:
        return None

    if "application/json" in content_type:
        return _identifier_from_json(body, form_field)

    if "multipart/form-data" in content_type:
        names = (match.decode("utf-8", "replace") for match in _MULTIPART_NAME.findall(body))
        return form_identifier_from_names(names, form_field)

    if "application/x-www-form-urlencoded" in content_type:
        pairs = parse_qsl(body.decode("utf-8", "replace"), keep_blank_values=True)
        return form_identifier_from_names((name for name, _ in pairs), form_field)

    return None


def get_client_address(request: Request, trust_forwarded_for: bool = False) -> str:
    """Extract the client IP, optionally honouring the first X-Forwarded-For hop."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop

    client = request.client
    if client:
        return client.host
    return "unknown"
