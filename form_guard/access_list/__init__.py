"""
Access Lists
============
IP allow/deny lists layered in front of the rate limiter.
"""

from .ip_utils import (
    AccessListEntry,
    address_in_list,
    parse_address,
    parse_entries,
    parse_entry,
)
from .evaluator import AccessClass, AccessListEvaluator, classify

__all__ = [
    # IP Utils
    "AccessListEntry",
    "address_in_list",
    "parse_address",
    "parse_entries",
    "parse_entry",
    # Evaluator
    "AccessClass",
    "AccessListEvaluator",
    "classify",
]
