"""
Access List Evaluator
=====================
Classifies client addresses against allow and deny lists.
"""

from enum import Enum
from typing import Iterable, List

import structlog

from ..config import Configuration
from ..exceptions import MalformedAccessListEntry
from .ip_utils import address_in_list, parse_address, parse_entries

logger = structlog.get_logger(__name__)


class AccessClass(str, Enum):
    """Access list verdict for a client address."""
    ALLOWED = "allowed"
    DENIED = "denied"
    UNCLASSIFIED = "unclassified"


class AccessListEvaluator:
    """
    Allow-first IP classifier.

    The allow list is checked before the deny list, so an address on both
    is allowed. Malformed entries are skipped and reported once, at
    construction. Unparseable client addresses are unclassified.
    """

    def __init__(self, allow_list: Iterable[str] = (), deny_list: Iterable[str] = ()):
        self.allow_entries, allow_errors = parse_entries(allow_list)
        self.deny_entries, deny_errors = parse_entries(deny_list)
        self.skipped: List[MalformedAccessListEntry] = allow_errors + deny_errors

        for error in allow_errors:
            logger.warning("access_list_entry_skipped", list="allow", entry=error.entry, reason=error.reason)
        for error in deny_errors:
            logger.warning("access_list_entry_skipped", list="deny", entry=error.entry, reason=error.reason)

    @classmethod
    def from_config(cls, config: Configuration) -> "AccessListEvaluator":
        return cls(config.allow_list, config.deny_list)

    def classify(self, address: str) -> AccessClass:
        parsed = parse_address(address)
        if parsed is None:
            return AccessClass.UNCLASSIFIED
        if address_in_list(parsed, self.allow_entries):
            return AccessClass.ALLOWED
        if address_in_list(parsed, self.deny_entries):
            return AccessClass.DENIED
        return AccessClass.UNCLASSIFIED

    def is_allowed(self, address: str) -> bool:
        return self.classify(address) == AccessClass.ALLOWED

    def is_denied(self, address: str) -> bool:
        return self.classify(address) == AccessClass.DENIED


def classify(address: str, allow_list: Iterable[str], deny_list: Iterable[str]) -> AccessClass:
    """One-shot classification without keeping a parsed evaluator around."""
    return AccessListEvaluator(allow_list, deny_list).classify(address)
