"""
IP Utility Functions
====================
Parsing and matching of allow/deny list entries.

Supported entry forms:
- IPv4 / IPv6 literal: ``203.0.113.7``, ``2001:db8::1``
- CIDR block: ``10.0.0.0/8``, ``2001:db8::/32``
- IPv4 octet wildcards: ``192.168.*.*`` (a trailing ``192.168.*`` covers the rest)
- ``*`` matching every address
"""

import ipaddress
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from ..exceptions import MalformedAccessListEntry

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_address(address: str) -> Optional[IPAddress]:
    """
    Parse a client address, unwrapping IPv4-mapped IPv6 addresses.

    Returns:
        The address, or None if it is not a valid IP
    """
    if not address:
        return None
    text = address.strip()
    # Bracketed IPv6 as found in some proxy headers
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    try:
        parsed = ipaddress.ip_address(text)
    except ValueError:
        return None
    if isinstance(parsed, ipaddress.IPv6Address) and parsed.ipv4_mapped is not None:
        return parsed.ipv4_mapped
    return parsed


@dataclass(frozen=True)
class AccessListEntry:
    """One allow/deny list entry."""
    raw: str
    network: Optional[IPNetwork] = None
    octets: Optional[Tuple[Optional[int], ...]] = None  # None octet is a wildcard
    match_all: bool = False

    def matches(self, address: IPAddress) -> bool:
        if self.match_all:
            return True
        if self.network is not None:
            return address.version == self.network.version and address in self.network
        if self.octets is not None and address.version == 4:
            parts = address.packed
            return all(
                expected is None or expected == actual
                for expected, actual in zip(self.octets, parts)
            )
        return False


def _parse_octet_pattern(entry: str) -> Tuple[Optional[int], ...]:
    parts = entry.split(".")
    if len(parts) > 4:
        raise MalformedAccessListEntry(entry, "too many octets")
    if len(parts) < 4:
        if parts[-1] != "*":
            raise MalformedAccessListEntry(entry, "short pattern must end with '*'")
        parts = parts + ["*"] * (4 - len(parts))

    octets: List[Optional[int]] = []
    for part in parts:
        if part == "*":
            octets.append(None)
        elif part.isdigit() and 0 <= int(part) <= 255:
            octets.append(int(part))
        else:
            raise MalformedAccessListEntry(entry, f"invalid octet {part!r}")
    return tuple(octets)


def parse_entry(entry: str) -> AccessListEntry:
    """
    Parse a single list entry.

    Raises:
        MalformedAccessListEntry: If the entry matches no supported form
    """
    text = entry.strip()
    if not text:
        raise MalformedAccessListEntry(entry, "empty entry")
    if text == "*":
        return AccessListEntry(raw=text, match_all=True)

    if "*" in text:
        if ":" in text:
            raise MalformedAccessListEntry(entry, "wildcards are only supported for IPv4")
        return AccessListEntry(raw=text, octets=_parse_octet_pattern(text))

    try:
        network = ipaddress.ip_network(text, strict=False)
    except ValueError as e:
        raise MalformedAccessListEntry(entry, str(e)) from e

    if isinstance(network, ipaddress.IPv6Network) and network.prefixlen >= 96:
        mapped = network.network_address.ipv4_mapped
        if mapped is not None:
            # ::ffff:a.b.c.d/n is stored as the IPv4 network it denotes
            network = ipaddress.ip_network(f"{mapped}/{network.prefixlen - 96}", strict=False)

    return AccessListEntry(raw=text, network=network)


def parse_entries(entries: Iterable[str]) -> Tuple[List[AccessListEntry], List[MalformedAccessListEntry]]:
    """Parse all entries, collecting malformed ones instead of raising."""
    parsed: List[AccessListEntry] = []
    errors: List[MalformedAccessListEntry] = []
    for entry in entries:
        try:
            parsed.append(parse_entry(entry))
        except MalformedAccessListEntry as e:
            errors.append(e)
    return parsed, errors


def address_in_list(address: IPAddress, entries: Iterable[AccessListEntry]) -> bool:
    return any(entry.matches(address) for entry in entries)
