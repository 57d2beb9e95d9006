"""IP allow-list matching for exact addresses and CIDR blocks.

IPv4 blocks are matched bitwise. IPv6 blocks are matched by comparing the
leading ``ceil(prefix / 4)`` hex digits of the fully expanded addresses, which
is exact only when the prefix is a multiple of 4 (e.g. /32, /48, /64).
Sub-nibble prefixes such as /65 are widened to the next nibble boundary.

Nothing in this module raises on bad input from an allow-list: a malformed
entry or address simply does not match.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable

logger = logging.getLogger(__name__)

_IPV4_MAX = 0xFFFFFFFF
_HEXTETS = 8


def _is_ascii_decimal(text: str) -> bool:
    # str.isdigit also accepts superscripts and other digits int() rejects
    return text.isascii() and text.isdecimal()


def ipv4_to_int(ip: str) -> int:
    """Convert a dotted-quad IPv4 address to a 32-bit integer.

    Raises:
        ValueError: If ``ip`` is not four decimal octets in 0-255.
    """

    parts = ip.strip().split(".")
    if len(parts) != 4:
        raise ValueError(f"not an IPv4 address: {ip!r}")

    value = 0
    for part in parts:
        if not _is_ascii_decimal(part):
            raise ValueError(f"not an IPv4 address: {ip!r}")
        octet = int(part)
        if octet > 255:
            raise ValueError(f"not an IPv4 address: {ip!r}")
        value = (value << 8) | octet
    return value


def normalize_ipv6(ip: str) -> str:
    """Expand an IPv6 address to 8 zero-padded, lowercase hextets.

    >>> normalize_ipv6("2001:db8::1")
    '2001:0db8:0000:0000:0000:0000:0000:0001'

    Raises:
        ValueError: If ``ip`` is not a parseable IPv6 address.
    """

    addr = ip.strip().lower()
    if addr.count("::") > 1:
        raise ValueError(f"not an IPv6 address: {ip!r}")

    if "::" in addr:
        head, tail = addr.split("::")
        left = [p for p in head.split(":") if p]
        right = [p for p in tail.split(":") if p]
        missing = _HEXTETS - len(left) - len(right)
        if missing < 1:
            raise ValueError(f"not an IPv6 address: {ip!r}")
        hextets = left + ["0"] * missing + right
    else:
        hextets = addr.split(":")

    if len(hextets) != _HEXTETS:
        raise ValueError(f"not an IPv6 address: {ip!r}")

    for hextet in hextets:
        if not 1 <= len(hextet) <= 4 or not hextet.isascii():
            raise ValueError(f"not an IPv6 address: {ip!r}")
        int(hextet, 16)

    return ":".join(h.zfill(4) for h in hextets)


def _split_cidr(cidr: str, max_prefix: int) -> tuple[str, int] | None:
    network, sep, prefix_text = cidr.strip().partition("/")
    prefix_text = prefix_text.strip()
    if not sep or not _is_ascii_decimal(prefix_text):
        return None
    prefix = int(prefix_text)
    if prefix > max_prefix:
        return None
    return network.strip(), prefix


def ipv4_in_cidr(ip: str, cidr: str) -> bool:
    """Whether ``ip`` falls inside the IPv4 block ``cidr`` (``a.b.c.d/n``)."""

    parsed = _split_cidr(cidr, 32)
    if parsed is None:
        return False
    network, prefix = parsed

    try:
        ip_value = ipv4_to_int(ip)
        network_value = ipv4_to_int(network)
    except ValueError:
        return False

    mask = (_IPV4_MAX << (32 - prefix)) & _IPV4_MAX
    return (ip_value & mask) == (network_value & mask)


def ipv6_in_cidr(ip: str, cidr: str) -> bool:
    """Whether ``ip`` falls inside the IPv6 block ``cidr`` (nibble precision)."""

    parsed = _split_cidr(cidr, 128)
    if parsed is None:
        return False
    network, prefix = parsed

    try:
        ip_digits = normalize_ipv6(ip).replace(":", "")
        network_digits = normalize_ipv6(network).replace(":", "")
    except ValueError:
        return False

    digits = math.ceil(prefix / 4)
    return ip_digits[:digits] == network_digits[:digits]


def _normalize_exact(address: str) -> str:
    address = address.strip().lower()
    if ":" in address:
        try:
            return normalize_ipv6(address)
        except ValueError:
            return address
    return address


def matches_entry(ip: str, entry: str) -> bool:
    """Whether ``ip`` matches one allow-list entry (exact address or CIDR).

    Args:
        ip: Caller address, IPv4 or IPv6.
        entry: Allow-list entry such as ``10.0.0.1`` or ``10.0.0.0/24``.

    Returns:
        True on a match; False for no match or a malformed entry.
    """

    entry = entry.strip()
    if not entry or not ip:
        return False

    if "/" not in entry:
        return _normalize_exact(ip) == _normalize_exact(entry)

    if "." in ip and ":" not in ip:
        return ipv4_in_cidr(ip, entry)
    if ":" in ip:
        return ipv6_in_cidr(ip, entry)

    logger.debug("cidr.unrecognized_address", extra={"entry": entry})
    return False


def matches_any(ip: str, entries: Iterable[str]) -> bool:
    return any(matches_entry(ip, entry) for entry in entries)


def parse_allow_list(raw: str | None) -> list[str]:
    """Split a comma-separated allow-list into trimmed, non-empty entries.

    >>> parse_allow_list("10.0.0.1, 192.168.0.0/16 ,")
    ['10.0.0.1', '192.168.0.0/16']
    """

    if not raw:
        return []
    return [entry.strip() for entry in raw.split(",") if entry.strip()]
