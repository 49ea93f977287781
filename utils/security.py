"""
URL sanitization for the Roast Engine.

Every URL that reaches the browser or the cache key function goes through
here first. Internal, loopback and link-local targets are rejected so the
screenshot worker can never be pointed at the private network.
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# Async callable returning socket.getaddrinfo style tuples for a host
Resolver = Callable[[str], Awaitable[List[Tuple[Any, ...]]]]

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_PORTS = {22, 23, 25, 53, 110, 143, 993, 995}

DEFAULT_PORTS = {"http": 80, "https": 443}

TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
    "gclid",
    "_ga",
    "_gid",
    "mc_cid",
    "mc_eid",
}

IPV4_DIGITS = {8: "01234567", 10: "0123456789", 16: "0123456789abcdef"}

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}


class InvalidUrlError(ValueError):
    """Raised when a URL is malformed or points somewhere we refuse to visit"""

    pass


def _parse_ipv4_number(part: str) -> Optional[int]:
    if part[:2].lower() == "0x":
        digits, base = part[2:], 16
    elif len(part) > 1 and part.startswith("0"):
        digits, base = part[1:], 8
    else:
        digits, base = part, 10

    if not digits:
        return 0 if base == 16 else None
    if any(ch not in IPV4_DIGITS[base] for ch in digits.lower()):
        return None
    return int(digits, base)


def parse_ipv4_host(host: str) -> Optional[ipaddress.IPv4Address]:
    """
    Parse a host the way browsers do before treating it as a domain.

    Accepts one to four dot-separated parts, each decimal, octal (leading 0)
    or hex (0x). The last part fills all remaining bytes, so 127.1,
    0x7f000001 and 2130706433 are all 127.0.0.1.
    """
    parts = host.split(".")
    if len(parts) > 1 and parts[-1] == "":
        parts.pop()
    if not parts or len(parts) > 4:
        return None

    numbers = []
    for part in parts:
        if not part:
            return None
        number = _parse_ipv4_number(part)
        if number is None:
            return None
        numbers.append(number)

    *leading, last = numbers
    if any(n > 255 for n in leading) or last >= 256 ** (4 - len(leading)):
        return None

    value = last
    for index, number in enumerate(leading):
        value += number << (8 * (3 - index))
    return ipaddress.IPv4Address(value)


def _parse_ip(host: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    """Interpret a hostname as an IP literal, including browser shorthand forms"""
    candidate = host.strip("[]")
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        pass

    if ":" in candidate:
        return None
    return parse_ipv4_host(candidate)


def _is_internal_ip(ip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or ip.is_multicast
    )


def is_internal_host(host: str) -> bool:
    """True for localhost names and loopback/private/link-local/reserved IPs"""
    host = host.lower().rstrip(".")
    if host in BLOCKED_HOSTNAMES or host.endswith(".localhost"):
        return True

    ip = _parse_ip(host)
    if ip is None:
        return False
    return _is_internal_ip(ip)


def is_tracking_param(name: str) -> bool:
    name = name.lower()
    return name in TRACKING_PARAMS or name.startswith("utm_")


def canonicalize_url(raw_url: str) -> str:
    """
    Produce the canonical form of a URL.

    Lowercases scheme and host, drops default ports and fragments, gives an
    empty path a trailing slash and removes known tracking parameters while
    keeping the order of everything else.

    Raises:
        InvalidUrlError: If the URL has no scheme or host, or an invalid port
    """
    if not isinstance(raw_url, str) or not raw_url.strip():
        raise InvalidUrlError("URL is required and must be a string")

    try:
        parts = urlsplit(raw_url.strip())
        port = parts.port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL provided: {str(e)}") from e

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if not scheme or not host:
        raise InvalidUrlError("Invalid URL provided")

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"
    if parts.username or parts.password:
        userinfo = parts.username or ""
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    query = urlencode(
        [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if not is_tracking_param(key)
        ]
    )

    return urlunsplit((scheme, netloc, parts.path or "/", query, ""))


def sanitize_url(raw_url: str) -> str:
    """
    Validate a user supplied URL and return its canonical form.

    Rejects non-HTTP(S) schemes, internal/loopback/link-local hosts and
    denylisted ports, and strips tracking parameters.

    Args:
        raw_url: URL as submitted by the caller

    Returns:
        Canonical URL safe to hand to the screenshot worker

    Raises:
        InvalidUrlError: If the URL fails any check
    """
    canonical = canonicalize_url(raw_url)
    parts = urlsplit(canonical)

    if parts.scheme not in ALLOWED_SCHEMES:
        raise InvalidUrlError("Only HTTP(S) URLs are allowed")

    if is_internal_host(parts.hostname or ""):
        logger.warning(f"🚫 Rejected internal network URL: {raw_url}")
        raise InvalidUrlError("Internal network URLs are not allowed")

    if parts.port is not None and parts.port in BLOCKED_PORTS:
        raise InvalidUrlError(f"Port {parts.port} is not allowed")

    return canonical


async def _system_resolver(host: str) -> List[Tuple[Any, ...]]:
    loop = asyncio.get_running_loop()
    return await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)


async def ensure_resolves_publicly(url: str, resolver: Optional[Resolver] = None) -> None:
    """
    Resolve the URL's host and reject it if any address is internal.

    A public name can still point at 127.0.0.1 or the private network, so
    this runs right before the browser is sent anywhere. Hosts that do not
    resolve are rejected too.

    Raises:
        InvalidUrlError: If resolution fails or yields an internal address
    """
    host = urlsplit(url).hostname or ""
    if _parse_ip(host) is not None:
        if is_internal_host(host):
            raise InvalidUrlError("Internal network URLs are not allowed")
        return

    resolve = resolver or _system_resolver
    try:
        infos = await resolve(host)
    except (OSError, UnicodeError) as e:
        logger.warning(f"⚠️  DNS resolution failed for {host}: {e}")
        raise InvalidUrlError(f"Could not resolve host: {host}") from e

    if not infos:
        raise InvalidUrlError(f"Could not resolve host: {host}")

    for info in infos:
        address = str(info[4][0]).split("%", 1)[0]
        ip = _parse_ip(address)
        if ip is None or _is_internal_ip(ip):
            logger.warning(f"🚫 {host} resolves to internal address {address}")
            raise InvalidUrlError("Internal network URLs are not allowed")
