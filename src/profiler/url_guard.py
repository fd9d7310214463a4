"""SSRF gate: syntactic URL checks plus DNS resolution of every candidate address.

Nothing in this package opens a connection to a URL that has not passed
``UrlGuard.validate``.
"""
import asyncio
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from .errors import (
    BlockedHost,
    DisallowedProtocol,
    DnsRebindingBlocked,
    InvalidUrl,
    UnresolvableHost,
)
from .host_policy import is_blocked_address

logger = logging.getLogger(__name__)

Resolver = Callable[[str, int], Awaitable[List[str]]]

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+.-]*://")
_HOSTNAME_RE = re.compile(r"^[a-z0-9_]([a-z0-9_-]*[a-z0-9_])?(\.[a-z0-9_]([a-z0-9_-]*[a-z0-9_])?)*\.?$")
ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class ResolvedUrl:
    url: str
    scheme: str
    hostname: str
    addresses: Tuple[str, ...] = ()

    def with_scheme(self, scheme: str) -> str:
        """Same URL under another scheme (used for the plain-HTTP fallback)."""
        parts = urlsplit(self.url)
        netloc = parts.netloc
        if parts.port in (80, 443):
            netloc = netloc.rsplit(":", 1)[0]
        return urlunsplit(parts._replace(scheme=scheme, netloc=netloc))


async def system_resolver(hostname: str, family: int) -> List[str]:
    """Resolve ``hostname`` for one address family through the system resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, family=family, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def _ip_literal(hostname: str) -> Optional[str]:
    candidate = hostname.strip("[]")
    try:
        ipaddress.ip_address(candidate.split("%", 1)[0])
    except ValueError:
        return None
    return candidate


class UrlGuard:
    def __init__(self, resolver: Optional[Resolver] = None):
        self.resolver = resolver or system_resolver

    def parse(self, raw_url: str) -> ResolvedUrl:
        """Syntactic checks only (no I/O): steps up to the hostname block list."""
        value = (raw_url or "").strip()
        if not value:
            raise InvalidUrl()
        if not _SCHEME_RE.match(value):
            value = "https://" + value

        try:
            parts = urlsplit(value)
            port = parts.port  # raises ValueError on a bad port
        except ValueError:
            raise InvalidUrl()

        scheme = parts.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            raise DisallowedProtocol()

        hostname = (parts.hostname or "").lower()
        if not hostname or re.search(r"\s", parts.netloc):
            raise InvalidUrl()

        literal = _ip_literal(hostname)
        if literal is None:
            try:
                hostname = hostname.encode("idna").decode("ascii")
            except UnicodeError:
                raise InvalidUrl()
            if not _HOSTNAME_RE.match(hostname):
                raise InvalidUrl()

        bare = hostname.rstrip(".")
        if bare == "localhost":
            raise BlockedHost("Access to localhost is not allowed")
        if "metadata" in bare:
            raise BlockedHost("Access to metadata endpoints is not allowed")

        netloc = f"[{literal}]" if literal and ":" in literal else hostname
        if parts.username or parts.password:
            userinfo = parts.username or ""
            if parts.password:
                userinfo += ":" + parts.password
            netloc = f"{userinfo}@{netloc}"
        if port is not None:
            netloc = f"{netloc}:{port}"
        url = urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))
        return ResolvedUrl(url=url, scheme=scheme, hostname=literal or hostname)

    async def validate(self, raw_url: str) -> ResolvedUrl:
        """Full validation; returns the URL together with its vetted addresses."""
        parsed = self.parse(raw_url)

        literal = _ip_literal(parsed.hostname)
        if literal is not None:
            if is_blocked_address(literal):
                raise BlockedHost("Access to private IP addresses is not allowed")
            return ResolvedUrl(parsed.url, parsed.scheme, parsed.hostname, (literal,))

        addresses = await self._resolve_all(parsed.hostname)
        if not addresses:
            raise UnresolvableHost()

        blocked = [addr for addr in addresses if is_blocked_address(addr)]
        if blocked:
            logger.warning(f"Host {parsed.hostname} resolves to blocked address(es): {blocked}")
            raise DnsRebindingBlocked()

        logger.debug(f"Validated {parsed.url} -> {addresses}")
        return ResolvedUrl(parsed.url, parsed.scheme, parsed.hostname, tuple(addresses))

    async def _resolve_all(self, hostname: str) -> List[str]:
        results = await asyncio.gather(
            self.resolver(hostname, socket.AF_INET),
            self.resolver(hostname, socket.AF_INET6),
            return_exceptions=True,
        )
        addresses: List[str] = []
        for family, result in zip(("A", "AAAA"), results):
            if isinstance(result, BaseException):
                if not isinstance(result, (OSError, UnicodeError)):
                    raise result
                logger.debug(f"{family} lookup failed for {hostname}: {result}")
                continue
            for addr in result:
                if addr not in addresses:
                    addresses.append(addr)
        return addresses
