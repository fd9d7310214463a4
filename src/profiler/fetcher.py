"""Bounded HTTP GET: redirect, timeout, content-type and byte-size limits."""
import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import aiohttp

from . import config
from .errors import (
    ConnectionFailed,
    HttpError,
    RedirectRejected,
    SizeLimitExceeded,
    SslCertificateError,
    Timeout,
    UnexpectedContentType,
)
from .url_guard import ResolvedUrl, UrlGuard

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
REDIRECT_STATUSES = range(300, 400)


@dataclass(frozen=True)
class FetchOptions:
    timeout_ms: int
    max_bytes: int
    allow_redirects: bool


SCRAPE_OPTIONS = FetchOptions(
    timeout_ms=config.SCRAPE_TIMEOUT_MS,
    max_bytes=config.SCRAPE_MAX_BYTES,
    allow_redirects=True,
)
DISCOVERY_OPTIONS = FetchOptions(
    timeout_ms=config.DISCOVERY_TIMEOUT_MS,
    max_bytes=config.DISCOVERY_MAX_BYTES,
    allow_redirects=False,
)


@dataclass
class RawHtml:
    url: str
    final_url: str
    status: int
    content_type: str
    body: bytes
    charset: Optional[str] = None

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            # Unknown charset label from the server
            return self.body.decode("utf-8", errors="replace")


class BoundedFetcher:
    """Issues one GET per call through ``UrlGuard``.

    aiohttp never follows redirects on its own here. When ``allow_redirects``
    is set, each ``Location`` is validated by the guard before it is requested,
    so a public page cannot bounce the crawler onto a private address.
    """

    def __init__(
        self,
        guard: Optional[UrlGuard] = None,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: str = config.USER_AGENT,
        max_redirects: int = config.MAX_REDIRECTS,
    ):
        self.guard = guard or UrlGuard()
        self._session = session
        self._owns_session = session is None
        self.max_redirects = max_redirects
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5",
            "Accept-Language": "en-US,en;q=0.6",
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("HTTP session closed.")

    async def fetch(self, target: ResolvedUrl, options: FetchOptions = SCRAPE_OPTIONS) -> RawHtml:
        try:
            return await asyncio.wait_for(self._fetch(target, options), timeout=options.timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {options.timeout_ms}ms fetching {target.url}")
            raise Timeout()

    async def _fetch(self, target: ResolvedUrl, options: FetchOptions) -> RawHtml:
        session = self._get_session()
        current = target
        for hop in range(self.max_redirects + 1):
            try:
                async with session.get(current.url, headers=self.headers, allow_redirects=False) as response:
                    if response.status in REDIRECT_STATUSES:
                        location = response.headers.get("Location")
                        if not options.allow_redirects or not location:
                            raise RedirectRejected()
                        next_url = urljoin(current.url, location)
                        logger.info(f"Redirect {response.status}: {current.url} -> {next_url}")
                        current = await self.guard.validate(next_url)
                        continue
                    return await self._read(target.url, current.url, response, options)
            except (aiohttp.ClientSSLError, ssl.SSLError) as e:
                logger.warning(f"TLS failure for {current.url}: {type(e).__name__}")
                raise SslCertificateError() from e
            except asyncio.TimeoutError:
                # aiohttp's own read/connect timeouts
                raise Timeout()
            except aiohttp.ClientError as e:
                logger.warning(f"Network error for {current.url}: {type(e).__name__}: {e}")
                raise ConnectionFailed() from e
        logger.warning(f"Too many redirects starting at {target.url}")
        raise RedirectRejected("Too many redirects")

    async def _read(self, requested: str, final_url: str, response, options: FetchOptions) -> RawHtml:
        if not 200 <= response.status < 300:
            raise HttpError(response.status)

        content_type = response.headers.get("Content-Type", "")
        if "text/html" not in content_type.lower():
            raise UnexpectedContentType()

        # Content-Length only lets us fail early; the stream below is authoritative.
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > options.max_bytes:
            raise SizeLimitExceeded("Website content is too large")

        chunks = []
        total = 0
        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
            total += len(chunk)
            if total > options.max_bytes:
                logger.warning(f"Aborting {final_url}: body exceeded {options.max_bytes} bytes")
                raise SizeLimitExceeded()
            chunks.append(chunk)

        return RawHtml(
            url=requested,
            final_url=final_url,
            status=response.status,
            content_type=content_type,
            body=b"".join(chunks),
            charset=getattr(response, "charset", None),
        )
