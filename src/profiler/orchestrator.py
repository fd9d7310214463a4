"""Analysis state machine: pending -> analyzing -> completed | failed.

Runs are started in the background and report only through the store. Pages
within a run are scraped one at a time so that a slow or hostile page uses
its own timeout budget and its failure is logged against that page alone.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional, Set
from urllib.parse import urlsplit

from . import config
from .discovery import discover_pages
from .errors import (
    AnalysisError,
    EmptyContent,
    InvalidUrl,
    PageError,
    PreflightError,
    ScrapeFailed,
    SslCertificateError,
    SynthesisFailed,
)
from .extractor import extract_sections
from .fetcher import DISCOVERY_OPTIONS, SCRAPE_OPTIONS, BoundedFetcher, FetchOptions, RawHtml
from .models import AnalysisRecord, AnalysisStatus, AnalyzedPageRecord, StructuredProfile, normalize_page_url
from .storage import AnalysisStore
from .synthesizer import Synthesizer
from .url_guard import UrlGuard

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Website analysis failed unexpectedly [InternalError]"


@dataclass
class ScrapedPage:
    url: str
    final_url: str
    text: str


def page_label(url: str) -> str:
    """Header name for a page: last path segment, upper-cased."""
    segments = [s for s in urlsplit(url).path.split("/") if s]
    return (segments[-1] if segments else "page").upper()


class AnalysisOrchestrator:
    def __init__(
        self,
        store: AnalysisStore,
        synthesizer: Synthesizer,
        guard: Optional[UrlGuard] = None,
        fetcher: Optional[BoundedFetcher] = None,
        max_pages: int = config.MAX_DISCOVERED_PAGES,
    ):
        self.store = store
        self.synthesizer = synthesizer
        self.guard = guard or UrlGuard()
        self.fetcher = fetcher or BoundedFetcher(guard=self.guard)
        self.max_pages = max_pages
        self._tasks: Set[asyncio.Task] = set()

    # --- Entry points --- #

    async def analyze_site(self, website_url: str, tenant: str, api_key: str) -> asyncio.Task:
        """Record ``pending`` and start a homepage + discovered pages run."""
        self.guard.parse(website_url)
        run_id = await self._begin(tenant, website_url)
        return self._spawn(self._run_site(run_id, website_url, tenant, api_key), tenant, run_id)

    async def analyze_pages(self, urls: List[str], tenant: str, api_key: str,
                            append_mode: bool = False) -> asyncio.Task:
        """Record ``pending`` and start a run over exactly ``urls``."""
        urls = [u.strip() for u in urls if u and u.strip()]
        if not urls:
            raise InvalidUrl("No pages provided")
        for url in urls:
            self.guard.parse(url)
        run_id = await self._begin(tenant, urls[0])
        return self._spawn(self._run_pages(run_id, urls, tenant, api_key, append_mode), tenant, run_id)

    async def get_analyzed_content(self, tenant: str) -> Optional[StructuredProfile]:
        record = await self.store.get_profile(tenant)
        return record.profile if record else None

    async def get_record(self, tenant: str) -> Optional[AnalysisRecord]:
        return await self.store.get_profile(tenant)

    async def list_analyzed_pages(self, tenant: str) -> List[AnalyzedPageRecord]:
        return await self.store.list_analyzed_pages(tenant)

    async def update_content(self, tenant: str, profile: StructuredProfile) -> None:
        """Manual edit of the stored profile; the record must already exist."""
        record = await self.store.get_profile(tenant)
        if record is None:
            raise LookupError("No website analysis found to update")
        await self.store.upsert_profile(tenant, {
            "profile": profile,
            "status": AnalysisStatus.COMPLETED,
            "error_message": None,
        })

    async def reset_analysis(self, tenant: str) -> None:
        """Delete-and-restart: the only way list fields may shrink."""
        await self.store.delete_analysis(tenant)
        logger.info(f"Analysis reset for {tenant}")

    async def wait_idle(self):
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self):
        await self.wait_idle()
        await self.fetcher.close()

    # --- Run lifecycle --- #

    async def _begin(self, tenant: str, website_url: str) -> str:
        run_id = uuid.uuid4().hex
        await self.store.upsert_profile(tenant, {
            "website_url": website_url,
            "status": AnalysisStatus.PENDING,
            "error_message": None,
            "run_id": run_id,
        })
        logger.info(f"Analysis {run_id} pending for {tenant}: {website_url}")
        return run_id

    def _spawn(self, coro, tenant: str, run_id: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"analysis-{tenant}-{run_id}")
        self._tasks.add(task)

        def _done(t: asyncio.Task):
            self._tasks.discard(t)
            if t.cancelled():
                logger.warning(f"Analysis {run_id} for {tenant} was cancelled")
                return
            # Retrieve the exception so unawaited runs never warn; it was already recorded.
            exc = t.exception()
            if exc is not None:
                logger.info(f"Analysis {run_id} for {tenant} ended with {type(exc).__name__}")

        task.add_done_callback(_done)
        return task

    async def _run_site(self, run_id: str, website_url: str, tenant: str, api_key: str) -> StructuredProfile:
        async def work():
            homepage_key = self._history_key(website_url)
            urls = [website_url]
            urls.extend(u for u in await self._discover(website_url)
                        if self._history_key(u) != homepage_key)
            pages = await self._scrape_all(urls)
            text = self._combine(pages, homepage=True)
            profile = await self._synthesize(self.synthesizer.summarize(text, api_key))
            return await self._persist(run_id, tenant, website_url, profile, pages)

        return await self._guarded(run_id, tenant, work)

    async def _run_pages(self, run_id: str, urls: List[str], tenant: str, api_key: str,
                         append_mode: bool) -> StructuredProfile:
        async def work():
            pages = await self._scrape_all(urls)
            text = self._combine(pages, homepage=False)

            existing = None
            if append_mode:
                record = await self.store.get_profile(tenant)
                existing = record.profile if record else None
                if existing is None:
                    logger.info(f"Append requested for {tenant} but no prior profile; summarizing instead")

            if existing is not None:
                logger.info(f"Merging new content into existing profile for {tenant}")
                profile = await self._synthesize(self.synthesizer.merge_into(existing, text, api_key))
            else:
                profile = await self._synthesize(self.synthesizer.summarize(text, api_key))
            return await self._persist(run_id, tenant, urls[0], profile, pages)

        return await self._guarded(run_id, tenant, work)

    async def _guarded(self, run_id: str, tenant: str, work) -> StructuredProfile:
        """Run ``work`` and always leave the record in a final state."""
        start = time.time()
        try:
            await self.store.set_status(tenant, AnalysisStatus.ANALYZING, expected_run_id=run_id)
            profile = await work()
            logger.info(f"Analysis {run_id} completed for {tenant} in {time.time() - start:.2f}s")
            return profile
        except AnalysisError as e:
            logger.error(f"Analysis {run_id} failed for {tenant}: {e.describe()}")
            await self.store.set_status(tenant, AnalysisStatus.FAILED, e.describe(), expected_run_id=run_id)
            raise
        except Exception:
            logger.exception(f"Unexpected error in analysis {run_id} for {tenant}")
            await self.store.set_status(tenant, AnalysisStatus.FAILED, GENERIC_FAILURE, expected_run_id=run_id)
            raise

    # --- Pipeline steps --- #

    async def _discover(self, website_url: str) -> List[str]:
        try:
            raw = await self._fetch(website_url, DISCOVERY_OPTIONS)
        except AnalysisError as e:
            logger.warning(f"Link discovery skipped for {website_url}: {e.describe()}")
            return []
        return discover_pages(raw.final_url, raw.text, limit=self.max_pages)

    async def _fetch(self, url: str, options: FetchOptions) -> RawHtml:
        target = await self.guard.validate(url)
        try:
            return await self.fetcher.fetch(target, options)
        except SslCertificateError:
            if target.scheme != "https":
                raise
            fallback_url = target.with_scheme("http")
            logger.warning(f"TLS failed for {url}; retrying once over plain HTTP: {fallback_url}")
            fallback = await self.guard.validate(fallback_url)
            return await self.fetcher.fetch(fallback, options)

    async def _scrape_all(self, urls: List[str]) -> List[ScrapedPage]:
        pages: List[ScrapedPage] = []
        errors: List[Exception] = []
        for url in urls:
            try:
                logger.info(f"Scraping: {url}")
                raw = await self._fetch(url, SCRAPE_OPTIONS)
                sections = extract_sections(raw.text)
                if sections.is_empty():
                    raise EmptyContent()
            except (PageError, PreflightError) as e:
                logger.warning(f"Error scraping page {url}: {e.describe()}")
                errors.append(e)
                continue
            except Exception as e:
                # Markup the parser rejects, and anything else page specific
                logger.exception(f"Unexpected error scraping page {url}")
                errors.append(e)
                continue
            pages.append(ScrapedPage(url=url, final_url=raw.final_url, text=sections.to_text()))

        if not pages:
            if len(urls) == 1 and errors:
                raise errors[0]
            raise ScrapeFailed()
        logger.info(f"Scraped {len(pages)}/{len(urls)} page(s)")
        return pages

    @staticmethod
    def _combine(pages: List[ScrapedPage], homepage: bool) -> str:
        parts = []
        for index, page in enumerate(pages):
            if homepage and index == 0:
                parts.append(f"HOMEPAGE CONTENT:\n{page.text}")
            else:
                parts.append(f"{page_label(page.url)} PAGE CONTENT ({page.url}):\n{page.text}")
        combined = "\n\n".join(parts)
        logger.info(f"Total content length: {len(combined)}")
        return combined

    @staticmethod
    async def _synthesize(call) -> StructuredProfile:
        try:
            return await call
        except AnalysisError:
            raise
        except Exception as e:
            logger.error(f"Synthesizer raised {type(e).__name__}: {e}")
            raise SynthesisFailed() from e

    def _history_key(self, url: str) -> str:
        """Normalized form of the URL the guard would actually request."""
        try:
            requested = self.guard.parse(url).url
        except PreflightError:
            requested = url
        return normalize_page_url(requested)

    async def _persist(self, run_id: str, tenant: str, website_url: str, profile: StructuredProfile,
                       pages: List[ScrapedPage]) -> StructuredProfile:
        written = await self.store.upsert_profile(tenant, {
            "website_url": website_url,
            "profile": profile,
        }, expected_run_id=run_id)
        if not written:
            logger.warning(f"Analysis {run_id} for {tenant} was superseded; result discarded")
            return profile

        unique_urls = list(dict.fromkeys(self._history_key(p.url) for p in pages))
        for page_url in unique_urls:
            try:
                await self.store.append_analyzed_page(tenant, page_url)
            except Exception as e:
                logger.error(f"Error saving analyzed page {page_url}: {e}")
        logger.info(f"Saved {len(unique_urls)} unique pages out of {len(pages)} total")

        await self.store.set_status(tenant, AnalysisStatus.COMPLETED, expected_run_id=run_id)
        return profile
