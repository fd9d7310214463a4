"""Tenant-scoped persistence for analysis records and page history."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import AnalysisRecord, AnalysisStatus, AnalyzedPageRecord, normalize_page_url, utcnow

logger = logging.getLogger(__name__)


class AnalysisStore(ABC):
    """Every method is scoped to one tenant (``business_account_id``)."""

    @abstractmethod
    async def get_profile(self, tenant: str) -> Optional[AnalysisRecord]:
        ...

    @abstractmethod
    async def upsert_profile(self, tenant: str, patch: Dict[str, Any],
                             expected_run_id: Optional[str] = None) -> bool:
        """Create or patch the record. Returns False if the write was stale."""

    @abstractmethod
    async def set_status(self, tenant: str, status: AnalysisStatus, error_message: Optional[str] = None,
                         expected_run_id: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    async def append_analyzed_page(self, tenant: str, url: str) -> AnalyzedPageRecord:
        """Record a scraped page. One row per normalized URL; a rescrape refreshes ``analyzed_at``."""

    @abstractmethod
    async def list_analyzed_pages(self, tenant: str) -> List[AnalyzedPageRecord]:
        ...

    @abstractmethod
    async def delete_analysis(self, tenant: str) -> None:
        """Delete the record and its page history (delete-and-restart)."""


class InMemoryAnalysisStore(AnalysisStore):
    def __init__(self):
        self._records: Dict[str, AnalysisRecord] = {}
        self._pages: Dict[str, List[AnalyzedPageRecord]] = {}

    def _is_stale(self, tenant: str, expected_run_id: Optional[str]) -> bool:
        if expected_run_id is None:
            return False
        record = self._records.get(tenant)
        current = record.run_id if record else None
        if current != expected_run_id:
            logger.info(f"Dropping stale write for {tenant}: run {expected_run_id} superseded by {current}")
            return True
        return False

    async def get_profile(self, tenant: str) -> Optional[AnalysisRecord]:
        record = self._records.get(tenant)
        return record.model_copy(deep=True) if record else None

    async def upsert_profile(self, tenant: str, patch: Dict[str, Any],
                             expected_run_id: Optional[str] = None) -> bool:
        if self._is_stale(tenant, expected_run_id):
            return False
        record = self._records.get(tenant)
        if record is None:
            record = AnalysisRecord(business_account_id=tenant)
        updated = record.model_copy(update={**patch, "updated_at": utcnow()})
        # model_copy skips validation; re-validate so bad patches fail here.
        self._records[tenant] = AnalysisRecord.model_validate(updated.model_dump())
        return True

    async def set_status(self, tenant: str, status: AnalysisStatus, error_message: Optional[str] = None,
                         expected_run_id: Optional[str] = None) -> bool:
        if tenant not in self._records or self._is_stale(tenant, expected_run_id):
            return False
        patch: Dict[str, Any] = {"status": status, "error_message": error_message}
        if status == AnalysisStatus.COMPLETED:
            patch["last_analyzed_at"] = utcnow()
        return await self.upsert_profile(tenant, patch)

    async def append_analyzed_page(self, tenant: str, url: str) -> AnalyzedPageRecord:
        page_url = normalize_page_url(url)
        # One row per URL: a rescrape refreshes it and moves it to the front.
        pages = [p for p in self._pages.get(tenant, []) if p.page_url != page_url]
        page = AnalyzedPageRecord(business_account_id=tenant, page_url=page_url)
        pages.append(page)
        self._pages[tenant] = pages
        return page

    async def list_analyzed_pages(self, tenant: str) -> List[AnalyzedPageRecord]:
        # Appends happen in time order, so newest first is the reverse.
        return list(reversed(self._pages.get(tenant, [])))

    async def delete_analysis(self, tenant: str) -> None:
        self._records.pop(tenant, None)
        self._pages.pop(tenant, None)
