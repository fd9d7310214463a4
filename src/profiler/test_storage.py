import pytest

from profiler.models import AnalysisStatus, StructuredProfile
from profiler.storage import InMemoryAnalysisStore


@pytest.mark.asyncio
async def test_upsert_creates_then_patches():
    store = InMemoryAnalysisStore()
    assert await store.get_profile("t1") is None

    assert await store.upsert_profile("t1", {"website_url": "https://acme.example", "run_id": "r1"})
    assert await store.upsert_profile("t1", {"profile": StructuredProfile(business_name="Acme")})

    record = await store.get_profile("t1")
    assert record.website_url == "https://acme.example"
    assert record.status == AnalysisStatus.PENDING
    assert record.profile.business_name == "Acme"


@pytest.mark.asyncio
async def test_reads_are_copies():
    store = InMemoryAnalysisStore()
    await store.upsert_profile("t1", {"profile": StructuredProfile(main_products=["Bread"])})
    record = await store.get_profile("t1")
    record.profile.main_products.append("Cake")
    assert (await store.get_profile("t1")).profile.main_products == ["Bread"]


@pytest.mark.asyncio
async def test_stale_run_writes_are_dropped():
    store = InMemoryAnalysisStore()
    await store.upsert_profile("t1", {"run_id": "old"})
    await store.upsert_profile("t1", {"run_id": "new"})

    assert await store.upsert_profile("t1", {"website_url": "https://stale.example"}, expected_run_id="old") is False
    assert await store.set_status("t1", AnalysisStatus.FAILED, "boom", expected_run_id="old") is False
    assert await store.set_status("t1", AnalysisStatus.ANALYZING, expected_run_id="new") is True

    record = await store.get_profile("t1")
    assert record.website_url == ""
    assert record.status == AnalysisStatus.ANALYZING


@pytest.mark.asyncio
async def test_completed_sets_last_analyzed_at():
    store = InMemoryAnalysisStore()
    assert await store.set_status("t1", AnalysisStatus.COMPLETED) is False

    await store.upsert_profile("t1", {"website_url": "https://acme.example"})
    await store.set_status("t1", AnalysisStatus.COMPLETED)
    record = await store.get_profile("t1")
    assert record.last_analyzed_at is not None
    assert record.error_message is None


@pytest.mark.asyncio
async def test_tenants_are_isolated_and_delete_clears_history():
    store = InMemoryAnalysisStore()
    await store.upsert_profile("t1", {"website_url": "https://one.example"})
    await store.upsert_profile("t2", {"website_url": "https://two.example"})
    await store.append_analyzed_page("t1", "https://one.example")
    await store.append_analyzed_page("t1", "https://one.example/about")
    await store.append_analyzed_page("t2", "https://two.example")

    pages = await store.list_analyzed_pages("t1")
    assert [p.page_url for p in pages] == ["https://one.example/about", "https://one.example"]

    await store.delete_analysis("t1")
    assert await store.get_profile("t1") is None
    assert await store.list_analyzed_pages("t1") == []
    assert (await store.get_profile("t2")).website_url == "https://two.example"
    assert len(await store.list_analyzed_pages("t2")) == 1


@pytest.mark.asyncio
async def test_rescraped_page_refreshes_its_single_row():
    store = InMemoryAnalysisStore()
    first = await store.append_analyzed_page("t1", "https://acme.example/faq")
    await store.append_analyzed_page("t1", "https://acme.example/menu")
    again = await store.append_analyzed_page("t1", "https://acme.example/FAQ/")

    pages = await store.list_analyzed_pages("t1")
    assert [p.page_url for p in pages] == ["https://acme.example/faq", "https://acme.example/menu"]
    assert pages[0].analyzed_at == again.analyzed_at >= first.analyzed_at
