import socket
import time

import pytest
from fastapi.testclient import TestClient

from app import create_app
from profiler.errors import HttpError
from profiler.fetcher import RawHtml
from profiler.models import StructuredProfile
from profiler.orchestrator import AnalysisOrchestrator
from profiler.storage import InMemoryAnalysisStore
from profiler.synthesizer import Synthesizer
from profiler.url_guard import UrlGuard

HEADERS = {"X-Business-Account-Id": "biz-1", "X-LLM-Api-Key": "test-key"}

SITE = {
    "https://acme.example/": '<main>Acme Bakery</main><a href="/about">About</a>',
    "https://acme.example/about": "<main>Family owned since 1982</main>",
    "https://acme.example/shop": "<main>Cookies</main>",
}


async def public_resolver(hostname, family):
    if family != socket.AF_INET:
        raise socket.gaierror(socket.EAI_NONAME, "no AAAA record")
    return ["93.184.216.34"]


class StaticFetcher:
    async def fetch(self, target, options=None):
        if target.url not in SITE:
            raise HttpError(404)
        return RawHtml(url=target.url, final_url=target.url, status=200,
                       content_type="text/html", body=SITE[target.url].encode("utf-8"))

    async def close(self):
        pass


class StaticSynthesizer(Synthesizer):
    async def summarize(self, text, api_key):
        return StructuredProfile(business_name="Acme Bakery", main_products=["Bread"])

    async def merge_into(self, existing, text, api_key):
        return existing.model_copy(update={"main_products": [*existing.main_products, "Cookies"]})


@pytest.fixture
def client():
    orchestrator = AnalysisOrchestrator(
        InMemoryAnalysisStore(),
        StaticSynthesizer(),
        guard=UrlGuard(resolver=public_resolver),
        fetcher=StaticFetcher(),
    )
    with TestClient(create_app(orchestrator)) as test_client:
        yield test_client


def wait_for_status(client, expected=("completed", "failed"), timeout=5.0):
    """Poll the status endpoint until the background run settles."""
    deadline = time.time() + timeout
    while True:
        body = client.get("/api/website-analysis", headers=HEADERS).json()
        if body["status"] in expected or time.time() > deadline:
            return body
        time.sleep(0.02)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_not_started(client):
    response = client.get("/api/website-analysis", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "not_started"
    assert response.json()["analyzedContent"] is None


def test_tenant_header_is_required(client):
    response = client.get("/api/website-analysis")
    assert response.status_code == 400


def test_api_key_is_required(client):
    response = client.post("/api/website-analysis", json={"websiteUrl": "https://acme.example/"},
                           headers={"X-Business-Account-Id": "biz-1"})
    assert response.status_code == 400
    assert "API key" in response.json()["detail"]


def test_pages_must_share_the_website_domain(client):
    response = client.post("/api/website-analysis", headers=HEADERS, json={
        "websiteUrl": "https://acme.example/",
        "additionalPages": ["https://evil.example/about"],
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "All pages must be from the same domain as the configured website"


def test_preflight_errors_are_bad_requests(client):
    response = client.post("/api/website-analysis", headers=HEADERS, json={"websiteUrl": "http://localhost/"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Access to localhost is not allowed"

    response = client.post("/api/website-analysis", headers=HEADERS, json={"websiteUrl": "ftp://acme.example/"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Only HTTP and HTTPS protocols are allowed"


def test_analysis_lifecycle(client):
    response = client.post("/api/website-analysis", headers=HEADERS, json={"websiteUrl": "https://acme.example/"})
    assert response.status_code == 200
    assert response.json() == {"status": "pending", "message": "Website analysis started. This may take a minute..."}

    body = wait_for_status(client)
    assert body["status"] == "completed"
    assert body["websiteUrl"] == "https://acme.example/"
    assert body["analyzedContent"]["businessName"] == "Acme Bakery"
    assert body["errorMessage"] is None
    assert body["lastAnalyzedAt"] is not None

    pages = client.get("/api/analyzed-pages", headers=HEADERS).json()
    assert sorted(p["pageUrl"] for p in pages) == ["https://acme.example", "https://acme.example/about"]

    other = client.get("/api/website-analysis", headers={"X-Business-Account-Id": "biz-2"}).json()
    assert other["status"] == "not_started"


def test_additional_pages_are_merged(client):
    client.post("/api/website-analysis", headers=HEADERS, json={"websiteUrl": "https://acme.example/"})
    wait_for_status(client)

    response = client.post("/api/website-analysis", headers=HEADERS, json={
        "websiteUrl": "https://acme.example/",
        "additionalPages": ["https://acme.example/shop"],
        "analyzeOnlyAdditional": True,
    })
    assert response.json()["message"] == \
        "Analyzing 1 additional page. Data will be merged with existing analysis..."

    body = wait_for_status(client)
    assert body["analyzedContent"]["mainProducts"] == ["Bread", "Cookies"]


def test_failed_run_reports_error(client):
    client.post("/api/website-analysis", headers=HEADERS, json={"websiteUrl": "https://acme.example/missing"})
    body = wait_for_status(client)
    assert body["status"] == "failed"
    assert body["errorMessage"] == "Failed to fetch website: HTTP 404 [HttpError]"


def test_update_requires_existing_analysis(client):
    response = client.patch("/api/website-analysis", headers=HEADERS,
                            json={"analyzedContent": {"businessName": "Edited"}})
    assert response.status_code == 404


def test_update_and_reset(client):
    client.post("/api/website-analysis", headers=HEADERS, json={"websiteUrl": "https://acme.example/"})
    wait_for_status(client)

    response = client.patch("/api/website-analysis", headers=HEADERS,
                            json={"analyzedContent": {"businessName": "Acme Edited", "mainProducts": ["Rye"]}})
    assert response.status_code == 200
    body = client.get("/api/website-analysis", headers=HEADERS).json()
    assert body["analyzedContent"]["businessName"] == "Acme Edited"
    assert body["analyzedContent"]["mainProducts"] == ["Rye"]

    assert client.delete("/api/website-analysis", headers=HEADERS).json()["success"] is True
    assert client.get("/api/website-analysis", headers=HEADERS).json()["status"] == "not_started"
    assert client.get("/api/analyzed-pages", headers=HEADERS).json() == []
