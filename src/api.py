import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from profiler.errors import PreflightError
from profiler.models import StructuredProfile
from profiler.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api",
    tags=["website-analysis"]
)


# Models for API requests and responses
class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WebsiteAnalysisRequest(_CamelModel):
    website_url: str = Field(..., min_length=1)
    additional_pages: List[str] = Field(default_factory=list)
    analyze_only_additional: bool = False


class WebsiteAnalysisStarted(_CamelModel):
    status: str
    message: str


class WebsiteAnalysisState(_CamelModel):
    status: str
    website_url: str = ""
    analyzed_content: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    last_analyzed_at: Optional[datetime] = None


class UpdateContentRequest(_CamelModel):
    analyzed_content: StructuredProfile


class AnalyzedPageOut(_CamelModel):
    page_url: str
    analyzed_at: datetime


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.orchestrator


def get_tenant(x_business_account_id: Optional[str] = Header(None)) -> str:
    if not x_business_account_id:
        raise HTTPException(status_code=400, detail="Business account not found")
    return x_business_account_id


def _hostname(url: str) -> Optional[str]:
    value = url.strip()
    if "://" not in value:
        value = "https://" + value
    try:
        return urlsplit(value).hostname
    except ValueError:
        return None


@router.get("/website-analysis", response_model=WebsiteAnalysisState, response_model_by_alias=True)
async def get_website_analysis(tenant: str = Depends(get_tenant),
                               orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Current analysis status and profile for the tenant"""
    record = await orchestrator.get_record(tenant)
    if record is None:
        return WebsiteAnalysisState(status="not_started")
    return WebsiteAnalysisState(
        status=record.status.value,
        website_url=record.website_url,
        analyzed_content=record.profile.model_dump(by_alias=True) if record.profile else None,
        error_message=record.error_message,
        last_analyzed_at=record.last_analyzed_at,
    )


@router.post("/website-analysis", response_model=WebsiteAnalysisStarted)
async def start_website_analysis(body: WebsiteAnalysisRequest,
                                 tenant: str = Depends(get_tenant),
                                 x_llm_api_key: Optional[str] = Header(None),
                                 orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Start an analysis in the background; returns immediately with status pending"""
    if not x_llm_api_key:
        raise HTTPException(status_code=400, detail="LLM API key not configured. Please set it in Settings first.")

    if body.analyze_only_additional:
        if not body.additional_pages:
            raise HTTPException(status_code=400, detail="No additional pages provided")
        pages = list(body.additional_pages)
    else:
        pages = [body.website_url, *body.additional_pages]

    base_host = _hostname(body.website_url)
    if not base_host:
        raise HTTPException(status_code=400, detail="Invalid URL format")
    for page in pages:
        host = _hostname(page)
        if host is None:
            raise HTTPException(status_code=400, detail="Invalid URL format")
        if host != base_host:
            raise HTTPException(status_code=400,
                                detail="All pages must be from the same domain as the configured website")

    try:
        if len(pages) == 1 and not body.analyze_only_additional:
            await orchestrator.analyze_site(body.website_url, tenant, x_llm_api_key)
        else:
            # Added pages always merge into what is already known.
            await orchestrator.analyze_pages(pages, tenant, x_llm_api_key, append_mode=True)
    except PreflightError as e:
        raise HTTPException(status_code=400, detail=e.public_message)

    if body.analyze_only_additional:
        noun = "page" if len(pages) == 1 else "pages"
        message = f"Analyzing {len(pages)} additional {noun}. Data will be merged with existing analysis..."
    elif len(pages) > 1:
        message = f"Website analysis started for {len(pages)} pages. This may take a few minutes..."
    else:
        message = "Website analysis started. This may take a minute..."
    return WebsiteAnalysisStarted(status="pending", message=message)


@router.patch("/website-analysis")
async def update_website_analysis(body: UpdateContentRequest,
                                  tenant: str = Depends(get_tenant),
                                  orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Replace the extracted profile with an edited version"""
    try:
        await orchestrator.update_content(tenant, body.analyzed_content)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "message": "Website analysis content updated successfully"}


@router.delete("/website-analysis")
async def reset_website_analysis(tenant: str = Depends(get_tenant),
                                 orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Delete the analysis and its page history (start fresh)"""
    await orchestrator.reset_analysis(tenant)
    return {"success": True, "message": "Website analysis reset successfully"}


@router.get("/analyzed-pages", response_model=List[AnalyzedPageOut], response_model_by_alias=True)
async def list_analyzed_pages(tenant: str = Depends(get_tenant),
                              orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Pages scraped for the tenant, newest first"""
    pages = await orchestrator.list_analyzed_pages(tenant)
    return [AnalyzedPageOut(page_url=p.page_url, analyzed_at=p.analyzed_at) for p in pages]
