"""
Search API endpoints.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from backend.app.core.config import Settings, get_settings
from backend.app.core.rate_limit import check_rate_limit, client_key
from noexplorer.models import SearchFilters
from noexplorer.orchestrator import SearchClient

router = APIRouter(tags=["search"])


# ==================== Schemas ====================

class SearchResultResponse(BaseModel):
    """One merged search result."""

    id: str
    title: str
    url: str
    snippet: str
    domain: str
    relevance: float
    source: str
    type: str = "web"
    timestamp: str
    thumbnail: Optional[str] = None
    metadata: Dict[str, Any] = {}


class SearchErrorResponse(BaseModel):
    kind: str
    message: str


class SearchResponseModel(BaseModel):
    """Paginated search response."""

    model_config = ConfigDict(populate_by_name=True)

    results: List[SearchResultResponse]
    total_count: int = Field(alias="totalCount")
    page: int
    has_more: bool = Field(alias="hasMore")
    search_time: float = Field(alias="searchTime")
    suggestions: List[str] = []
    query: str
    error: Optional[SearchErrorResponse] = None


class SuggestionsResponse(BaseModel):
    query: str
    suggestions: List[str]


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime: float
    checks: Dict[str, bool]


# ==================== Dependencies ====================

def get_search_client(request: Request) -> SearchClient:
    """The application-wide search client created in the lifespan handler."""
    client = getattr(request.app.state, "search_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Search client not ready")
    return client


def enforce_rate_limit(request: Request) -> None:
    limiter = getattr(request.app.state, "search_limiter", None)
    if limiter is not None:
        check_rate_limit(client_key(request), limiter)


# ==================== Endpoints ====================

@router.get(
    "/search",
    response_model=SearchResponseModel,
    response_model_exclude_none=True,
    dependencies=[Depends(enforce_rate_limit)],
)
async def search(
    q: str = Query(..., min_length=1, max_length=500, description="Search query"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    domain: Optional[str] = Query(None, description="Only results from this domain"),
    type: Optional[str] = Query(None, description="Result type filter"),
    client: SearchClient = Depends(get_search_client),
    settings: Settings = Depends(get_settings),
):
    """
    Search every enabled source and return one ranked page.

    Source failures degrade the response (an ``error`` note with empty
    results) rather than failing the request.
    """
    if limit > settings.max_results_per_page:
        raise HTTPException(
            status_code=422,
            detail=f"limit must be <= {settings.max_results_per_page}",
        )

    filters = SearchFilters(domain=domain, type=type) if (domain or type) else None
    response = await client.search(q, page=page, limit=limit, filters=filters)
    return SearchResponseModel.model_validate(response.to_dict())


@router.get(
    "/suggestions",
    response_model=SuggestionsResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def suggestions(
    q: str = Query("", max_length=200, description="Partial query"),
    client: SearchClient = Depends(get_search_client),
):
    """Autocomplete suggestions; empty when unavailable."""
    return SuggestionsResponse(query=q, suggestions=await client.get_suggestions(q))


@router.get("/health", response_model=HealthResponse)
async def health(client: SearchClient = Depends(get_search_client)):
    """Health derived from the circuit state of each source."""
    report = await client.check_health()
    return HealthResponse(**report.to_dict())


@router.get("/stats")
async def stats(client: SearchClient = Depends(get_search_client)) -> Dict[str, Any]:
    """Counters from the aggregator, queue, circuit breaker and privacy layer."""
    return client.get_stats()
