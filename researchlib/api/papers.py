from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from researchlib.fetching.errors import PaperNotFoundError, SourcesUnavailableError
from researchlib.fetching.service import PaperService, get_paper_service
from researchlib.schemas.papers import CitationNetwork, Paper, SearchFilters, SearchResult

router = APIRouter(prefix="/api", tags=["papers"])
logger = logging.getLogger(__name__)


@router.get("/paper/{paper_id:path}", response_model=Paper)
async def get_paper(
    paper_id: str,
    doi: Optional[str] = None,
    service: PaperService = Depends(get_paper_service),
):
    """Canonical paper record with an open-access PDF link when one exists."""
    try:
        return await service.get_paper(paper_id, doi)
    except PaperNotFoundError:
        raise HTTPException(status_code=404, detail="Paper not found")
    except SourcesUnavailableError as e:
        logger.warning(f"get_paper {paper_id}: {e}")
        raise HTTPException(status_code=503, detail="Bibliographic sources unavailable")


@router.get("/citations/{paper_id:path}", response_model=CitationNetwork)
async def get_citations(
    paper_id: str,
    doi: Optional[str] = None,
    service: PaperService = Depends(get_paper_service),
):
    """One-hop citation network: papers citing and cited by the root."""
    try:
        return await service.get_citation_network(paper_id, doi)
    except PaperNotFoundError:
        raise HTTPException(status_code=404, detail="Paper not found")
    except SourcesUnavailableError as e:
        logger.warning(f"get_citations {paper_id}: {e}")
        raise HTTPException(status_code=503, detail="Bibliographic sources unavailable")


@router.get("/search", response_model=SearchResult)
async def search_papers(
    q: str = "",
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    year_from: Optional[int] = None,
    year_to: Optional[int] = None,
    min_citations: Optional[int] = Query(None, ge=0),
    open_access_only: bool = False,
    author: Optional[str] = None,
    venue: Optional[str] = None,
    service: PaperService = Depends(get_paper_service),
):
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")

    filters = SearchFilters(
        year_from=year_from,
        year_to=year_to,
        min_citations=min_citations,
        open_access_only=open_access_only,
        author=author or None,
        venue=venue or None,
    )
    try:
        return await service.search(q, filters=filters, page=page, page_size=page_size)
    except SourcesUnavailableError as e:
        logger.warning(f"search '{q}': {e}")
        raise HTTPException(status_code=503, detail="Bibliographic sources unavailable")
