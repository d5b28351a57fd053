"""
PaperService: the cached front door to the fetching components.

Every inbound request goes through the ResourceCache first; on a miss the
cache runs exactly one upstream computation per key:

- paper by id:       Aggregator.fetch_by_id -> PdfEnhancer
- citation network:  get_paper (shares the paper cache) -> CitationNetworkBuilder
- search:            Aggregator.search_all_sources -> filters -> page

The service owns the shared httpx.AsyncClient and one adapter instance per
source, so each adapter's rate limit holds across components.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Sequence

import httpx

from researchlib.cache import ResourceCache, ResourceClass
from researchlib.deduplication import MergePolicy
from researchlib.fetching.aggregator import Aggregator
from researchlib.fetching.citations import CitationNetworkBuilder
from researchlib.fetching.errors import FetchServiceError, PaperNotFoundError, SourcesUnavailableError
from researchlib.fetching.identifiers import DOI, looks_like_identifier, parse_identifier
from researchlib.fetching.pdf_enhancer import PdfEnhancer
from researchlib.fetching.providers import BaseFetchProvider, build_providers
from researchlib.schemas.papers import CitationNetwork, Paper, SearchFilters, SearchResult, normalize_doi

logger = logging.getLogger(__name__)


def _resource_key(prefix: str, paper_id: str, doi: Optional[str]) -> str:
    # Recognized ids collapse to one spelling; a DOI hint repeating a DOI id adds nothing
    ident = parse_identifier(paper_id)
    doi_hint = normalize_doi(doi)
    if ident is not None and ident.kind == DOI and doi_hint == ident.value:
        doi_hint = None
    canonical = str(ident) if ident is not None else paper_id.strip()
    return f"{prefix}:{canonical}:{doi_hint or 'no-doi'}"


def paper_cache_key(paper_id: str, doi: Optional[str] = None) -> str:
    return _resource_key("paper", paper_id, doi)


def citations_cache_key(paper_id: str, doi: Optional[str] = None) -> str:
    return _resource_key("citations", paper_id, doi)


def search_cache_key(query: str, filters: SearchFilters, page: int, page_size: int) -> str:
    return f"search:{' '.join(query.lower().split())}:{page}:{page_size}:{filters.cache_token()}"


def apply_filters(papers: Sequence[Paper], filters: SearchFilters) -> List[Paper]:
    """Post-merge filters; a paper with an unknown year fails any year bound."""
    kept = []
    author = filters.author.lower() if filters.author else None
    venue = filters.venue.lower() if filters.venue else None
    for paper in papers:
        if filters.year_from is not None and (paper.year is None or paper.year < filters.year_from):
            continue
        if filters.year_to is not None and (paper.year is None or paper.year > filters.year_to):
            continue
        if filters.min_citations is not None and paper.citation_count < filters.min_citations:
            continue
        if filters.open_access_only and not (paper.open_access or paper.pdf_url):
            continue
        if author and not any(author in a.name.lower() for a in paper.authors):
            continue
        if venue and venue not in (paper.venue or "").lower():
            continue
        kept.append(paper)
    return kept


class PaperService:
    """Main paper-resolution orchestrator."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        aggregator: Aggregator,
        pdf_enhancer: PdfEnhancer,
        citation_builder: CitationNetworkBuilder,
        cache: ResourceCache,
        default_page_size: int = 25,
    ):
        self.client = client
        self.aggregator = aggregator
        self.pdf_enhancer = pdf_enhancer
        self.citation_builder = citation_builder
        self.cache = cache
        self.default_page_size = default_page_size
        self._sweeper: Optional[asyncio.Task] = None

        logger.info(
            f"PaperService initialized: search={[p.name for p in aggregator.providers]}, "
            f"pdf={[p.name for p in pdf_enhancer.providers]}, "
            f"citations={[p.name for p in citation_builder.providers]}"
        )

    @classmethod
    def from_policy(cls, client: Optional[httpx.AsyncClient] = None) -> "PaperService":
        """Build the service from AdminPolicy and SystemSettings."""
        from researchlib.config.admin_policy import admin_policy

        client = client or httpx.AsyncClient(follow_redirects=True)
        apis = admin_policy.fetch_apis
        source_names = admin_policy.active_in_order(apis.source_priority)
        pdf_names = admin_policy.active_in_order(apis.pdf_priority)
        citation_names = admin_policy.active_in_order(apis.citation_sources)

        # One instance per source, shared by every component
        all_names = list(dict.fromkeys(source_names + pdf_names + citation_names))
        instances: Dict[str, BaseFetchProvider] = {p.name: p for p in build_providers(client, all_names)}

        def pick(names: Sequence[str]) -> List[BaseFetchProvider]:
            return [instances[name] for name in names if name in instances]

        merge_policy = MergePolicy()
        return cls(
            client=client,
            aggregator=Aggregator(pick(source_names), merge_policy),
            pdf_enhancer=PdfEnhancer(pick(pdf_names)),
            citation_builder=CitationNetworkBuilder(pick(citation_names), merge_policy),
            cache=ResourceCache.from_policy(),
            default_page_size=admin_policy.fetch_params.results_limit,
        )

    # ----- resources -----

    async def get_paper(self, paper_id: str, doi: Optional[str] = None) -> Paper:
        """
        Resolve a paper by id (optional DOI hint) and attach an open-access PDF link.

        Raises:
            PaperNotFoundError: No source knows the paper.
            SourcesUnavailableError: No source answered.
        """
        if not paper_id or not paper_id.strip():
            raise PaperNotFoundError("Empty paper id")

        async def compute() -> Paper:
            paper = await self.aggregator.fetch_by_id(paper_id.strip(), doi)
            return await self.pdf_enhancer.enhance_with_pdf(paper)

        return await self.cache.get(paper_cache_key(paper_id, doi), ResourceClass.PAPER_BY_ID, compute)

    async def get_citation_network(self, paper_id: str, doi: Optional[str] = None) -> CitationNetwork:
        """
        One-hop citation network around a paper.

        The root must resolve; missing citation data yields empty sets.
        """
        async def compute() -> CitationNetwork:
            root = await self.get_paper(paper_id, doi)
            return await self.citation_builder.build_network(root, doi)

        return await self.cache.get(
            citations_cache_key(paper_id, doi), ResourceClass.CITATION_NETWORK, compute
        )

    async def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> SearchResult:
        """
        Free-text search across sources with post-merge filters and paging.

        A query that looks like an identifier is resolved by id instead.
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("Search query must not be empty")
        filters = filters or SearchFilters()
        page = max(page, 1)
        page_size = page_size or self.default_page_size

        if looks_like_identifier(query):
            return await self._search_by_id(query, filters, page)

        async def compute() -> SearchResult:
            aggregated = await self.aggregator.search_all_sources(query, page_size, (page - 1) * page_size)
            papers = apply_filters(aggregated.papers, filters)
            return SearchResult(
                papers=papers,
                total_results=aggregated.total_results,
                current_page=page,
                has_more=page * page_size < aggregated.total_results,
            )

        return await self.cache.get(
            search_cache_key(query, filters, page, page_size), ResourceClass.SEARCH, compute
        )

    async def _search_by_id(self, query: str, filters: SearchFilters, page: int) -> SearchResult:
        try:
            paper = await self.get_paper(query)
        except PaperNotFoundError:
            return SearchResult(current_page=page)
        papers = apply_filters([paper], filters) if page == 1 else []
        return SearchResult(papers=papers, total_results=len(papers), current_page=page)

    # ----- lifecycle -----

    def start_sweeper(self, interval_seconds: Optional[float] = None) -> None:
        """Start the background expiry sweep on the running loop."""
        if self._sweeper is not None:
            return
        if interval_seconds is None:
            from researchlib.config.admin_policy import admin_policy
            interval_seconds = admin_policy.caching.sweep_interval_seconds
        self._sweeper = asyncio.ensure_future(self.cache.run_sweeper(interval_seconds))

    async def aclose(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.client.aclose()
        logger.info("PaperService closed")


# Singleton instance, built on first use
_paper_service: Optional[PaperService] = None


def get_paper_service() -> PaperService:
    global _paper_service
    if _paper_service is None:
        _paper_service = PaperService.from_policy()
    return _paper_service


def reset_paper_service() -> None:
    """Drop the singleton (the caller is responsible for closing it)."""
    global _paper_service
    _paper_service = None


__all__ = [
    "FetchServiceError",
    "PaperNotFoundError",
    "SourcesUnavailableError",
    "PaperService",
    "apply_filters",
    "paper_cache_key",
    "citations_cache_key",
    "search_cache_key",
    "get_paper_service",
    "reset_paper_service",
]
