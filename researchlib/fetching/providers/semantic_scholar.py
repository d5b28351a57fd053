"""
Semantic Scholar paper provider with API-key auth and rate limiting.

Graph API v1: search, single-paper lookup (native paperId, DOI, arXiv and
PubMed ids), citations and references, open-access PDF links.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from researchlib.fetching.identifiers import ARXIV, DOI, PUBMED, S2, PaperIdentifier
from researchlib.fetching.providers.base import (
    CITATIONS,
    LOOKUP,
    PDF,
    SEARCH,
    BaseFetchProvider,
    CitationSet,
    MalformedRecord,
    PaperNotFound,
    ProviderUnavailable,
    SearchBatch,
    safe_int,
    safe_year,
)
from researchlib.schemas.papers import Author, Paper

logger = logging.getLogger(__name__)

PAPER_FIELDS = (
    "paperId,title,abstract,authors,year,venue,publicationDate,citationCount,"
    "referenceCount,openAccessPdf,isOpenAccess,externalIds,fieldsOfStudy"
)
CITATION_FIELDS = "paperId,title,year,venue,authors,citationCount,externalIds,openAccessPdf"

# Graph API lookup prefixes per identifier kind
_REF_PREFIX = {S2: "", DOI: "DOI:", ARXIV: "ARXIV:", PUBMED: "PMID:"}


class SemanticScholarProvider(BaseFetchProvider):
    """
    Semantic Scholar provider with API Key auth and strict rate limiting.

    A rejected API key (403) is retried once without the key.
    """

    name = "semantic_scholar"
    capabilities = frozenset({SEARCH, LOOKUP, CITATIONS, PDF})
    native_identifiers = (S2, DOI, ARXIV, PUBMED)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.api_key = (self.credentials.get("api_key") or "").strip() or None
        self.base_url = self.credentials.get("base_url", "https://api.semanticscholar.org/graph/v1").rstrip("/")

    async def _call(self, path: str, params: Dict[str, Any]) -> Any:
        headers = {"x-api-key": self.api_key} if self.api_key else None
        try:
            return await self._get_object(f"{self.base_url}{path}", params=params, headers=headers)
        except ProviderUnavailable as e:
            if not self.api_key or e.status != 403:
                raise
            logger.warning("SemanticScholarProvider: API Key rejected (403). Retrying WITHOUT API key (Graceful Degradation).")
            return await self._get_object(f"{self.base_url}{path}", params=params)

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        """
        Fetch papers from Semantic Scholar.

        Args:
            query: Search string.
            limit: Max results.
            offset: Result offset for pagination.
        """
        if not query:
            return SearchBatch()

        logger.info(f"SemanticScholarProvider: fetching '{query}' (limit={limit}, offset={offset})")
        data = await self._call("/paper/search", {
            "query": query,
            "limit": limit,
            "offset": offset,
            "fields": PAPER_FIELDS,
        })
        papers = self._parse_records(data.get("data"), self._normalize)
        total = safe_int(data.get("total"), len(papers))
        logger.info(f"SemanticScholarProvider fetched {len(papers)}/{limit} papers for query: {query}")
        return SearchBatch(papers=papers, total=total)

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        data = await self._call(f"/paper/{_REF_PREFIX[ident.kind]}{ident.value}", {"fields": PAPER_FIELDS})
        try:
            return self._normalize(data)
        except (MalformedRecord, KeyError, TypeError, ValueError) as e:
            raise PaperNotFound(f"semantic_scholar: unusable record for {ident}: {e}") from e

    async def fetch_citations(self, paper_id: str, doi: Optional[str] = None) -> CitationSet:
        ident = self.resolve_identifier(paper_id, doi)
        if ident is None:
            raise PaperNotFound(f"semantic_scholar cannot resolve '{paper_id}'")

        ref = f"{_REF_PREFIX[ident.kind]}{ident.value}"
        params = {"fields": CITATION_FIELDS, "limit": self.config.citation_limit}
        citations_data, references_data = await asyncio.gather(
            self._call(f"/paper/{ref}/citations", params),
            self._call(f"/paper/{ref}/references", params),
        )

        citing = self._parse_records(
            citations_data.get("data"), lambda item: self._normalize(item["citingPaper"])
        )
        cited = self._parse_records(
            references_data.get("data"), lambda item: self._normalize(item["citedPaper"])
        )
        logger.info(f"SemanticScholarProvider: {len(citing)} citing / {len(cited)} cited for {ref}")
        return CitationSet(citing=citing, cited=cited)

    def _normalize(self, item: Dict[str, Any]) -> Paper:
        """Normalize Semantic Scholar output to the canonical Paper."""
        paper_id = item.get("paperId")
        if not paper_id:
            raise MalformedRecord("Semantic Scholar record without paperId")
        title = self._require_title(item.get("title"))

        external_data = item.get("externalIds") or {}
        external_ids = {S2: paper_id}
        if external_data.get("DOI"):
            external_ids[DOI] = external_data["DOI"]
        if external_data.get("ArXiv"):
            external_ids[ARXIV] = external_data["ArXiv"]
        if external_data.get("PubMed"):
            external_ids[PUBMED] = str(external_data["PubMed"])

        authors = [
            Author(id=a.get("authorId"), name=a["name"])
            for a in item.get("authors") or []
            if a.get("name")
        ]

        # Empty PDF strings are normalized to None by the Paper model
        pdf_url = None
        open_access_pdf = item.get("openAccessPdf")
        if isinstance(open_access_pdf, dict):
            pdf_url = open_access_pdf.get("url")

        return Paper(
            id=paper_id,
            title=title,
            authors=authors,
            abstract=item.get("abstract"),
            publication_date=item.get("publicationDate"),
            year=safe_year(item.get("year")),
            venue=item.get("venue"),
            citation_count=safe_int(item.get("citationCount"), 0) or 0,
            reference_count=safe_int(item.get("referenceCount"), 0) or 0,
            fields_of_study=item.get("fieldsOfStudy") or [],
            doi=external_data.get("DOI"),
            pdf_url=pdf_url,
            source=self.name,
            open_access=bool(item.get("isOpenAccess") or pdf_url),
            external_ids=external_ids,
        )
