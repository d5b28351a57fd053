"""
OpenAlex paper provider.

Fully open API, polite pool via mailto. Supports search, lookup by OpenAlex
work id / DOI / PMID, citations (``cites:`` filter) and references
(``referenced_works``), and open-access PDF links.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from researchlib.fetching.identifiers import DOI, OPENALEX, PUBMED, PaperIdentifier
from researchlib.fetching.providers.base import (
    CITATIONS,
    LOOKUP,
    PDF,
    SEARCH,
    BaseFetchProvider,
    CitationSet,
    MalformedRecord,
    PaperNotFound,
    SearchBatch,
    safe_int,
    safe_year,
)
from researchlib.schemas.papers import Author, Paper

logger = logging.getLogger(__name__)

OPENALEX_PREFIX = "https://openalex.org/"
PUBMED_PREFIX = "https://pubmed.ncbi.nlm.nih.gov/"
# OpenAlex caps OR-filters at 50 values
_MAX_OR_VALUES = 50


def _strip_prefix(value: Optional[str], prefix: str) -> Optional[str]:
    if not value:
        return None
    value = str(value)
    return value[len(prefix):].strip("/") if value.startswith(prefix) else value


def reconstruct_abstract(inverted_index: Optional[Dict[str, List[int]]]) -> Optional[str]:
    """
    Reconstruct abstract from OpenAlex inverted index format.

    OpenAlex stores abstracts as {word: [positions]} for compression.
    """
    if not inverted_index or not isinstance(inverted_index, dict):
        return None
    word_positions = []
    for word, positions in inverted_index.items():
        for pos in positions or []:
            word_positions.append((pos, word))
    word_positions.sort()
    return " ".join(word for _, word in word_positions) or None


class OpenAlexProvider(BaseFetchProvider):
    """Paper provider for OpenAlex."""

    name = "openalex"
    capabilities = frozenset({SEARCH, LOOKUP, CITATIONS, PDF})
    native_identifiers = (OPENALEX, DOI, PUBMED)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.base_url = self.credentials.get("base_url", "https://api.openalex.org").rstrip("/")
        self.email = self.credentials.get("email")

    def _params(self, **extra) -> Dict[str, Any]:
        params = dict(extra)
        if self.email:
            params["mailto"] = self.email
        return params

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        if not query:
            return SearchBatch()

        data = await self._get_object(
            f"{self.base_url}/works",
            params=self._params(search=query, **{"per-page": limit, "page": offset // limit + 1}),
        )
        papers = self._parse_records(data.get("results"), self._normalize)
        total = safe_int((data.get("meta") or {}).get("count"), len(papers))
        logger.info(f"OpenAlexProvider fetched {len(papers)}/{limit} papers for query: {query}")
        return SearchBatch(papers=papers, total=total)

    async def _get_work(self, ident: PaperIdentifier) -> Dict[str, Any]:
        if ident.kind == OPENALEX:
            ref = ident.value
        elif ident.kind == DOI:
            ref = f"doi:{ident.value}"
        else:
            ref = f"pmid:{ident.value}"
        return await self._get_object(f"{self.base_url}/works/{ref}", params=self._params())

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        work = await self._get_work(ident)
        try:
            return self._normalize(work)
        except (MalformedRecord, KeyError, TypeError, ValueError) as e:
            raise PaperNotFound(f"openalex: unusable record for {ident}: {e}") from e

    async def fetch_citations(self, paper_id: str, doi: Optional[str] = None) -> CitationSet:
        ident = self.resolve_identifier(paper_id, doi)
        if ident is None:
            raise PaperNotFound(f"openalex cannot resolve '{paper_id}'")

        work = await self._get_work(ident)
        work_id = _strip_prefix(work.get("id"), OPENALEX_PREFIX)
        if not work_id:
            raise PaperNotFound(f"openalex: work without id for {ident}")

        limit = self.config.citation_limit
        referenced = [
            _strip_prefix(ref, OPENALEX_PREFIX)
            for ref in (work.get("referenced_works") or [])[:limit]
        ]
        citing, cited = await asyncio.gather(
            self._list_works(f"cites:{work_id}", limit),
            self._list_referenced(referenced),
        )
        logger.info(f"OpenAlexProvider: {len(citing)} citing / {len(cited)} cited for {work_id}")
        return CitationSet(citing=citing, cited=cited)

    async def _list_works(self, filter_expr: str, limit: int) -> List[Paper]:
        data = await self._get_object(
            f"{self.base_url}/works",
            params=self._params(filter=filter_expr, **{"per-page": min(limit, 200)}),
        )
        return self._parse_records(data.get("results"), self._normalize)

    async def _list_referenced(self, work_ids: List[str]) -> List[Paper]:
        work_ids = [w for w in work_ids if w]
        if not work_ids:
            return []
        chunks = [work_ids[i:i + _MAX_OR_VALUES] for i in range(0, len(work_ids), _MAX_OR_VALUES)]
        results = await asyncio.gather(*(
            self._list_works(f"openalex_id:{'|'.join(chunk)}", len(chunk)) for chunk in chunks
        ))
        return [paper for chunk in results for paper in chunk]

    def _normalize(self, item: Dict[str, Any]) -> Paper:
        """Normalize an OpenAlex work to the canonical Paper."""
        work_id = _strip_prefix(item.get("id"), OPENALEX_PREFIX)
        if not work_id:
            raise MalformedRecord("OpenAlex work without id")
        title = self._require_title(item.get("title") or item.get("display_name"))

        authors = []
        for authorship in item.get("authorships") or []:
            author = authorship.get("author") or {}
            if not author.get("display_name"):
                continue
            authors.append(Author(
                id=_strip_prefix(author.get("id"), OPENALEX_PREFIX),
                name=author["display_name"],
                affiliations=[
                    inst["display_name"]
                    for inst in authorship.get("institutions") or []
                    if inst.get("display_name")
                ],
            ))

        venue = None
        primary_location = item.get("primary_location") or {}
        if primary_location.get("source"):
            venue = primary_location["source"].get("display_name")

        open_access = item.get("open_access") or {}
        best_oa = item.get("best_oa_location") or {}
        pdf_url = best_oa.get("pdf_url") or primary_location.get("pdf_url") or open_access.get("oa_url")

        topics = item.get("topics") or item.get("concepts") or []
        fields = [t["display_name"] for t in topics[:5] if t.get("display_name")]

        doi = _strip_prefix(item.get("doi"), "https://doi.org/")
        ids = item.get("ids") or {}
        external_ids = {OPENALEX: work_id}
        if doi:
            external_ids[DOI] = doi
        pmid = _strip_prefix(ids.get("pmid"), PUBMED_PREFIX)
        if pmid:
            external_ids[PUBMED] = pmid

        referenced = item.get("referenced_works")
        reference_count = item.get("referenced_works_count")
        if reference_count is None and isinstance(referenced, list):
            reference_count = len(referenced)

        return Paper(
            id=work_id,
            title=title,
            authors=authors,
            abstract=reconstruct_abstract(item.get("abstract_inverted_index")),
            publication_date=item.get("publication_date"),
            year=safe_year(item.get("publication_year")),
            venue=venue,
            citation_count=safe_int(item.get("cited_by_count"), 0) or 0,
            reference_count=safe_int(reference_count, 0) or 0,
            fields_of_study=fields,
            doi=doi,
            pdf_url=pdf_url,
            source=self.name,
            open_access=bool(open_access.get("is_oa")),
            external_ids=external_ids,
        )
