"""
CORE paper provider (open-access aggregator, API v3).

Requires a bearer API key; without one the provider reports itself
unavailable instead of calling upstream.
"""
import logging
from typing import Any, Dict, List, Optional

from researchlib.fetching.identifiers import CORE, DOI, PaperIdentifier
from researchlib.fetching.providers.base import (
    LOOKUP,
    PDF,
    SEARCH,
    BaseFetchProvider,
    MalformedRecord,
    PaperNotFound,
    ProviderUnavailable,
    SearchBatch,
    safe_int,
    safe_year,
)
from researchlib.schemas.papers import Author, Paper

logger = logging.getLogger(__name__)


class CoreProvider(BaseFetchProvider):
    """Paper provider for CORE."""

    name = "core"
    capabilities = frozenset({SEARCH, LOOKUP, PDF})
    native_identifiers = (CORE, DOI)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.api_key = (self.credentials.get("api_key") or "").strip() or None
        self.base_url = self.credentials.get("base_url", "https://api.core.ac.uk/v3").rstrip("/")

    async def _call(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderUnavailable("core: no API key configured")
        return await self._get_object(
            f"{self.base_url}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        if not query:
            return SearchBatch()

        data = await self._call("/search/works", {"q": query, "limit": limit, "offset": offset})
        papers = self._parse_records(data.get("results"), self._normalize)
        total = safe_int(data.get("totalHits"), len(papers))
        logger.info(f"CoreProvider fetched {len(papers)}/{limit} papers for query: {query}")
        return SearchBatch(papers=papers, total=total)

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        if ident.kind == CORE:
            item = await self._call(f"/works/{ident.value}")
        else:
            data = await self._call("/search/works", {"q": f'doi:"{ident.value}"', "limit": 1})
            results = data.get("results") or []
            if not results:
                raise PaperNotFound(f"core: no work for {ident}")
            item = results[0]
        try:
            return self._normalize(item)
        except (MalformedRecord, KeyError, TypeError, ValueError) as e:
            raise PaperNotFound(f"core: unusable record for {ident}: {e}") from e

    @staticmethod
    def _fields(item: Dict[str, Any]) -> List[str]:
        fields = [item["fieldOfStudy"]] if item.get("fieldOfStudy") else []
        for topic in item.get("topics") or []:
            fields.append(topic.get("name") if isinstance(topic, dict) else topic)
        return [f for f in fields if isinstance(f, str)]

    def _normalize(self, item: Dict[str, Any]) -> Paper:
        """Normalize a CORE work to the canonical Paper."""
        core_id = item.get("id")
        if core_id is None:
            raise MalformedRecord("CORE work without id")
        title = self._require_title(item.get("title"))

        authors = []
        for author in item.get("authors") or []:
            # v3 returns {"name": ...}; older payloads return bare strings
            author_name = author.get("name") if isinstance(author, dict) else author
            if author_name:
                authors.append(Author(name=author_name))

        journals = item.get("journals") or []
        venue = journals[0].get("title") if journals and isinstance(journals[0], dict) else None

        doi = item.get("doi")
        external_ids = {CORE: str(core_id)}
        if doi:
            external_ids[DOI] = doi

        return Paper(
            id=f"core:{core_id}",
            title=title,
            authors=authors,
            abstract=item.get("abstract"),
            publication_date=(item.get("publishedDate") or "")[:10] or None,
            year=safe_year(item.get("yearPublished")),
            venue=venue or item.get("publisher"),
            citation_count=safe_int(item.get("citationCount"), 0) or 0,
            fields_of_study=self._fields(item),
            doi=doi,
            pdf_url=item.get("downloadUrl"),
            source=self.name,
            open_access=True,
            external_ids=external_ids,
        )
