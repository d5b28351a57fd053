"""
ArXiv paper provider.

Fetches papers from the arXiv Atom API. Search uses ``search_query``,
lookup uses ``id_list``; every arXiv record carries a PDF link.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from researchlib.fetching.identifiers import ARXIV, DOI, PaperIdentifier, strip_arxiv_version
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
)
from researchlib.schemas.papers import Author, Paper

logger = logging.getLogger(__name__)

# arXiv uses Atom namespace plus its own and OpenSearch extensions
NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
    "opensearch": "http://a9.com/-/spec/opensearch/1.1/",
}


def _text(elem: ET.Element, path: str) -> Optional[str]:
    found = elem.find(path, NS)
    if found is None or not found.text:
        return None
    return " ".join(found.text.split())


class ArxivProvider(BaseFetchProvider):
    """Paper provider for arXiv."""

    name = "arxiv"
    capabilities = frozenset({SEARCH, LOOKUP, PDF})
    native_identifiers = (ARXIV,)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.base_url = self.credentials.get("base_url", "http://export.arxiv.org/api/query")

    async def _get_feed(self, params: Dict[str, Any]) -> ET.Element:
        response = await self._request(self.base_url, params=params, headers={"Accept": "application/atom+xml"})
        try:
            return ET.fromstring(response.content)
        except ET.ParseError as e:
            raise ProviderUnavailable(f"arxiv: XML parse error: {e}") from e

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        if not query:
            logger.warning("ArxivProvider: no query provided")
            return SearchBatch()

        root = await self._get_feed({
            "search_query": f"all:{query}",
            "start": offset,
            "max_results": limit,
            "sortBy": "relevance",
        })
        papers = self._parse_records(self._entries(root), self._normalize)[:limit]
        total = safe_int(_text(root, "opensearch:totalResults"), len(papers))
        logger.info(f"ArxivProvider fetched {len(papers)}/{limit} papers for query: {query}")
        return SearchBatch(papers=papers, total=total)

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        root = await self._get_feed({"id_list": ident.value, "max_results": 1})
        papers = self._parse_records(self._entries(root), self._normalize)
        if not papers:
            raise PaperNotFound(f"arxiv: no entry for {ident}")
        return papers[0]

    async def find_pdf_url(self, paper: Paper) -> Optional[str]:
        # arXiv PDF links are derivable from the id alone
        ident = self.resolve_identifier(paper.id, paper.doi, paper.external_ids)
        if ident is None:
            return None
        return f"https://arxiv.org/pdf/{ident.value}.pdf"

    @staticmethod
    def _entries(root: ET.Element) -> List[ET.Element]:
        # The API reports bad queries as a single entry whose id points at api/errors
        return [
            entry for entry in root.findall("atom:entry", NS)
            if "/api/errors" not in (_text(entry, "atom:id") or "")
        ]

    def _normalize(self, entry: ET.Element) -> Paper:
        """Normalize an Atom entry to the canonical Paper."""
        raw_id = _text(entry, "atom:id")
        if not raw_id:
            raise MalformedRecord("arXiv entry without id")
        versioned_id = raw_id.split("/abs/")[-1]
        arxiv_id = strip_arxiv_version(versioned_id)
        title = self._require_title(_text(entry, "atom:title"))

        authors = []
        for author in entry.findall("atom:author", NS):
            author_name = _text(author, "atom:name")
            if author_name:
                affiliation = _text(author, "arxiv:affiliation")
                authors.append(Author(name=author_name, affiliations=[affiliation] if affiliation else []))

        published = _text(entry, "atom:published")
        categories = [c.get("term") for c in entry.findall("atom:category", NS) if c.get("term")]

        doi = _text(entry, "arxiv:doi")
        external_ids = {ARXIV: arxiv_id}
        if doi:
            external_ids[DOI] = doi

        return Paper(
            id=f"arxiv:{arxiv_id}",
            title=title,
            authors=authors,
            abstract=_text(entry, "atom:summary"),
            publication_date=published[:10] if published else None,
            venue=_text(entry, "arxiv:journal_ref") or "arXiv",
            fields_of_study=categories,
            doi=doi,
            pdf_url=f"https://arxiv.org/pdf/{arxiv_id}.pdf",
            source=self.name,
            open_access=True,
            external_ids=external_ids,
        )
