"""
CrossRef paper provider.

Fetches works from the CrossRef REST API. Records are keyed by DOI, so
lookup only resolves DOIs; citation counts come from
``is-referenced-by-count``.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from researchlib.fetching.identifiers import DOI, PaperIdentifier
from researchlib.fetching.providers.base import (
    LOOKUP,
    PDF,
    SEARCH,
    BaseFetchProvider,
    MalformedRecord,
    PaperNotFound,
    SearchBatch,
    safe_int,
    safe_year,
)
from researchlib.schemas.papers import Author, Paper

logger = logging.getLogger(__name__)

_JATS_TAG = re.compile(r"<[^>]+>")


def _date_from_parts(item: Dict[str, Any]) -> Optional[str]:
    """First usable date among the CrossRef date fields, as YYYY[-MM[-DD]]."""
    for key in ("published", "published-print", "published-online", "issued", "created"):
        date_parts = (item.get(key) or {}).get("date-parts") or [[]]
        parts = [p for p in (date_parts[0] or []) if p is not None]
        if parts and safe_year(parts[0]):
            return "-".join(
                str(p) if i == 0 else f"{int(p):02d}" for i, p in enumerate(parts[:3])
            )
    return None


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return value[0] if value else None
    return value


class CrossRefProvider(BaseFetchProvider):
    """Paper provider for CrossRef."""

    name = "crossref"
    capabilities = frozenset({SEARCH, LOOKUP, PDF})
    native_identifiers = (DOI,)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.base_url = self.credentials.get("base_url", "https://api.crossref.org").rstrip("/")
        self.email = self.credentials.get("email")

    def _params(self, **extra) -> Dict[str, Any]:
        params = dict(extra)
        if self.email:
            params["mailto"] = self.email
        return params

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        """
        Fetch works from CrossRef.

        The row limit is enforced at the API level; CrossRef never returns
        more than ``rows`` items.
        """
        if not query:
            logger.warning("CrossRefProvider: no query provided")
            return SearchBatch()

        api_params = self._params(query=query, rows=limit, offset=offset)
        logger.debug(f"CrossRefProvider requesting with params: {api_params}")

        data = await self._get_object(f"{self.base_url}/works", params=api_params)
        message = data.get("message") or {}
        papers = self._parse_records(message.get("items"), self._normalize)[:limit]
        total = safe_int(message.get("total-results"), len(papers))
        logger.info(f"CrossRefProvider fetched {len(papers)}/{limit} papers for query: {query}")
        return SearchBatch(papers=papers, total=total)

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        data = await self._get_object(f"{self.base_url}/works/{ident.value}", params=self._params())
        try:
            return self._normalize(data.get("message") or {})
        except (MalformedRecord, KeyError, TypeError, ValueError) as e:
            raise PaperNotFound(f"crossref: unusable record for {ident}: {e}") from e

    def _normalize(self, item: Dict[str, Any]) -> Paper:
        """Normalize a CrossRef work to the canonical Paper."""
        doi = item.get("DOI")
        if not doi:
            raise MalformedRecord("CrossRef work without DOI")
        title = self._require_title(item.get("title"))

        authors = []
        for author in item.get("author") or []:
            author_name = author.get("name") or author.get("literal")
            if not author_name:
                author_name = " ".join(p for p in (author.get("given"), author.get("family")) if p)
            if author_name:
                authors.append(Author(
                    id=author.get("ORCID"),
                    name=author_name,
                    affiliations=[a["name"] for a in author.get("affiliation") or [] if a.get("name")],
                ))

        abstract = item.get("abstract")
        if abstract:
            abstract = " ".join(_JATS_TAG.sub(" ", abstract).split())

        pdf_url = None
        links: List[Dict[str, Any]] = item.get("link") or []
        for link in links:
            if link.get("content-type") == "application/pdf" and link.get("URL"):
                pdf_url = link["URL"]
                break

        return Paper(
            id=doi.lower(),
            title=title,
            authors=authors,
            abstract=abstract,
            publication_date=_date_from_parts(item),
            venue=_first(item.get("container-title")),
            citation_count=safe_int(item.get("is-referenced-by-count"), 0) or 0,
            reference_count=safe_int(item.get("references-count"), 0) or 0,
            fields_of_study=item.get("subject") or [],
            doi=doi,
            pdf_url=pdf_url,
            source=self.name,
            open_access=bool(item.get("license")) and pdf_url is not None,
            external_ids={DOI: doi.lower()},
        )
