"""
Unpaywall provider: legal open-access locations by DOI.

Unpaywall is a DOI-keyed index, so it only supports lookup and PDF
discovery. The polite-pool email is mandatory upstream.
"""
import logging
from typing import Any, Dict, Optional

from researchlib.fetching.identifiers import DOI, PaperIdentifier
from researchlib.fetching.providers.base import (
    LOOKUP,
    PDF,
    BaseFetchProvider,
    MalformedRecord,
    PaperNotFound,
    safe_year,
)
from researchlib.schemas.papers import Author, Paper, normalize_doi

logger = logging.getLogger(__name__)


class UnpaywallProvider(BaseFetchProvider):
    """Open-access lookup for a DOI."""

    name = "unpaywall"
    capabilities = frozenset({LOOKUP, PDF})
    native_identifiers = (DOI,)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.base_url = self.credentials.get("base_url", "https://api.unpaywall.org/v2").rstrip("/")
        self.email = self.credentials.get("email")

    async def _get_record(self, doi: str) -> Dict[str, Any]:
        return await self._get_object(f"{self.base_url}/{doi}", params={"email": self.email})

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        record = await self._get_record(ident.value)
        try:
            return self._normalize(record)
        except (MalformedRecord, KeyError, TypeError, ValueError) as e:
            raise PaperNotFound(f"unpaywall: unusable record for {ident}: {e}") from e

    async def find_pdf_url(self, paper: Paper) -> Optional[str]:
        doi = normalize_doi(paper.doi) or normalize_doi(paper.external_ids.get(DOI))
        if not doi:
            return None
        try:
            record = await self._get_record(doi)
        except PaperNotFound:
            return None
        best = record.get("best_oa_location") or {}
        pdf_url = best.get("url_for_pdf")
        if pdf_url:
            logger.debug(f"UnpaywallProvider: open-access PDF for {doi}: {pdf_url}")
        return pdf_url or None

    def _normalize(self, record: Dict[str, Any]) -> Paper:
        doi = record.get("doi")
        if not doi:
            raise MalformedRecord("Unpaywall record without DOI")
        title = self._require_title(record.get("title"))

        authors = []
        for author in record.get("z_authors") or []:
            author_name = author.get("raw_author_name") or " ".join(
                p for p in (author.get("given"), author.get("family")) if p
            )
            if author_name:
                authors.append(Author(name=author_name))

        best = record.get("best_oa_location") or {}
        return Paper(
            id=normalize_doi(doi),
            title=title,
            authors=authors,
            publication_date=record.get("published_date"),
            year=safe_year(record.get("year")),
            venue=record.get("journal_name"),
            doi=doi,
            pdf_url=best.get("url_for_pdf"),
            source=self.name,
            open_access=bool(record.get("is_oa")),
            external_ids={DOI: normalize_doi(doi)},
        )
