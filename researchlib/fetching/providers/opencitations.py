"""
OpenCitations COCI provider.

COCI stores DOI-to-DOI citation links only. Citing and cited DOIs are
fetched first, then hydrated into papers through the ``metadata``
operation in batches.
"""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from researchlib.fetching.identifiers import DOI
from researchlib.fetching.providers.base import (
    CITATIONS,
    BaseFetchProvider,
    CitationSet,
    MalformedRecord,
    PaperNotFound,
    safe_int,
)
from researchlib.schemas.papers import Author, Paper, normalize_doi

logger = logging.getLogger(__name__)

_DOI_IN_TEXT = re.compile(r"(10\.\d{4,9}/\S+)", re.IGNORECASE)
METADATA_BATCH_SIZE = 20


def _doi_from_field(value: Optional[str]) -> Optional[str]:
    """COCI v1 returns bare DOIs; newer indexes prefix them (``coci => 10.x`` or ``doi:10.x``)."""
    if not value:
        return None
    match = _DOI_IN_TEXT.search(value)
    return normalize_doi(match.group(1)) if match else None


class OpenCitationsProvider(BaseFetchProvider):
    """Citation links from OpenCitations COCI."""

    name = "opencitations"
    capabilities = frozenset({CITATIONS})
    native_identifiers = (DOI,)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.base_url = self.credentials.get(
            "base_url", "https://opencitations.net/index/coci/api/v1"
        ).rstrip("/")

    async def _get_list(self, path: str) -> List[Dict[str, Any]]:
        data = await self._get_json(f"{self.base_url}{path}")
        if not isinstance(data, list):
            logger.warning(f"OpenCitationsProvider: unexpected payload for {path}")
            return []
        return [row for row in data if isinstance(row, dict)]

    async def fetch_citations(self, paper_id: str, doi: Optional[str] = None) -> CitationSet:
        ident = self.resolve_identifier(paper_id, doi)
        if ident is None:
            raise PaperNotFound(f"opencitations needs a DOI for '{paper_id}'")

        citations, references = await asyncio.gather(
            self._get_list(f"/citations/{ident.value}"),
            self._get_list(f"/references/{ident.value}"),
        )
        limit = self.config.citation_limit
        citing_dois = self._unique_dois((row.get("citing") for row in citations), limit)
        cited_dois = self._unique_dois((row.get("cited") for row in references), limit)

        citing, cited = await asyncio.gather(
            self._hydrate(citing_dois),
            self._hydrate(cited_dois),
        )
        logger.info(
            f"OpenCitationsProvider: {len(citations)} citing / {len(references)} cited links "
            f"for {ident.value}, hydrated {len(citing)}/{len(cited)}"
        )
        return CitationSet(citing=citing, cited=cited)

    @staticmethod
    def _unique_dois(values, limit: int) -> List[str]:
        dois = []
        seen = set()
        for value in values:
            doi = _doi_from_field(value)
            if doi and doi not in seen:
                seen.add(doi)
                dois.append(doi)
                if len(dois) >= limit:
                    break
        return dois

    async def _hydrate(self, dois: List[str]) -> List[Paper]:
        if not dois:
            return []
        batches = [dois[i:i + METADATA_BATCH_SIZE] for i in range(0, len(dois), METADATA_BATCH_SIZE)]
        results = await asyncio.gather(*(
            self._get_list(f"/metadata/{'__'.join(batch)}") for batch in batches
        ))
        rows = [row for batch in results for row in batch]
        return self._parse_records(rows, self._normalize)

    def _normalize(self, row: Dict[str, Any]) -> Paper:
        """Normalize a COCI metadata row to the canonical Paper."""
        doi = _doi_from_field(row.get("doi"))
        if not doi:
            raise MalformedRecord("OpenCitations metadata without DOI")
        title = self._require_title(row.get("title"))

        # "Family, Given, orcid; Family, Given"
        authors = []
        for chunk in (row.get("author") or "").split(";"):
            parts = [p.strip() for p in chunk.split(",") if p.strip()]
            parts = [p for p in parts if not re.match(r"^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$", p)]
            if parts:
                authors.append(Author(name=", ".join(parts[:2])))

        return Paper(
            id=doi,
            title=title,
            authors=authors,
            publication_date=row.get("year"),
            venue=row.get("source_title"),
            citation_count=safe_int(row.get("citation_count"), 0) or 0,
            doi=doi,
            pdf_url=row.get("oa_link"),
            source=self.name,
            open_access=bool(row.get("oa_link")),
            external_ids={DOI: doi},
        )
