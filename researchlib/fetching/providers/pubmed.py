"""
PubMed paper provider.

Two-step fetch over E-utilities: esearch for PMIDs, then esummary for
metadata. Lookup resolves PMIDs directly and DOIs through an esearch
``[doi]`` term.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from researchlib.fetching.identifiers import DOI, PUBMED, PaperIdentifier
from researchlib.fetching.providers.base import (
    LOOKUP,
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

_SORT_DATE = re.compile(r"^(\d{4})/(\d{2})/(\d{2})")


def _extract_doi(record: Dict[str, Any]) -> Optional[str]:
    for article_id in record.get("articleids") or []:
        if article_id.get("idtype") == "doi" and article_id.get("value"):
            return article_id["value"]
    elocation = record.get("elocationid") or ""
    if elocation.lower().startswith("doi:"):
        return elocation[4:].strip()
    return None


class PubMedProvider(BaseFetchProvider):
    """Paper provider for PubMed."""

    name = "pubmed"
    capabilities = frozenset({SEARCH, LOOKUP})
    native_identifiers = (PUBMED, DOI)

    def __init__(self, client, credentials: Optional[Dict[str, Any]] = None, config=None):
        super().__init__(client, credentials, config)
        self.base_url = self.credentials.get(
            "base_url", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
        ).rstrip("/")

    async def _esearch(self, term: str, limit: int, offset: int = 0) -> Dict[str, Any]:
        data = await self._get_object(f"{self.base_url}/esearch.fcgi", params={
            "db": "pubmed",
            "term": term,
            "retmode": "json",
            "retmax": limit,
            "retstart": offset,
        })
        return data.get("esearchresult") or {}

    async def _esummary(self, pmids: List[str]) -> List[Paper]:
        data = await self._get_object(f"{self.base_url}/esummary.fcgi", params={
            "db": "pubmed",
            "id": ",".join(pmids),
            "retmode": "json",
        })
        result = data.get("result") or {}
        records = [result[uid] for uid in result.get("uids") or [] if isinstance(result.get(uid), dict)]
        return self._parse_records(records, self._normalize)

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        """
        Fetch papers from PubMed.

        Step 1 searches PMIDs with the limit enforced at the API level,
        step 2 fetches summaries for those PMIDs.
        """
        if not query:
            logger.warning("PubMedProvider: no query provided")
            return SearchBatch()

        search_result = await self._esearch(query, limit, offset)
        pmids = (search_result.get("idlist") or [])[:limit]
        total = safe_int(search_result.get("count"), len(pmids))
        if not pmids:
            logger.info(f"PubMedProvider found 0 PMIDs for query: {query}")
            return SearchBatch(total=total)

        papers = await self._esummary(pmids)
        logger.info(f"PubMedProvider fetched {len(papers)}/{limit} papers for query: {query}")
        return SearchBatch(papers=papers, total=total)

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        if ident.kind == PUBMED:
            pmids = [ident.value]
        else:
            pmids = (await self._esearch(f"{ident.value}[doi]", 1)).get("idlist") or []
        if not pmids:
            raise PaperNotFound(f"pubmed: no PMID for {ident}")

        papers = await self._esummary(pmids[:1])
        if not papers:
            raise PaperNotFound(f"pubmed: no summary for {ident}")
        return papers[0]

    def _normalize(self, record: Dict[str, Any]) -> Paper:
        """Normalize an esummary record to the canonical Paper."""
        if record.get("error"):
            raise MalformedRecord(f"PubMed summary error: {record['error']}")
        pmid = record.get("uid")
        if not pmid:
            raise MalformedRecord("PubMed record without uid")
        title = self._require_title(record.get("title"))

        authors = [
            Author(name=a["name"])
            for a in record.get("authors") or []
            if a.get("name") and a.get("authtype", "Author") == "Author"
        ]

        publication_date = None
        match = _SORT_DATE.match(record.get("sortpubdate") or "")
        if match:
            publication_date = "-".join(match.groups())
        year = None
        if publication_date is None:
            pubdate = (record.get("pubdate") or "").split()
            year = safe_year(pubdate[0]) if pubdate else None

        doi = _extract_doi(record)
        external_ids = {PUBMED: str(pmid)}
        if doi:
            external_ids[DOI] = doi

        return Paper(
            id=f"pubmed:{pmid}",
            title=title.rstrip("."),
            authors=authors,
            publication_date=publication_date,
            year=year,
            venue=record.get("fulljournalname") or record.get("source"),
            citation_count=safe_int(record.get("pmcrefcount"), 0) or 0,
            doi=doi,
            source=self.name,
            external_ids=external_ids,
        )
