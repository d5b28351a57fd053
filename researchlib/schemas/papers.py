"""
Canonical paper shapes shared by every component.

Source adapters translate their native payloads into these models; nothing
source-specific crosses the adapter boundary. Models are frozen: merging and
enrichment produce copies via ``model_copy(update=...)`` so values held by the
resource cache are never mutated in place.
"""
import re
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_DOI_PREFIXES = ("https://doi.org/", "http://doi.org/", "https://dx.doi.org/", "http://dx.doi.org/", "doi:")
_DATE_PATTERN = re.compile(r"^(\d{4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?")


def normalize_doi(doi: Optional[str]) -> Optional[str]:
    """Lowercase a DOI and strip resolver prefixes. Empty values become None."""
    if not doi:
        return None
    value = doi.strip()
    lowered = value.lower()
    for prefix in _DOI_PREFIXES:
        if lowered.startswith(prefix):
            value = value[len(prefix):]
            break
    value = value.strip().lower()
    return value or None


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    affiliations: List[str] = Field(default_factory=list)
    h_index: Optional[int] = None


class Paper(BaseModel):
    """A bibliographic record in canonical form."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    authors: List[Author] = Field(default_factory=list)
    abstract: Optional[str] = None
    publication_date: Optional[str] = None
    year: Optional[int] = None
    venue: Optional[str] = None
    citation_count: int = Field(default=0, ge=0)
    reference_count: int = Field(default=0, ge=0)
    fields_of_study: List[str] = Field(default_factory=list)
    doi: Optional[str] = None
    pdf_url: Optional[str] = None
    source: str
    open_access: bool = False
    external_ids: Dict[str, str] = Field(default_factory=dict)

    @field_validator("doi", mode="before")
    @classmethod
    def _normalize_doi(cls, v):
        return normalize_doi(v)

    @field_validator("abstract", "venue", "pdf_url", "publication_date", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("fields_of_study", mode="before")
    @classmethod
    def _dedupe_fields(cls, v):
        if not v:
            return []
        seen = set()
        fields = []
        for field in v:
            if not field:
                continue
            key = str(field).strip().lower()
            if key and key not in seen:
                seen.add(key)
                fields.append(str(field).strip())
        return fields

    @model_validator(mode="before")
    @classmethod
    def _derive_year(cls, data):
        if isinstance(data, dict) and data.get("year") is None and data.get("publication_date"):
            match = _DATE_PATTERN.match(str(data["publication_date"]))
            if match:
                data = {**data, "year": int(match.group(1))}
        return data

    @property
    def sort_date(self) -> Tuple[int, int, int]:
        """(year, month, day) for recency ordering; unknown parts sort as 0."""
        if self.publication_date:
            match = _DATE_PATTERN.match(self.publication_date)
            if match:
                return (
                    int(match.group(1)),
                    int(match.group(2) or 0),
                    int(match.group(3) or 0),
                )
        return (self.year or 0, 0, 0)


class CitationEdge(BaseModel):
    """Directed edge: ``citing_paper_id`` cites ``cited_paper_id``."""

    model_config = ConfigDict(frozen=True)

    citing_paper_id: str
    cited_paper_id: str
    context: Optional[str] = None

    @model_validator(mode="after")
    def _reject_self_citation(self):
        if self.citing_paper_id == self.cited_paper_id:
            raise ValueError(f"Self-citation edge for paper '{self.citing_paper_id}'")
        return self


class CitationNetwork(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: Paper
    citing: List[Paper] = Field(default_factory=list)
    cited: List[Paper] = Field(default_factory=list)
    edges: List[CitationEdge] = Field(default_factory=list)
    total_citing: int = 0
    total_cited: int = 0


class SearchFilters(BaseModel):
    """Post-merge filters applied to free-text search results."""

    model_config = ConfigDict(frozen=True)

    year_from: Optional[int] = None
    year_to: Optional[int] = None
    min_citations: Optional[int] = None
    open_access_only: bool = False
    author: Optional[str] = None
    venue: Optional[str] = None

    def cache_token(self) -> str:
        return "|".join(f"{k}={v}" for k, v in sorted(self.model_dump().items()))


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    papers: List[Paper] = Field(default_factory=list)
    total_results: int = 0
    current_page: int = 1
    has_more: bool = False
