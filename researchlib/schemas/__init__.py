from researchlib.schemas.papers import (
    Author,
    CitationEdge,
    CitationNetwork,
    Paper,
    SearchFilters,
    SearchResult,
    normalize_doi,
)

__all__ = [
    "Author",
    "CitationEdge",
    "CitationNetwork",
    "Paper",
    "SearchFilters",
    "SearchResult",
    "normalize_doi",
]
