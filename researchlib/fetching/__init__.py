"""
Fetching package: source adapters and the components composed on top of them.

Aggregator (fan-out search and lookup), PdfEnhancer (sequential PDF
fallback), CitationNetworkBuilder (one-hop network) and the cached
PaperService in front of all three.
"""
from researchlib.fetching.aggregator import AggregatedResult, Aggregator
from researchlib.fetching.citations import CitationNetworkBuilder
from researchlib.fetching.errors import FetchServiceError, PaperNotFoundError, SourcesUnavailableError
from researchlib.fetching.pdf_enhancer import PdfEnhancer
from researchlib.fetching.service import PaperService, get_paper_service

__all__ = [
    "AggregatedResult",
    "Aggregator",
    "CitationNetworkBuilder",
    "FetchServiceError",
    "PaperNotFoundError",
    "SourcesUnavailableError",
    "PdfEnhancer",
    "PaperService",
    "get_paper_service",
]
