"""
Shared helpers: canonical paper factory, scripted stub adapters and a fake clock.
"""
import asyncio
from typing import Dict, List, Optional

import pytest

from researchlib.fetching.identifiers import PaperIdentifier
from researchlib.fetching.providers.base import (
    CITATIONS,
    LOOKUP,
    PDF,
    SEARCH,
    BaseFetchProvider,
    CitationSet,
    PaperNotFound,
    ProviderConfig,
    SearchBatch,
)
from researchlib.schemas.papers import Author, Paper


def make_paper(
    id: str = "p1",
    title: str = "Attention Is All You Need",
    authors: Optional[List[str]] = None,
    source: str = "openalex",
    **kwargs,
) -> Paper:
    if authors is None:
        authors = ["Ashish Vaswani", "Noam Shazeer"]
    return Paper(
        id=id,
        title=title,
        authors=[Author(name=name) for name in authors],
        source=source,
        **kwargs,
    )


class StubProvider(BaseFetchProvider):
    """
    Scripted adapter. Each operation returns its canned value, raises its
    canned error, or sleeps ``delay`` seconds first. Calls are counted.
    """

    def __init__(
        self,
        name: str,
        capabilities=(SEARCH, LOOKUP, CITATIONS, PDF),
        search_result: Optional[SearchBatch] = None,
        paper: Optional[Paper] = None,
        citations: Optional[CitationSet] = None,
        pdf_url: Optional[str] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.capabilities = frozenset(capabilities)
        super().__init__(client=None, config=ProviderConfig(name, rate_limit_wait=0.0))
        self.search_result = search_result or SearchBatch()
        self.paper = paper
        self.citations = citations or CitationSet()
        self.pdf_url = pdf_url
        self.error = error
        self.delay = delay
        self.calls: Dict[str, int] = {"search": 0, "lookup": 0, "citations": 0, "pdf": 0}

    def resolve_identifier(self, paper_id, doi=None, external_ids=None):
        if not paper_id and not doi:
            return None
        return PaperIdentifier("stub", paper_id or doi)

    async def _act(self, operation: str):
        self.calls[operation] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        await self._act("search")
        return self.search_result

    async def fetch_by_id(self, paper_id: str, doi: Optional[str] = None) -> Paper:
        await self._act("lookup")
        if self.paper is None:
            raise PaperNotFound(f"{self.name} does not know {paper_id}")
        return self.paper

    async def fetch_citations(self, paper_id: str, doi: Optional[str] = None) -> CitationSet:
        await self._act("citations")
        return self.citations

    async def find_pdf_url(self, paper: Paper) -> Optional[str]:
        await self._act("pdf")
        return self.pdf_url


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
