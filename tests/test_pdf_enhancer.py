import asyncio

from conftest import StubProvider, make_paper

from researchlib.fetching.pdf_enhancer import PdfEnhancer
from researchlib.fetching.providers.base import PDF, SEARCH, ProviderUnavailable


def test_stops_at_first_source_with_a_pdf() -> None:
    empty = StubProvider("unpaywall", pdf_url=None)
    hit = StubProvider("arxiv", pdf_url="https://arxiv.org/pdf/1706.03762.pdf")
    never = StubProvider("core", pdf_url="https://core.ac.uk/download/1.pdf")
    enhancer = PdfEnhancer([empty, hit, never], timeout=0.5)
    paper = make_paper()

    enhanced = asyncio.run(enhancer.enhance_with_pdf(paper))

    assert enhanced.pdf_url == "https://arxiv.org/pdf/1706.03762.pdf"
    assert enhanced.open_access is True
    assert paper.pdf_url is None
    assert (empty.calls["pdf"], hit.calls["pdf"], never.calls["pdf"]) == (1, 1, 0)


def test_failures_and_timeouts_fall_through_in_order() -> None:
    down = StubProvider("unpaywall", error=ProviderUnavailable("503"))
    slow = StubProvider("arxiv", pdf_url="https://slow.example/a.pdf", delay=1.0)
    blank = StubProvider("core", pdf_url="   ")
    last = StubProvider("openalex", pdf_url="https://oa.example/a.pdf")
    enhancer = PdfEnhancer([down, slow, blank, last], timeout=0.05)

    enhanced = asyncio.run(enhancer.enhance_with_pdf(make_paper()))

    assert enhanced.pdf_url == "https://oa.example/a.pdf"


def test_total_failure_returns_input_unchanged() -> None:
    paper = make_paper()
    enhancer = PdfEnhancer(
        [StubProvider("a", error=RuntimeError("boom")), StubProvider("b", error=ProviderUnavailable("x"))],
        timeout=0.05,
    )
    assert asyncio.run(enhancer.enhance_with_pdf(paper)) is paper


def test_existing_pdf_is_kept_without_calls() -> None:
    source = StubProvider("a", pdf_url="https://other.example/x.pdf")
    paper = make_paper(pdf_url="https://have.example/x.pdf")

    assert asyncio.run(PdfEnhancer([source], timeout=0.1).enhance_with_pdf(paper)) is paper
    assert source.calls["pdf"] == 0


def test_only_pdf_capable_sources_are_tried() -> None:
    enhancer = PdfEnhancer([
        StubProvider("search_only", capabilities=(SEARCH,), pdf_url="https://x/1.pdf"),
        StubProvider("pdf", capabilities=(PDF,), pdf_url="https://x/2.pdf"),
    ])
    assert [p.name for p in enhancer.providers] == ["pdf"]
