import asyncio

import httpx
import pytest
from conftest import StubProvider, make_paper
from test_providers import _config, _openalex_work

from researchlib.deduplication import FingerprintConfig, MergePolicy
from researchlib.fetching.aggregator import Aggregator
from researchlib.fetching.errors import PaperNotFoundError, SourcesUnavailableError
from researchlib.fetching.providers import OpenAlexProvider
from researchlib.fetching.providers.base import LOOKUP, SEARCH, ProviderUnavailable, SearchBatch


def _policy(*names) -> MergePolicy:
    return MergePolicy(
        source_priority=list(names),
        representative_policy="citation_count",
        count_merge_policy="representative",
        fingerprint_config=FingerprintConfig("sha256"),
    )


def test_fetch_by_id_succeeds_when_one_adapter_times_out() -> None:
    paper_b = make_paper(id="P1", source="b")
    a = StubProvider("a", paper=make_paper(id="P1", source="a"), delay=5.0)
    b = StubProvider("b", paper=paper_b)
    aggregator = Aggregator([a, b], _policy("a", "b"), timeout=0.05)

    result = asyncio.run(aggregator.fetch_by_id("P1"))

    assert result is paper_b
    assert a.calls["lookup"] == 1


def test_fetch_by_id_returns_first_hit_and_cancels_the_rest() -> None:
    fast = StubProvider("fast", paper=make_paper(id="P1", source="fast"))
    slow = StubProvider("slow", paper=make_paper(id="P1", source="slow"), delay=0.5)
    aggregator = Aggregator([slow, fast], _policy("slow", "fast"), timeout=1.0)

    async def run():
        started = asyncio.get_running_loop().time()
        paper = await aggregator.fetch_by_id("P1")
        return paper, asyncio.get_running_loop().time() - started

    paper, elapsed = asyncio.run(run())
    assert paper.source == "fast"
    assert elapsed < 0.5


def test_fetch_by_id_all_not_found_is_not_found() -> None:
    aggregator = Aggregator(
        [StubProvider("a"), StubProvider("b", error=ProviderUnavailable("down"))],
        _policy("a", "b"),
        timeout=0.1,
    )
    with pytest.raises(PaperNotFoundError):
        asyncio.run(aggregator.fetch_by_id("P404"))


def test_fetch_by_id_all_unavailable_is_unavailable() -> None:
    aggregator = Aggregator(
        [
            StubProvider("a", error=ProviderUnavailable("rate limited", status=429)),
            StubProvider("b", paper=make_paper(), delay=1.0),
        ],
        _policy("a", "b"),
        timeout=0.05,
    )
    with pytest.raises(SourcesUnavailableError):
        asyncio.run(aggregator.fetch_by_id("P1"))


def test_fetch_by_id_skips_adapters_without_lookup() -> None:
    search_only = StubProvider("s", capabilities=(SEARCH,), paper=make_paper(source="s"))
    aggregator = Aggregator([search_only], _policy("s"), timeout=0.1)
    with pytest.raises(PaperNotFoundError):
        asyncio.run(aggregator.fetch_by_id("P1"))
    assert search_only.calls["lookup"] == 0


def test_search_merges_and_ranks_across_adapters() -> None:
    a = StubProvider("a", search_result=SearchBatch(
        papers=[
            make_paper(id="a1", source="a", doi="10.1/x", citation_count=10),
            make_paper(id="a2", source="a", title="Second", citation_count=500),
        ],
        total=40,
    ))
    b = StubProvider("b", search_result=SearchBatch(
        papers=[make_paper(id="b1", source="b", doi="10.1/X", abstract="text", citation_count=20)],
        total=15,
    ))
    aggregator = Aggregator([a, b], _policy("a", "b"), timeout=1.0)

    result = asyncio.run(aggregator.search_all_sources("transformer attention", limit=10))

    assert [p.id for p in result.papers] == ["a2", "b1"]
    assert result.papers[1].abstract == "text"
    assert result.total_results == 55
    assert result.sources_ok == ["a", "b"]


def test_search_partial_results_when_an_adapter_fails() -> None:
    ok = StubProvider("ok", search_result=SearchBatch(papers=[make_paper(id="x", source="ok")], total=1))
    down = StubProvider("down", error=ProviderUnavailable("503"))
    slow = StubProvider("slow", search_result=SearchBatch(papers=[make_paper(id="y")], total=1), delay=1.0)
    broken = StubProvider("broken", error=KeyError("unexpected"))
    aggregator = Aggregator([ok, down, slow, broken], _policy("ok"), timeout=0.05)

    result = asyncio.run(aggregator.search_all_sources("q", limit=10))

    assert [p.id for p in result.papers] == ["x"]
    assert result.sources_failed == ["down", "slow", "broken"]


def test_search_all_adapters_failing_raises_unavailable() -> None:
    aggregator = Aggregator(
        [StubProvider("a", error=ProviderUnavailable("503")), StubProvider("b", delay=1.0)],
        _policy("a", "b"),
        timeout=0.05,
    )
    with pytest.raises(SourcesUnavailableError):
        asyncio.run(aggregator.search_all_sources("q", limit=10))


def test_search_only_uses_search_capable_adapters() -> None:
    lookup_only = StubProvider("l", capabilities=(LOOKUP,))
    searcher = StubProvider("s", search_result=SearchBatch(papers=[make_paper(source="s")], total=1))
    aggregator = Aggregator([lookup_only, searcher], _policy("s", "l"), timeout=1.0)

    result = asyncio.run(aggregator.search_all_sources("q", limit=5))

    assert len(result.papers) == 1
    assert lookup_only.calls["search"] == 0


def test_fetch_by_id_resolves_unrecognized_ids_by_search() -> None:
    best = make_paper(id="W1", source="s", citation_count=90000)
    other = make_paper(id="W2", title="Attention Is Not Explanation", source="s", citation_count=10)
    search_only = StubProvider("s", capabilities=(SEARCH,), search_result=SearchBatch(papers=[other, best], total=2))
    aggregator = Aggregator([search_only], _policy("s"), timeout=0.1)

    paper = asyncio.run(aggregator.fetch_by_id("Attention Is All You Need"))

    assert paper.id == "W1"
    assert search_only.calls["search"] == 1
    assert search_only.calls["lookup"] == 0


def test_fetch_by_id_with_unresolvable_doi_hint_does_not_search() -> None:
    search_only = StubProvider("s", capabilities=(SEARCH,), search_result=SearchBatch(papers=[make_paper(source="s")], total=1))
    aggregator = Aggregator([search_only], _policy("s"), timeout=0.1)

    with pytest.raises(PaperNotFoundError):
        asyncio.run(aggregator.fetch_by_id("some title", doi="10.1000/xyz"))
    assert search_only.calls["search"] == 0


def test_fetch_by_id_search_fallback_with_sources_down_is_unavailable() -> None:
    down = StubProvider("s", capabilities=(SEARCH,), error=ProviderUnavailable("503"))
    aggregator = Aggregator([down], _policy("s"), timeout=0.1)

    with pytest.raises(SourcesUnavailableError):
        asyncio.run(aggregator.fetch_by_id("Attention Is All You Need"))


def test_fetch_by_title_searches_real_adapters() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"meta": {"count": 1}, "results": [_openalex_work()]})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            openalex = OpenAlexProvider(client, {}, _config("openalex"))
            aggregator = Aggregator([openalex], _policy("openalex"), timeout=1.0)
            return await aggregator.fetch_by_id("Attention Is All You Need")

    paper = asyncio.run(run())

    assert paper.id == "W2963403868"
    assert paths == ["/works"]
