import asyncio

from conftest import StubProvider, make_paper

from researchlib.deduplication import FingerprintConfig, MergePolicy
from researchlib.fetching.citations import CitationNetworkBuilder
from researchlib.fetching.providers.base import CitationSet, PaperNotFound, ProviderUnavailable

ROOT = make_paper(id="root", doi="10.1/root", year=2017, citation_count=1000)


def _builder(providers, **kwargs) -> CitationNetworkBuilder:
    policy = MergePolicy(
        source_priority=["a", "b"],
        representative_policy="citation_count",
        count_merge_policy="representative",
        fingerprint_config=FingerprintConfig("sha256"),
    )
    options = {"max_citing": 50, "max_cited": 50, "timeout": 0.5}
    options.update(kwargs)
    return CitationNetworkBuilder(providers, policy, **options)


def test_all_sources_unavailable_yields_root_with_empty_sets() -> None:
    builder = _builder([
        StubProvider("a", error=ProviderUnavailable("503")),
        StubProvider("b", delay=1.0),
    ], timeout=0.05)

    network = asyncio.run(builder.build_network(ROOT))

    assert network.root == ROOT
    assert network.citing == []
    assert network.cited == []
    assert network.edges == []


def test_citing_and_cited_sets_are_merged_independently() -> None:
    a = StubProvider("a", citations=CitationSet(
        citing=[make_paper(id="c1", title="Citer One", doi="10.1/c1", citation_count=5, source="a")],
        cited=[make_paper(id="r1", title="Reference One", doi="10.1/r1", source="a")],
    ))
    b = StubProvider("b", citations=CitationSet(
        citing=[
            make_paper(id="c1b", title="Citer One", doi="10.1/C1", citation_count=7, source="b"),
            make_paper(id="c2", title="Citer Two", doi="10.1/c2", citation_count=1, source="b"),
        ],
    ))

    network = asyncio.run(_builder([a, b]).build_network(ROOT))

    assert [p.id for p in network.citing] == ["c1b", "c2"]
    assert [p.id for p in network.cited] == ["r1"]
    assert network.total_citing == 2
    edges = {(e.citing_paper_id, e.cited_paper_id) for e in network.edges}
    assert edges == {("c1b", "root"), ("c2", "root"), ("root", "r1")}


def test_root_never_appears_in_its_own_sets() -> None:
    a = StubProvider("a", citations=CitationSet(
        citing=[make_paper(id="other-id-for-root", doi="10.1/ROOT", source="a")],
        cited=[make_paper(id="root", title="Something", source="a")],
    ))

    network = asyncio.run(_builder([a]).build_network(ROOT))

    assert network.citing == []
    assert network.cited == []
    assert all(e.citing_paper_id != e.cited_paper_id for e in network.edges)


def test_sets_are_capped_after_ranking() -> None:
    citing = [
        make_paper(id=f"c{i}", title=f"Citer {i}", doi=f"10.1/c{i}", citation_count=i, source="a")
        for i in range(10)
    ]
    a = StubProvider("a", citations=CitationSet(citing=citing))

    network = asyncio.run(_builder([a], max_citing=3).build_network(ROOT))

    assert [p.id for p in network.citing] == ["c9", "c8", "c7"]
    assert network.total_citing == 10
    assert len(network.edges) == 3


def test_not_found_from_a_source_is_an_empty_contribution() -> None:
    a = StubProvider("a", error=PaperNotFound("no citation data"))
    b = StubProvider("b", citations=CitationSet(cited=[make_paper(id="r1", title="Ref", doi="10.1/r1")]))

    network = asyncio.run(_builder([a, b]).build_network(ROOT))

    assert [p.id for p in network.cited] == ["r1"]
