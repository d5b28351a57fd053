from conftest import make_paper

from researchlib.deduplication import (
    FingerprintConfig,
    MergePolicy,
    deduplicate_papers,
    is_same_paper,
    merge_and_rank,
    merge_group,
)

PRIORITY = ["openalex", "semantic_scholar", "crossref", "arxiv"]


def _policy(**kwargs) -> MergePolicy:
    options = {
        "source_priority": PRIORITY,
        "representative_policy": "citation_count",
        "count_merge_policy": "representative",
        "fingerprint_config": FingerprintConfig("sha256"),
    }
    options.update(kwargs)
    return MergePolicy(**options)


def test_same_doi_backfills_missing_abstract() -> None:
    with_abstract = make_paper(id="W1", source="openalex", doi="10.1/x", abstract="We propose...", citation_count=5)
    without_abstract = make_paper(id="s2a", source="semantic_scholar", doi="10.1/x", citation_count=50)

    merged = merge_and_rank([without_abstract, with_abstract], _policy())

    assert len(merged) == 1
    assert merged[0].abstract == "We propose..."
    # Highest citation count is the representative
    assert merged[0].id == "s2a"
    assert merged[0].citation_count == 50


def test_transformer_attention_scenario_yields_one_merged_paper() -> None:
    s2 = make_paper(
        id="204e3073870fae3d05bcbc2f6a8e263d9b72e776",
        source="semantic_scholar",
        doi="10.48550/arXiv.1706.03762",
        year=2017,
        citation_count=90000,
        external_ids={"s2": "204e3073870fae3d05bcbc2f6a8e263d9b72e776"},
    )
    openalex = make_paper(
        id="W2963403868",
        source="openalex",
        doi="https://doi.org/10.48550/arxiv.1706.03762",
        year=2017,
        citation_count=85000,
        fields_of_study=["Computer science"],
        external_ids={"openalex": "W2963403868"},
    )
    arxiv = make_paper(
        id="arxiv:1706.03762",
        source="arxiv",
        title="Attention is all you need",
        authors=["Vaswani, Ashish"],
        year=2017,
        pdf_url="https://arxiv.org/pdf/1706.03762.pdf",
        open_access=True,
        external_ids={"arxiv": "1706.03762"},
    )
    other = make_paper(id="W99", source="openalex", title="Transformer Attention Survey", year=2021, citation_count=10)

    merged = merge_and_rank([arxiv, openalex, other, s2], _policy())

    assert len(merged) == 2
    paper = merged[0]
    assert paper.id == s2.id
    assert paper.pdf_url == "https://arxiv.org/pdf/1706.03762.pdf"
    assert paper.open_access is True
    assert paper.fields_of_study == ["Computer science"]
    assert paper.external_ids == {
        "s2": "204e3073870fae3d05bcbc2f6a8e263d9b72e776",
        "openalex": "W2963403868",
        "arxiv": "1706.03762",
    }


def test_deduplication_is_idempotent() -> None:
    papers = [
        make_paper(id="a", doi="10.1/a", citation_count=3),
        make_paper(id="b", doi="10.1/b", citation_count=3),
        make_paper(id="c", title="Unrelated", year=2020),
        make_paper(id="d", title="Unrelated", year=2021),
    ]
    policy = _policy()
    once = deduplicate_papers(papers, policy)
    twice = deduplicate_papers(once, policy)

    assert sorted(p.id for p in once) == ["a", "b", "c", "d"]
    assert sorted(twice, key=lambda p: p.id) == sorted(once, key=lambda p: p.id)
    for i, a in enumerate(twice):
        for b in twice[i + 1:]:
            assert not is_same_paper(a, b, policy.fingerprint_config)


def test_ranking_order_citations_then_recency_then_priority() -> None:
    papers = [
        make_paper(id="old", title="Old", publication_date="2015-01-01", citation_count=10, source="openalex"),
        make_paper(id="new", title="New", publication_date="2020-06-01", citation_count=10, source="arxiv"),
        make_paper(id="newer_month", title="Newer", publication_date="2020-07-01", citation_count=10, source="arxiv"),
        make_paper(id="top", title="Top", publication_date="2001", citation_count=99, source="arxiv"),
        make_paper(id="tie_arxiv", title="Tie A", publication_date="2015-01-01", citation_count=10, source="arxiv"),
    ]
    ranked = merge_and_rank(papers, _policy())
    assert [p.id for p in ranked] == ["top", "newer_month", "new", "old", "tie_arxiv"]


def test_source_priority_representative_policy() -> None:
    group = [
        make_paper(id="s2", source="semantic_scholar", doi="10.1/x", citation_count=100),
        make_paper(id="W1", source="openalex", doi="10.1/x", citation_count=80, reference_count=12),
    ]
    merged = merge_group(group, _policy(representative_policy="source_priority"))
    assert merged.id == "W1"
    assert merged.citation_count == 80

    merged_max = merge_group(
        group, _policy(representative_policy="source_priority", count_merge_policy="max")
    )
    assert merged_max.id == "W1"
    assert merged_max.citation_count == 100
    assert merged_max.reference_count == 12


def test_different_dois_stay_separate() -> None:
    papers = [
        make_paper(id="pre", doi="10.1/preprint", year=2017),
        make_paper(id="pub", doi="10.1/published", year=2017),
    ]
    assert len(merge_and_rank(papers, _policy())) == 2


def test_preprint_and_conference_record_merge_on_arxiv_id() -> None:
    s2 = make_paper(
        id="s2x", source="semantic_scholar", year=2018, citation_count=90000,
        external_ids={"s2": "s2x", "arxiv": "1706.03762"},
    )
    preprint = make_paper(
        id="arxiv:1706.03762", source="arxiv", year=2017,
        pdf_url="https://arxiv.org/pdf/1706.03762v5.pdf",
        external_ids={"arxiv": "1706.03762v5"},
    )

    merged = merge_and_rank([s2, preprint], _policy())

    assert [p.id for p in merged] == ["s2x"]
    assert merged[0].pdf_url == "https://arxiv.org/pdf/1706.03762v5.pdf"


def test_different_arxiv_ids_stay_separate_despite_equal_titles() -> None:
    a = make_paper(id="a", source="arxiv", year=2017, external_ids={"arxiv": "1706.03762"})
    b = make_paper(id="b", source="arxiv", year=2017, external_ids={"arxiv": "1706.99999"})

    assert len(deduplicate_papers([a, b], _policy())) == 2
