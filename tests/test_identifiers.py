import pytest

from researchlib.fetching.identifiers import (
    ARXIV,
    DOI,
    OPENALEX,
    S2,
    PaperIdentifier,
    looks_like_identifier,
    parse_identifier,
)


@pytest.mark.parametrize("raw, expected", [
    ("https://doi.org/10.48550/ARXIV.1706.03762", PaperIdentifier(DOI, "10.48550/arxiv.1706.03762")),
    ("arXiv:1706.03762v5", PaperIdentifier(ARXIV, "1706.03762v5")),
    ("https://openalex.org/w2963403868", PaperIdentifier(OPENALEX, "W2963403868")),
    ("CorpusId:13756489", PaperIdentifier(S2, "CorpusId:13756489")),
    ("204E3073870FAE3D05BCBC2F6A8E263D9B72E776", PaperIdentifier(S2, "204e3073870fae3d05bcbc2f6a8e263d9b72e776")),
])
def test_parse_identifier_recognizes_source_forms(raw, expected) -> None:
    ident = parse_identifier(raw)
    assert ident == expected
    assert parse_identifier(str(ident)) == ident


def test_free_text_is_not_an_identifier() -> None:
    assert parse_identifier("Attention Is All You Need") is None
    assert parse_identifier("corpusid:abc") is None
    assert not looks_like_identifier("   ")
