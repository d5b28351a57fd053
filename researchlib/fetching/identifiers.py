"""
Paper identifier parsing.

Identifiers are source-scoped; this module recognizes the id formats the
adapters emit (and common user-supplied forms) so each adapter can tell
whether it resolves an id natively or must fall back to the DOI hint.
"""
import re
from dataclasses import dataclass
from typing import Optional

from researchlib.schemas.papers import normalize_doi

DOI = "doi"
ARXIV = "arxiv"
OPENALEX = "openalex"
S2 = "s2"
PUBMED = "pubmed"
CORE = "core"

# Numeric Semantic Scholar corpus ids, kept in Graph API form (CorpusId:<n>)
_S2_CORPUS_ID = re.compile(r"^(?:s2:\s*)?corpusid:\s*(\d+)$", re.IGNORECASE)

_PATTERNS = [
    (DOI, re.compile(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)?(10\.\d{4,9}/\S+)$", re.IGNORECASE)),
    (ARXIV, re.compile(r"^(?:arxiv:\s*|https?://arxiv\.org/(?:abs|pdf)/)(\d{4}\.\d{4,5}(?:v\d+)?|[a-z\-]+(?:\.[a-z]{2})?/\d{7}(?:v\d+)?)(?:\.pdf)?$", re.IGNORECASE)),
    (ARXIV, re.compile(r"^(\d{4}\.\d{4,5}(?:v\d+)?)$")),
    (OPENALEX, re.compile(r"^(?:openalex:\s*|https?://openalex\.org/)?(W\d+)$", re.IGNORECASE)),
    (S2, _S2_CORPUS_ID),
    (S2, re.compile(r"^(?:s2:)?([0-9a-f]{40})$", re.IGNORECASE)),
    (PUBMED, re.compile(r"^(?:pubmed|pmid):\s*(\d+)$", re.IGNORECASE)),
    (CORE, re.compile(r"^core:\s*(\d+)$", re.IGNORECASE)),
]


@dataclass(frozen=True)
class PaperIdentifier:
    kind: str
    value: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


def parse_identifier(raw: Optional[str]) -> Optional[PaperIdentifier]:
    """
    Parse a raw id into (kind, value).

    Returns None for free text or unrecognized formats.
    """
    if not raw:
        return None
    text = raw.strip()
    if not text or any(c.isspace() for c in text):
        return None

    for kind, pattern in _PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        value = match.group(1)
        if kind == DOI:
            value = normalize_doi(value)
        elif kind == OPENALEX:
            value = value.upper()
        elif pattern is _S2_CORPUS_ID:
            value = f"CorpusId:{value}"
        elif kind == S2:
            value = value.lower()
        return PaperIdentifier(kind, value)
    return None


def looks_like_identifier(text: Optional[str]) -> bool:
    """True when the input should be resolved by fetch-by-id instead of free-text search."""
    return parse_identifier(text) is not None


def strip_arxiv_version(arxiv_id: str) -> str:
    return re.sub(r"v\d+$", "", arxiv_id)
