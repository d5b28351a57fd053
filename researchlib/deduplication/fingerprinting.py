"""
Identity fingerprinting for cross-source paper reconciliation.

Two records describe the same logical paper when:
1. both carry a DOI and the normalized DOIs are equal, or
2. at least one lacks a DOI, both carry an arXiv id and the version-less
   arXiv ids are equal, or
3. neither rule applies and their title fingerprints are equal.

The title fingerprint hashes normalized title, publication year and
first-author surname with the configured algorithm (MD5, SHA1, SHA256).
"""
import hashlib
import logging
import re
from typing import Optional

from researchlib.schemas.papers import Paper

logger = logging.getLogger(__name__)

_ARXIV_DOI = re.compile(r"^10\.48550/arxiv\.(.+)$", re.IGNORECASE)
_ARXIV_VERSION = re.compile(r"v\d+$")


class FingerprintConfig:
    """Configuration for fingerprinting behavior."""

    def __init__(self, algorithm: Optional[str] = None):
        if algorithm is None:
            from researchlib.config.admin_policy import admin_policy
            algorithm = admin_policy.deduplication.algorithm

        # Algorithm: 'md5', 'sha1', 'sha256'
        self.algorithm = algorithm.lower()

        logger.debug(f"FingerprintConfig: algorithm={self.algorithm}")


def normalize_text(text: Optional[str]) -> str:
    """Normalize text for fingerprinting: lowercase, strip whitespace, remove punctuation."""
    if not text:
        return ""

    text = text.lower().strip()
    # Keep alphanumeric and spaces only
    text = "".join(c if c.isalnum() or c.isspace() else "" for c in text)
    # Collapse multiple spaces
    text = " ".join(text.split())

    return text


def author_surname(name: Optional[str]) -> str:
    """
    Extract a normalized surname from a display name.

    Handles both "Given Family" and "Family, Given" orderings.
    """
    if not name:
        return ""
    if "," in name:
        family = name.split(",", 1)[0]
    else:
        parts = name.split()
        family = parts[-1] if parts else ""
    return normalize_text(family)


def doi_key(paper: Paper) -> Optional[str]:
    """DOI identity key, or None when the record has no DOI."""
    if not paper.doi:
        return None
    return f"doi:{paper.doi}"


def arxiv_key(paper: Paper) -> Optional[str]:
    """
    Version-less arXiv identity key, or None.

    Taken from ``external_ids['arxiv']``, else from an arXiv DataCite DOI
    (10.48550/arXiv.<id>).
    """
    arxiv_id = paper.external_ids.get("arxiv")
    if not arxiv_id and paper.doi:
        match = _ARXIV_DOI.match(paper.doi)
        arxiv_id = match.group(1) if match else None
    if not arxiv_id:
        return None
    return f"arxiv:{_ARXIV_VERSION.sub('', arxiv_id.strip().lower())}"


def title_fingerprint(paper: Paper, config: Optional[FingerprintConfig] = None) -> str:
    """
    Hash of normalized title + year + first-author surname.

    Args:
        paper: Canonical paper
        config: FingerprintConfig (created if None)

    Returns:
        Hex string prefixed with 'fp:'
    """
    if config is None:
        config = FingerprintConfig()

    first_author = paper.authors[0].name if paper.authors else ""
    combined = " | ".join([
        normalize_text(paper.title),
        str(paper.year) if paper.year else "",
        author_surname(first_author),
    ])

    hash_obj = hashlib.new(config.algorithm, combined.encode("utf-8"))
    return f"fp:{hash_obj.hexdigest()}"


def identity_fingerprint(paper: Paper, config: Optional[FingerprintConfig] = None) -> str:
    """The identity key of a single record: DOI, else arXiv id, else title fingerprint."""
    return doi_key(paper) or arxiv_key(paper) or title_fingerprint(paper, config)


def is_same_paper(a: Paper, b: Paper, config: Optional[FingerprintConfig] = None) -> bool:
    """Identity match between two records from any sources."""
    if a.doi and b.doi:
        return a.doi == b.doi
    arxiv_a, arxiv_b = arxiv_key(a), arxiv_key(b)
    if arxiv_a and arxiv_b:
        return arxiv_a == arxiv_b
    return title_fingerprint(a, config) == title_fingerprint(b, config)
