"""
Deduplication module: identity fingerprinting and cross-source merging.

Enforces ordered hierarchy: DOI → arXiv id → title fingerprint (title + year + first author).
Never depends on fetching or caching.
"""
from researchlib.deduplication.fingerprinting import (
    FingerprintConfig,
    normalize_text,
    author_surname,
    doi_key,
    arxiv_key,
    title_fingerprint,
    identity_fingerprint,
    is_same_paper,
)
from researchlib.deduplication.merger import (
    MergePolicy,
    group_duplicates,
    merge_group,
    deduplicate_papers,
    rank_papers,
    merge_and_rank,
)

__all__ = [
    "FingerprintConfig",
    "normalize_text",
    "author_surname",
    "doi_key",
    "arxiv_key",
    "title_fingerprint",
    "identity_fingerprint",
    "is_same_paper",
    "MergePolicy",
    "group_duplicates",
    "merge_group",
    "deduplicate_papers",
    "rank_papers",
    "merge_and_rank",
]
