"""
Group-and-merge of paper candidates coming from heterogeneous sources.

Grouping follows the identity rule in fingerprinting: DOI groups first, then
DOI-less records attach to a group with the same arXiv id or title
fingerprint, or start their own. Within a group one representative record is
chosen and any null field it lacks is backfilled from the other members.
"""
import logging
from typing import Dict, List, Optional, Sequence

from researchlib.deduplication.fingerprinting import FingerprintConfig, arxiv_key, title_fingerprint
from researchlib.schemas.papers import Paper

logger = logging.getLogger(__name__)

# Scalar fields backfilled from other group members when the representative lacks them
BACKFILL_FIELDS = ("abstract", "pdf_url", "doi", "venue", "publication_date", "year")


class MergePolicy:
    """
    How duplicates are reconciled and how merged results are ordered.

    Attributes:
        source_priority: Ordered source names; earlier is preferred.
        representative_policy: 'citation_count' picks the member with the
            highest citation count (ties by source priority);
            'source_priority' picks the highest-priority source (ties by count).
        count_merge_policy: 'representative' keeps the representative's
            counts; 'max' takes the maximum across the group.
    """

    def __init__(
        self,
        source_priority: Optional[Sequence[str]] = None,
        representative_policy: Optional[str] = None,
        count_merge_policy: Optional[str] = None,
        fingerprint_config: Optional[FingerprintConfig] = None,
    ):
        if source_priority is None or representative_policy is None or count_merge_policy is None:
            from researchlib.config.admin_policy import admin_policy
            dedup = admin_policy.deduplication
            source_priority = source_priority if source_priority is not None else admin_policy.fetch_apis.source_priority
            representative_policy = representative_policy or dedup.representative_policy
            count_merge_policy = count_merge_policy or dedup.count_merge_policy

        self.source_priority = list(source_priority)
        self.representative_policy = representative_policy
        self.count_merge_policy = count_merge_policy
        self.fingerprint_config = fingerprint_config or FingerprintConfig()

    def priority_of(self, source: str) -> int:
        try:
            return self.source_priority.index(source)
        except ValueError:
            return len(self.source_priority)

    def representative_key(self, paper: Paper):
        if self.representative_policy == "source_priority":
            return (self.priority_of(paper.source), -paper.citation_count)
        return (-paper.citation_count, self.priority_of(paper.source))

    def ranking_key(self, paper: Paper):
        year, month, day = paper.sort_date
        return (-paper.citation_count, -year, -month, -day, self.priority_of(paper.source))


def group_duplicates(papers: Sequence[Paper], config: Optional[FingerprintConfig] = None) -> List[List[Paper]]:
    """
    Partition candidates into identity groups.

    Records with a DOI are grouped by DOI and never merged with a record
    carrying a different DOI. A DOI-less record joins the group holding its
    arXiv id, else the first group holding a member with the same title
    fingerprint, unless that group carries a different arXiv id.
    """
    if config is None:
        config = FingerprintConfig()

    groups: List[List[Paper]] = []
    by_doi: Dict[str, int] = {}
    by_arxiv: Dict[str, int] = {}
    by_title: Dict[str, int] = {}
    group_arxiv: Dict[int, str] = {}

    def place(index: int, paper: Paper, fingerprint: str, arxiv: Optional[str]) -> None:
        groups[index].append(paper)
        by_title.setdefault(fingerprint, index)
        if arxiv:
            by_arxiv.setdefault(arxiv, index)
            group_arxiv.setdefault(index, arxiv)

    for paper in papers:
        if not paper.doi:
            continue
        index = by_doi.get(paper.doi)
        if index is None:
            index = len(groups)
            groups.append([])
            by_doi[paper.doi] = index
        place(index, paper, title_fingerprint(paper, config), arxiv_key(paper))

    for paper in papers:
        if paper.doi:
            continue
        arxiv = arxiv_key(paper)
        fingerprint = title_fingerprint(paper, config)
        index = by_arxiv.get(arxiv) if arxiv else None
        if index is None:
            index = by_title.get(fingerprint)
            if index is not None and arxiv and group_arxiv.get(index, arxiv) != arxiv:
                index = None
        if index is None:
            index = len(groups)
            groups.append([])
        place(index, paper, fingerprint, arxiv)

    return groups


def merge_group(group: Sequence[Paper], policy: MergePolicy) -> Paper:
    """
    Merge one identity group into a single Paper.

    Raises:
        ValueError: If the group is empty.
    """
    if not group:
        raise ValueError("Cannot merge an empty group of papers")
    if len(group) == 1:
        return group[0]

    ranked = sorted(group, key=policy.representative_key)
    representative, others = ranked[0], ranked[1:]
    update = {}

    for field in BACKFILL_FIELDS:
        if getattr(representative, field) is not None:
            continue
        for other in others:
            value = getattr(other, field)
            if value is not None:
                update[field] = value
                break

    if not representative.fields_of_study:
        for other in others:
            if other.fields_of_study:
                update["fields_of_study"] = list(other.fields_of_study)
                break

    if not representative.authors:
        for other in others:
            if other.authors:
                update["authors"] = list(other.authors)
                break

    external_ids: Dict[str, str] = {}
    for member in reversed(ranked):
        external_ids.update(member.external_ids)
    update["external_ids"] = external_ids

    update["open_access"] = any(member.open_access for member in group)

    if policy.count_merge_policy == "max":
        update["citation_count"] = max(member.citation_count for member in group)
        update["reference_count"] = max(member.reference_count for member in group)

    merged = representative.model_copy(update=update)
    logger.debug(
        f"Merged {len(group)} records into '{merged.title[:50]}' "
        f"(representative source={representative.source})"
    )
    return merged


def deduplicate_papers(papers: Sequence[Paper], policy: Optional[MergePolicy] = None) -> List[Paper]:
    """Collapse identity matches; output order follows first appearance of each group."""
    if policy is None:
        policy = MergePolicy()
    groups = group_duplicates(papers, policy.fingerprint_config)
    return [merge_group(group, policy) for group in groups]


def rank_papers(papers: Sequence[Paper], policy: Optional[MergePolicy] = None) -> List[Paper]:
    """Citation count desc, then most recent publication date, then source priority."""
    if policy is None:
        policy = MergePolicy()
    return sorted(papers, key=policy.ranking_key)


def merge_and_rank(papers: Sequence[Paper], policy: Optional[MergePolicy] = None) -> List[Paper]:
    if policy is None:
        policy = MergePolicy()
    merged = deduplicate_papers(papers, policy)
    logger.info(f"Deduplication: {len(papers)} candidates -> {len(merged)} unique papers")
    return rank_papers(merged, policy)
