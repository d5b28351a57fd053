"""
Citation Network Builder: one-hop citing / cited sets for a root paper.

Citation data is enrichment: when every source is unavailable the network
still carries the resolved root, with empty citing and cited sets.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

import networkx as nx

from researchlib.deduplication import MergePolicy, is_same_paper, merge_and_rank
from researchlib.fetching.providers.base import (
    CITATIONS,
    BaseFetchProvider,
    CitationSet,
    PaperNotFound,
    PaperProviderError,
)
from researchlib.schemas.papers import CitationEdge, CitationNetwork, Paper

logger = logging.getLogger(__name__)


class CitationNetworkBuilder:
    """
    Fans ``fetch_citations`` out across citation sources and merges the results.

    Args:
        providers: Citation-capable adapters
        merge_policy: Dedup and ranking policy (defaults from AdminPolicy)
        max_citing: Cap on the citing set
        max_cited: Cap on the cited set
        timeout: Per-adapter timeout in seconds
    """

    def __init__(
        self,
        providers: Sequence[BaseFetchProvider],
        merge_policy: Optional[MergePolicy] = None,
        max_citing: Optional[int] = None,
        max_cited: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        from researchlib.config.admin_policy import admin_policy

        caps = admin_policy.citation_network
        self.providers = [p for p in providers if p.supports(CITATIONS)]
        self.merge_policy = merge_policy or MergePolicy()
        self.max_citing = max_citing if max_citing is not None else caps.max_citing
        self.max_cited = max_cited if max_cited is not None else caps.max_cited
        self.timeout = timeout if timeout is not None else admin_policy.fetch_params.timeout_seconds

    async def build_network(self, root: Paper, doi: Optional[str] = None) -> CitationNetwork:
        """Build the one-hop network around an already resolved root paper."""
        doi = doi or root.doi
        candidates = []
        for provider in self.providers:
            ident = provider.resolve_identifier(root.id, doi, root.external_ids)
            if ident is not None:
                candidates.append((provider, str(ident)))

        sets = await asyncio.gather(*(
            self._guarded_fetch(provider, paper_ref, doi) for provider, paper_ref in candidates
        ))
        answered = [s for s in sets if s is not None]
        if not answered:
            logger.warning(f"CitationNetworkBuilder: no citation source answered for {root.id}, returning root only")
            return CitationNetwork(root=root)

        citing = self._merge([p for s in answered for p in s.citing], root)
        cited = self._merge([p for s in answered for p in s.cited], root)
        total_citing, total_cited = len(citing), len(cited)
        citing = citing[:self.max_citing]
        cited = cited[:self.max_cited]

        graph = self._to_graph(root, citing, cited)
        edges = [CitationEdge(citing_paper_id=u, cited_paper_id=v) for u, v in graph.edges()]
        logger.info(
            f"CitationNetworkBuilder: {root.id} has {len(citing)}/{total_citing} citing, "
            f"{len(cited)}/{total_cited} cited from {len(answered)}/{len(candidates)} sources"
        )
        return CitationNetwork(
            root=root,
            citing=citing,
            cited=cited,
            edges=edges,
            total_citing=total_citing,
            total_cited=total_cited,
        )

    def _merge(self, papers: List[Paper], root: Paper) -> List[Paper]:
        # The root never appears in its own citing or cited set
        config = self.merge_policy.fingerprint_config
        merged = merge_and_rank(papers, self.merge_policy)
        return [p for p in merged if p.id != root.id and not is_same_paper(p, root, config)]

    @staticmethod
    def _to_graph(root: Paper, citing: List[Paper], cited: List[Paper]) -> nx.DiGraph:
        G = nx.DiGraph()
        G.add_node(root.id)
        for paper in citing:
            if paper.id != root.id:
                G.add_edge(paper.id, root.id)
        for paper in cited:
            if paper.id != root.id:
                G.add_edge(root.id, paper.id)
        return G

    async def _guarded_fetch(
        self,
        provider: BaseFetchProvider,
        paper_ref: str,
        doi: Optional[str],
    ) -> Optional[CitationSet]:
        """None means the source is unavailable; an authoritative miss is an empty set."""
        try:
            return await asyncio.wait_for(provider.fetch_citations(paper_ref, doi), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"CitationNetworkBuilder: {provider.name} timed out after {self.timeout}s")
        except PaperNotFound:
            logger.debug(f"CitationNetworkBuilder: {provider.name} has no citation data for {paper_ref}")
            return CitationSet()
        except PaperProviderError as e:
            logger.warning(f"CitationNetworkBuilder: {provider.name} unavailable: {e}")
        except Exception as e:
            logger.error(f"CitationNetworkBuilder: {provider.name} failed unexpectedly: {e}", exc_info=True)
        return None
