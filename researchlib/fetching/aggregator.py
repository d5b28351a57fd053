"""
Aggregator: concurrent fan-out over source adapters.

Free-text queries go to every search-capable adapter at once; each adapter
has its own timeout, and one that times out or is unavailable contributes
nothing. Identifier queries go to every lookup-capable adapter that can
resolve the id, and the first hit wins; an id none of them recognizes is
searched as free text.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from researchlib.deduplication import MergePolicy, merge_and_rank
from researchlib.fetching.errors import PaperNotFoundError, SourcesUnavailableError
from researchlib.fetching.providers.base import (
    LOOKUP,
    SEARCH,
    BaseFetchProvider,
    PaperNotFound,
    PaperProviderError,
    SearchBatch,
)
from researchlib.schemas.papers import Paper

logger = logging.getLogger(__name__)

HIT = "hit"
NOT_FOUND = "not_found"
UNAVAILABLE = "unavailable"


@dataclass
class AggregatedResult:
    papers: List[Paper] = field(default_factory=list)
    total_results: int = 0
    sources_ok: List[str] = field(default_factory=list)
    sources_failed: List[str] = field(default_factory=list)


class Aggregator:
    """
    Fans queries out to adapters and merges what comes back.

    Args:
        providers: Adapters in source priority order
        merge_policy: Dedup and ranking policy (defaults from AdminPolicy)
        timeout: Per-adapter timeout in seconds (defaults from AdminPolicy)
    """

    def __init__(
        self,
        providers: Sequence[BaseFetchProvider],
        merge_policy: Optional[MergePolicy] = None,
        timeout: Optional[float] = None,
    ):
        if timeout is None:
            from researchlib.config.admin_policy import admin_policy
            timeout = admin_policy.fetch_params.timeout_seconds

        self.providers = list(providers)
        self.merge_policy = merge_policy or MergePolicy()
        self.timeout = timeout

    # ----- free-text search -----

    async def search_all_sources(self, query: str, limit: int, offset: int = 0) -> AggregatedResult:
        """
        Search every search-capable adapter concurrently and merge the results.

        Raises:
            SourcesUnavailableError: No adapter answered.
        """
        searchers = [p for p in self.providers if p.supports(SEARCH)]
        if not searchers:
            raise SourcesUnavailableError("No search-capable sources configured")

        batches = await asyncio.gather(*(
            self._guarded_search(provider, query, limit, offset) for provider in searchers
        ))

        result = AggregatedResult()
        candidates: List[Paper] = []
        for provider, batch in zip(searchers, batches):
            if batch is None:
                result.sources_failed.append(provider.name)
                continue
            result.sources_ok.append(provider.name)
            candidates.extend(batch.papers)
            result.total_results += batch.total

        if not result.sources_ok:
            raise SourcesUnavailableError(f"All sources failed for query: {query}")

        result.papers = merge_and_rank(candidates, self.merge_policy)
        result.total_results = max(result.total_results, len(result.papers))
        logger.info(
            f"Aggregator: {len(candidates)} candidates -> {len(result.papers)} papers for '{query}' "
            f"(ok={result.sources_ok}, failed={result.sources_failed})"
        )
        return result

    async def _guarded_search(
        self,
        provider: BaseFetchProvider,
        query: str,
        limit: int,
        offset: int,
    ) -> Optional[SearchBatch]:
        """Run one adapter's search under its timeout. None means the adapter is unavailable."""
        try:
            return await asyncio.wait_for(provider.search(query, limit, offset), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Aggregator: {provider.name} search timed out after {self.timeout}s")
        except PaperNotFound:
            return SearchBatch()
        except PaperProviderError as e:
            logger.warning(f"Aggregator: {provider.name} search unavailable: {e}")
        except Exception as e:
            logger.error(f"Aggregator: {provider.name} search failed unexpectedly: {e}", exc_info=True)
        return None

    # ----- fetch by id -----

    async def fetch_by_id(self, paper_id: str, doi: Optional[str] = None) -> Paper:
        """
        Resolve one paper across adapters in parallel; the first hit wins.

        An id no adapter recognizes (a title, an unknown id form) is treated
        as free text when there is no DOI hint: the top merged search hit wins.

        Raises:
            PaperNotFoundError: Nothing resolves the id, or every adapter
                that answered said not found.
            SourcesUnavailableError: No hit and no authoritative negative.
        """
        lookups = [
            p for p in self.providers
            if p.supports(LOOKUP) and p.resolve_identifier(paper_id, doi) is not None
        ]
        if not lookups:
            if doi:
                raise PaperNotFoundError(f"No source can resolve '{paper_id}' (doi={doi})")
            return await self._fetch_by_search(paper_id)

        tasks = [
            asyncio.ensure_future(self._guarded_lookup(provider, paper_id, doi))
            for provider in lookups
        ]
        outcomes = []
        try:
            for next_done in asyncio.as_completed(tasks):
                outcome, paper = await next_done
                if outcome == HIT:
                    return paper
                outcomes.append(outcome)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        if NOT_FOUND in outcomes:
            raise PaperNotFoundError(f"Paper not found: {paper_id}")
        raise SourcesUnavailableError(f"All sources unavailable for paper: {paper_id}")

    async def _fetch_by_search(self, text: str) -> Paper:
        if not text.strip() or not any(p.supports(SEARCH) for p in self.providers):
            raise PaperNotFoundError(f"No source can resolve '{text}'")

        logger.info(f"Aggregator: '{text}' is not a known identifier, resolving by search")
        result = await self.search_all_sources(text, limit=1)
        if not result.papers:
            raise PaperNotFoundError(f"No search hit for '{text}'")
        return result.papers[0]

    async def _guarded_lookup(self, provider: BaseFetchProvider, paper_id: str, doi: Optional[str]):
        try:
            paper = await asyncio.wait_for(provider.fetch_by_id(paper_id, doi), self.timeout)
            logger.info(f"Aggregator: {provider.name} resolved '{paper_id}' -> {paper.id}")
            return HIT, paper
        except asyncio.TimeoutError:
            logger.warning(f"Aggregator: {provider.name} lookup timed out after {self.timeout}s")
        except PaperNotFound as e:
            logger.debug(f"Aggregator: {provider.name} does not know '{paper_id}': {e}")
            return NOT_FOUND, None
        except PaperProviderError as e:
            logger.warning(f"Aggregator: {provider.name} lookup unavailable: {e}")
        except Exception as e:
            logger.error(f"Aggregator: {provider.name} lookup failed unexpectedly: {e}", exc_info=True)
        return UNAVAILABLE, None
