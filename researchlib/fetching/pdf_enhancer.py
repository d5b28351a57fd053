"""
PDF Enhancer: attach an open-access PDF link to a canonical paper.

Sources are tried one at a time in ``pdf_priority`` order with a short
per-attempt timeout, stopping at the first non-empty URL.
"""
import asyncio
import logging
from typing import Optional, Sequence

from researchlib.fetching.providers.base import PDF, BaseFetchProvider, PaperProviderError
from researchlib.schemas.papers import Paper

logger = logging.getLogger(__name__)


class PdfEnhancer:
    """Sequential, early-exit PDF lookup. Never raises on upstream failure."""

    def __init__(self, providers: Sequence[BaseFetchProvider], timeout: Optional[float] = None):
        if timeout is None:
            from researchlib.config.admin_policy import admin_policy
            timeout = admin_policy.fetch_params.pdf_timeout_seconds

        self.providers = [p for p in providers if p.supports(PDF)]
        self.timeout = timeout

    async def enhance_with_pdf(self, paper: Paper) -> Paper:
        """
        Return ``paper`` with ``pdf_url`` filled in, or unchanged on total failure.

        A paper that already has a PDF link is returned as is.
        """
        if paper.pdf_url:
            return paper

        for provider in self.providers:
            pdf_url = await self._attempt(provider, paper)
            if pdf_url:
                logger.info(f"PdfEnhancer: found PDF for {paper.id} via {provider.name}")
                return paper.model_copy(update={"pdf_url": pdf_url, "open_access": True})

        logger.info(f"PdfEnhancer: no PDF found for {paper.id} after {len(self.providers)} sources")
        return paper

    async def _attempt(self, provider: BaseFetchProvider, paper: Paper) -> Optional[str]:
        try:
            pdf_url = await asyncio.wait_for(provider.find_pdf_url(paper), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"PdfEnhancer: {provider.name} timed out after {self.timeout}s")
            return None
        except PaperProviderError as e:
            logger.warning(f"PdfEnhancer: {provider.name} failed: {e}")
            return None
        except Exception as e:
            logger.error(f"PdfEnhancer: {provider.name} failed unexpectedly: {e}", exc_info=True)
            return None
        if isinstance(pdf_url, str) and pdf_url.strip():
            return pdf_url.strip()
        return None
