"""
Providers package: bibliographic source adapters.

Every provider translates upstream failures into the taxonomy in
``base`` (ProviderUnavailable / PaperNotFound / MalformedRecord).
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Type

import httpx

from researchlib.fetching.providers.base import (
    CITATIONS,
    LOOKUP,
    PDF,
    SEARCH,
    BaseFetchProvider,
    CitationSet,
    MalformedRecord,
    PaperNotFound,
    PaperProviderError,
    ProviderConfig,
    ProviderUnavailable,
    SearchBatch,
)
from researchlib.fetching.providers.arxiv import ArxivProvider
from researchlib.fetching.providers.core import CoreProvider
from researchlib.fetching.providers.crossref import CrossRefProvider
from researchlib.fetching.providers.openalex import OpenAlexProvider
from researchlib.fetching.providers.opencitations import OpenCitationsProvider
from researchlib.fetching.providers.pubmed import PubMedProvider
from researchlib.fetching.providers.semantic_scholar import SemanticScholarProvider
from researchlib.fetching.providers.unpaywall import UnpaywallProvider

logger = logging.getLogger(__name__)

PROVIDER_REGISTRY: Dict[str, Type[BaseFetchProvider]] = {
    "arxiv": ArxivProvider,
    "core": CoreProvider,
    "crossref": CrossRefProvider,
    "openalex": OpenAlexProvider,
    "opencitations": OpenCitationsProvider,
    "pubmed": PubMedProvider,
    "semantic_scholar": SemanticScholarProvider,
    "unpaywall": UnpaywallProvider,
}


def credentials_for(provider_name: str) -> Dict[str, Any]:
    """Endpoint, contact email and API key for a provider, from SystemSettings."""
    from researchlib.config.system_settings import system_settings as s

    credentials = {
        "arxiv": {"base_url": s.ARXIV_URL},
        "core": {"base_url": s.CORE_URL, "api_key": s.CORE_API_KEY},
        "crossref": {"base_url": s.CROSSREF_URL, "email": s.CONTACT_EMAIL},
        "openalex": {"base_url": s.OPENALEX_URL, "email": s.CONTACT_EMAIL},
        "opencitations": {"base_url": s.OPENCITATIONS_URL},
        "pubmed": {"base_url": s.PUBMED_URL},
        "semantic_scholar": {"base_url": s.SEMANTIC_SCHOLAR_URL, "api_key": s.SEMANTIC_SCHOLAR_API_KEY},
        "unpaywall": {"base_url": s.UNPAYWALL_URL, "email": s.CONTACT_EMAIL},
    }
    return credentials.get(provider_name, {})


def get_provider(
    provider_name: str,
    client: httpx.AsyncClient,
    config: Optional[ProviderConfig] = None,
) -> Optional[BaseFetchProvider]:
    """
    Factory to get a provider instance by name.

    Args:
        provider_name: 'openalex', 'semantic_scholar', 'arxiv', etc.
        client: Shared HTTP client
        config: ProviderConfig (defaulted from AdminPolicy if None)

    Returns:
        Provider instance or None if not recognized
    """
    provider_class = PROVIDER_REGISTRY.get(provider_name.lower())
    if not provider_class:
        logger.error(f"Unknown provider: {provider_name}")
        return None

    name = provider_name.lower()
    return provider_class(client, credentials_for(name), config or ProviderConfig(name))


def build_providers(client: httpx.AsyncClient, provider_names: Sequence[str]) -> List[BaseFetchProvider]:
    """Instantiate providers in the given order, skipping unknown names."""
    providers = []
    for name in provider_names:
        provider = get_provider(name, client)
        if provider is not None:
            providers.append(provider)
    logger.debug(f"Built providers: {[p.name for p in providers]}")
    return providers


__all__ = [
    "SEARCH",
    "LOOKUP",
    "CITATIONS",
    "PDF",
    "BaseFetchProvider",
    "CitationSet",
    "MalformedRecord",
    "PaperNotFound",
    "PaperProviderError",
    "ProviderConfig",
    "ProviderUnavailable",
    "SearchBatch",
    "PROVIDER_REGISTRY",
    "ArxivProvider",
    "CoreProvider",
    "CrossRefProvider",
    "OpenAlexProvider",
    "OpenCitationsProvider",
    "PubMedProvider",
    "SemanticScholarProvider",
    "UnpaywallProvider",
    "credentials_for",
    "get_provider",
    "build_providers",
]
