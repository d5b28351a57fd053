from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SystemSettings(BaseSettings):
    """
    Centralized system-level configuration.
    Reads from .env at startup. Immutable at runtime.

    Holds secrets, contact details and upstream endpoints only. Behavioral
    knobs (priorities, timeouts, TTLs) live in AdminPolicy.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Polite-pool contact for OpenAlex, Crossref and Unpaywall
    CONTACT_EMAIL: str = Field("research-library@example.org")
    USER_AGENT: str = Field("ResearchLibrary-Core/1.0")

    # Credentials
    SEMANTIC_SCHOLAR_API_KEY: Optional[str] = Field(None)
    CORE_API_KEY: Optional[str] = Field(None)

    # Upstream endpoints
    SEMANTIC_SCHOLAR_URL: str = Field("https://api.semanticscholar.org/graph/v1")
    OPENALEX_URL: str = Field("https://api.openalex.org")
    CROSSREF_URL: str = Field("https://api.crossref.org")
    ARXIV_URL: str = Field("http://export.arxiv.org/api/query")
    CORE_URL: str = Field("https://api.core.ac.uk/v3")
    PUBMED_URL: str = Field("https://eutils.ncbi.nlm.nih.gov/entrez/eutils")
    UNPAYWALL_URL: str = Field("https://api.unpaywall.org/v2")
    OPENCITATIONS_URL: str = Field("https://opencitations.net/index/coci/api/v1")

    # Runtime
    LOG_LEVEL: str = Field("INFO")
    ADMIN_POLICY_PATH: Optional[str] = Field(None)


# Singleton instance
system_settings = SystemSettings()
