"""
AdminPolicy: Global admin-controlled configuration layer.

This module defines the structure and loader for admin_policy.json.
AdminPolicy is loaded once at system startup, validated via Pydantic,
and accessed via a singleton instance.

AdminPolicy contains:
- Which bibliographic sources are active and how fast they may be called
- Source priority lists (search/lookup ranking, PDF fallback chain, citations)
- Per-call timeouts and retry attempts
- Citation network caps
- Resource cache TTLs and bounds
- Deduplication and merge policy
"""

import os
import json
import logging
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# ===== Pydantic Models =====

class FetchProviderPolicy(BaseModel):
    """Policy for a single fetch provider."""
    active: bool = True
    rate_limit_wait_seconds: float = 0.0


class FetchAPIPolicy(BaseModel):
    """Configuration for fetch providers and their explicit priority orders."""
    providers: Dict[str, FetchProviderPolicy] = Field(default_factory=dict)
    # Search/lookup order, also the final ranking tie-breaker
    source_priority: List[str] = Field(default_factory=list)
    # Open-access sources first
    pdf_priority: List[str] = Field(default_factory=list)
    citation_sources: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_priority_lists(self):
        known = set(self.providers)
        for list_name in ("source_priority", "pdf_priority", "citation_sources"):
            unknown = [name for name in getattr(self, list_name) if name not in known]
            if unknown:
                raise ValueError(f"{list_name} references unknown providers: {unknown}")
        return self


class FetchParams(BaseModel):
    """Fetch provider parameters."""
    timeout_seconds: float = 10.0
    pdf_timeout_seconds: float = 5.0
    retry_attempts: int = Field(default=2, ge=1)
    retry_base_delay_seconds: float = 0.5
    results_limit: int = Field(default=25, ge=1)


class CitationNetworkPolicy(BaseModel):
    """Bounds on the one-hop citation network."""
    max_citing: int = Field(default=50, ge=0)
    max_cited: int = Field(default=50, ge=0)
    per_source_limit: int = Field(default=100, ge=1)


class CachingPolicy(BaseModel):
    """Resource cache freshness and memory bounds."""
    ttl_seconds: Dict[str, float] = Field(default_factory=lambda: {
        "paper_by_id": 600.0,
        "citation_network": 900.0,
        "search": 300.0,
    })
    max_entries: int = Field(default=1000, ge=1)
    sweep_interval_seconds: float = 60.0

    @field_validator("ttl_seconds")
    @classmethod
    def validate_ttls(cls, v):
        for name, ttl in v.items():
            if ttl <= 0:
                raise ValueError(f"TTL for '{name}' must be positive, got {ttl}")
        return v


class DeduplicationPolicy(BaseModel):
    """Identity fingerprinting and merge parameters."""
    algorithm: str = "sha256"
    # 'citation_count' | 'source_priority'
    representative_policy: str = "citation_count"
    # 'representative' | 'max'
    count_merge_policy: str = "representative"

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v):
        if v.lower() not in ("md5", "sha1", "sha256"):
            raise ValueError(f"Unsupported fingerprint algorithm: {v}")
        return v.lower()

    @field_validator("representative_policy")
    @classmethod
    def validate_representative_policy(cls, v):
        if v not in ("citation_count", "source_priority"):
            raise ValueError(f"Unknown representative_policy: {v}")
        return v

    @field_validator("count_merge_policy")
    @classmethod
    def validate_count_merge_policy(cls, v):
        if v not in ("representative", "max"):
            raise ValueError(f"Unknown count_merge_policy: {v}")
        return v


class AdminPolicy(BaseModel):
    """Root AdminPolicy model."""
    fetch_apis: FetchAPIPolicy = Field(default_factory=FetchAPIPolicy)
    fetch_params: FetchParams = Field(default_factory=FetchParams)
    citation_network: CitationNetworkPolicy = Field(default_factory=CitationNetworkPolicy)
    caching: CachingPolicy = Field(default_factory=CachingPolicy)
    deduplication: DeduplicationPolicy = Field(default_factory=DeduplicationPolicy)

    @field_validator("fetch_apis")
    @classmethod
    def validate_fetch_apis(cls, v):
        if not v.source_priority:
            raise ValueError("At least one source must be listed in fetch_apis.source_priority")
        return v

    def active_in_order(self, names: List[str]) -> List[str]:
        """Filter a priority list down to active providers, preserving order."""
        return [
            name for name in names
            if name in self.fetch_apis.providers and self.fetch_apis.providers[name].active
        ]


# ===== Loader =====

def load_admin_policy(path: Optional[str] = None) -> AdminPolicy:
    """
    Load and validate admin_policy.json.

    Args:
        path: Optional explicit path. Defaults to ADMIN_POLICY_PATH from
            SystemSettings, then to the JSON file beside this module.

    Returns:
        AdminPolicy: Validated admin policy instance.

    Raises:
        RuntimeError: If the file cannot be loaded or validation fails.
    """
    from researchlib.config.system_settings import system_settings

    config_path = (
        path
        or system_settings.ADMIN_POLICY_PATH
        or os.path.join(os.path.dirname(__file__), "admin_policy.json")
    )
    try:
        with open(config_path, "r") as f:
            data = json.load(f)

        policy = AdminPolicy(**data)
        logger.info(
            f"Loaded AdminPolicy from {config_path}: "
            f"sources={policy.fetch_apis.source_priority}, "
            f"representative_policy={policy.deduplication.representative_policy}"
        )
        return policy

    except Exception as e:
        logger.error(f"CRITICAL: Failed to load admin policy: {e}")
        raise RuntimeError(f"Could not load admin policy: {e}") from e


# ===== Singleton Instance =====

# Load once at module import
admin_policy = load_admin_policy()
