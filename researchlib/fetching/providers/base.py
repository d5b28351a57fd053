"""
Base provider contract for bibliographic sources.

All providers must implement the subset of this contract named in their
``capabilities``:
- search(query, limit, offset) -> SearchBatch
- fetch_by_id(paper_id, doi) -> Paper, or raise PaperNotFound
- fetch_citations(paper_id, doi) -> CitationSet
- find_pdf_url(paper) -> Optional[str]

Providers translate every upstream failure into the taxonomy below and never
let one bad record inside a bulk response fail the whole call.
"""
import asyncio
import logging
import time
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

import httpx

from researchlib.fetching.identifiers import DOI, PaperIdentifier, parse_identifier
from researchlib.schemas.papers import Paper, normalize_doi

logger = logging.getLogger(__name__)

SEARCH = "search"
LOOKUP = "lookup"
CITATIONS = "citations"
PDF = "pdf"


class PaperProviderError(Exception):
    """Exception raised by provider during fetch."""
    pass


class ProviderUnavailable(PaperProviderError):
    """Timeout, rate limit, auth rejection or 5xx. Retryable on a later request."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PaperNotFound(PaperProviderError):
    """Authoritative negative: the source does not know this paper."""
    pass


class MalformedRecord(PaperProviderError):
    """A single upstream record could not be normalized."""
    pass


@dataclass
class SearchBatch:
    papers: List[Paper] = field(default_factory=list)
    total: int = 0


@dataclass
class CitationSet:
    citing: List[Paper] = field(default_factory=list)
    cited: List[Paper] = field(default_factory=list)


class ProviderConfig:
    """Runtime configuration for one provider, defaulted from AdminPolicy."""

    def __init__(
        self,
        name: str,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        rate_limit_wait: Optional[float] = None,
        results_limit: Optional[int] = None,
        citation_limit: Optional[int] = None,
    ):
        from researchlib.config.admin_policy import admin_policy

        fp = admin_policy.fetch_params
        provider_policy = admin_policy.fetch_apis.providers.get(name)

        self.name = name
        self.timeout = timeout if timeout is not None else fp.timeout_seconds
        self.retry_attempts = retry_attempts if retry_attempts is not None else fp.retry_attempts
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else fp.retry_base_delay_seconds
        if rate_limit_wait is None:
            rate_limit_wait = provider_policy.rate_limit_wait_seconds if provider_policy else 0.0
        self.rate_limit_wait = rate_limit_wait
        self.results_limit = results_limit if results_limit is not None else fp.results_limit
        self.citation_limit = (
            citation_limit if citation_limit is not None
            else admin_policy.citation_network.per_source_limit
        )


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def safe_year(value: Any) -> Optional[int]:
    """Parse a year with sanity bounds; bad values like 0 or 30000 become None."""
    year = safe_int(value)
    return year if year is not None and 1500 <= year <= 2100 else None


class BaseFetchProvider(ABC):
    """
    Abstract base class for bibliographic source adapters.

    Subclasses set ``name``, ``capabilities`` and ``native_identifiers``
    (identifier kinds the source resolves directly, most preferred first)
    and override the coroutines matching their capabilities.
    """

    name: str = "base"
    capabilities: FrozenSet[str] = frozenset()
    native_identifiers: Tuple[str, ...] = ()

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: Optional[Dict[str, Any]] = None,
        config: Optional[ProviderConfig] = None,
    ):
        self.client = client
        self.credentials = credentials or {}
        self.config = config or ProviderConfig(self.name)
        self._rate_lock = asyncio.Lock()
        self._last_call_time = 0.0

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    # ----- contract -----

    async def search(self, query: str, limit: int, offset: int = 0) -> SearchBatch:
        raise NotImplementedError(f"{self.name} does not support search")

    async def fetch_by_id(self, paper_id: str, doi: Optional[str] = None) -> Paper:
        """
        Resolve one paper by id, falling back to the DOI hint.

        Raises:
            PaperNotFound: The source cannot identify or does not know the paper.
            ProviderUnavailable: The source could not be reached.
        """
        ident = self.resolve_identifier(paper_id, doi)
        if ident is None:
            raise PaperNotFound(f"{self.name} cannot resolve '{paper_id}'")
        return await self._lookup(ident)

    async def fetch_citations(self, paper_id: str, doi: Optional[str] = None) -> CitationSet:
        raise NotImplementedError(f"{self.name} does not support citations")

    async def find_pdf_url(self, paper: Paper) -> Optional[str]:
        """
        Default PDF lookup: resolve the paper on this source and read its PDF link.

        Returns None when this source cannot identify the paper.
        """
        ident = self.resolve_identifier(paper.id, paper.doi, paper.external_ids)
        if ident is None:
            return None
        try:
            found = await self._lookup(ident)
        except PaperNotFound:
            return None
        return found.pdf_url

    # ----- identifier routing -----

    def resolve_identifier(
        self,
        paper_id: Optional[str],
        doi: Optional[str] = None,
        external_ids: Optional[Dict[str, str]] = None,
    ) -> Optional[PaperIdentifier]:
        """
        Choose the identifier this source resolves natively.

        Order: the id itself, then matching external ids, then the DOI hint.
        """
        ident = parse_identifier(paper_id)
        if ident is not None and ident.kind in self.native_identifiers:
            return ident

        for kind in self.native_identifiers:
            if kind == DOI:
                doi_value = normalize_doi(doi) or (ident.value if ident and ident.kind == DOI else None)
                if not doi_value and external_ids:
                    doi_value = normalize_doi(external_ids.get(DOI))
                if doi_value:
                    return PaperIdentifier(DOI, doi_value)
            elif external_ids and external_ids.get(kind):
                parsed = parse_identifier(f"{kind}:{external_ids[kind]}")
                if parsed is not None and parsed.kind == kind:
                    return parsed
                return PaperIdentifier(kind, external_ids[kind])
        return None

    async def _lookup(self, ident: PaperIdentifier) -> Paper:
        """Fetch one record by a natively supported identifier."""
        raise PaperNotFound(f"{self.name} cannot resolve {ident}")

    # ----- HTTP -----

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        from researchlib.config.system_settings import system_settings

        headers = {
            "User-Agent": f"{system_settings.USER_AGENT} (mailto:{system_settings.CONTACT_EMAIL})",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _wait_for_rate_limit(self) -> None:
        """Rate limiting: apply configured wait time between this provider's requests."""
        wait_time = self.config.rate_limit_wait
        if wait_time <= 0:
            return
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_call_time
            if elapsed < wait_time:
                logger.debug(f"{self.__class__.__name__}: rate limiting, sleeping {wait_time - elapsed:.2f}s")
                await asyncio.sleep(wait_time - elapsed)
            self._last_call_time = time.monotonic()

    async def _request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        GET with status translation and exponential backoff on 429.

        Raises:
            ProviderUnavailable: timeouts, transport errors, 401/403/429/5xx
            PaperNotFound: 400/404/410
        """
        attempts = self.config.retry_attempts
        for attempt in range(attempts):
            await self._wait_for_rate_limit()
            try:
                response = await self.client.get(
                    url,
                    params=params,
                    headers=self._headers(headers),
                    timeout=self.config.timeout,
                )
            except httpx.TimeoutException as e:
                raise ProviderUnavailable(f"{self.name}: request timed out: {url}") from e
            except httpx.HTTPError as e:
                raise ProviderUnavailable(f"{self.name}: transport error: {e}") from e

            status = response.status_code
            if status == 429 and attempt < attempts - 1:
                delay = self.config.retry_base_delay * (2 ** attempt)
                logger.warning(
                    f"{self.__class__.__name__}: Rate limited (429). Retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                await asyncio.sleep(delay)
                continue
            if status in (400, 404, 410):
                raise PaperNotFound(f"{self.name}: {status} for {url}")
            if status >= 400:
                raise ProviderUnavailable(f"{self.name}: upstream returned {status}", status=status)
            return response

        raise ProviderUnavailable(f"{self.name}: rate limit exceeded after {attempts} attempts", status=429)

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        response = await self._request(url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailable(f"{self.name}: unparseable response body") from e

    async def _get_object(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Like _get_json, but the body must be a JSON object."""
        data = await self._get_json(url, params=params, headers=headers)
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"{self.name}: unexpected response shape ({type(data).__name__})")
        return data

    # ----- normalization -----

    def _parse_records(self, items: Optional[Iterable[Any]], parser: Callable[[Any], Paper]) -> List[Paper]:
        """Normalize a bulk response, skipping records that fail to parse."""
        papers = []
        skipped = 0
        for item in items or []:
            try:
                papers.append(parser(item))
            except (MalformedRecord, KeyError, TypeError, ValueError, AttributeError) as e:
                skipped += 1
                logger.warning(f"{self.__class__.__name__}: skipping malformed record: {e}")
        if skipped:
            logger.info(f"{self.__class__.__name__}: kept {len(papers)} records, skipped {skipped}")
        return papers

    @staticmethod
    def _require_title(title: Any) -> str:
        if isinstance(title, list):
            title = title[0] if title else None
        if not isinstance(title, str) or not title.strip():
            raise MalformedRecord("record has no title")
        return " ".join(title.split())
