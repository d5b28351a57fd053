"""
Service-level failures.

Adapter errors are absorbed into partial results; these are raised only when
no adapter produced anything usable, and the API maps them to 404 / 503.
"""


class FetchServiceError(Exception):
    """Base class for failures visible to the caller."""
    pass


class PaperNotFoundError(FetchServiceError):
    """Every source that could resolve the id answered authoritatively negative."""
    pass


class SourcesUnavailableError(FetchServiceError):
    """No source produced a usable answer."""
    pass
