"""Exception hierarchy shared by the router, gateways and HTTP layer."""

from collections.abc import Iterable


class AuditSearchError(Exception):
    """Base class for all audit-search errors."""


class InvalidParameterError(AuditSearchError):
    """An enumerated request parameter has a value outside its allowed set."""

    def __init__(self, param: str, value: str, allowed: Iterable[str]) -> None:
        self.param = param
        self.value = value
        self.allowed = sorted(allowed)
        super().__init__(f"Invalid value {value!r} for {param}; expected one of: {', '.join(self.allowed)}")


class SearchBackendError(AuditSearchError):
    """The search backend failed to execute a query."""


class BackendUnavailableError(SearchBackendError):
    """The backend could not be reached or did not answer in time."""


class SearchQueryError(SearchBackendError):
    """The backend rejected the generated query or answered with an unexpected shape."""
