"""audit-search: read-only query facade over HTTP-traffic and method-call audit indices."""

from audit_search._version import __version__
from audit_search.client import AsyncAuditSearchClient, AuditSearchClient
from audit_search.errors import (
    AuditSearchError,
    BackendUnavailableError,
    InvalidParameterError,
    SearchBackendError,
    SearchQueryError,
)
from audit_search.models import (
    CallRecord,
    SearchResult,
    ServiceConfig,
    StatsResult,
    TrafficRecord,
)
from audit_search.server import create_app
from audit_search.service import CallSearchService, TrafficSearchService

__all__ = [
    "__version__",
    "create_app",
    "AuditSearchClient",
    "AsyncAuditSearchClient",
    "ServiceConfig",
    "TrafficRecord",
    "CallRecord",
    "SearchResult",
    "StatsResult",
    "TrafficSearchService",
    "CallSearchService",
    "AuditSearchError",
    "InvalidParameterError",
    "SearchBackendError",
    "BackendUnavailableError",
    "SearchQueryError",
]
