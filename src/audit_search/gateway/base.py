"""Interface between the query layer and a search backend."""

from typing import Any, NamedTuple, Protocol


class SearchHits(NamedTuple):
    """Raw hits in backend order plus the total number of matches."""

    hits: list[dict[str, Any]]
    total: int


class Bucket(NamedTuple):
    key: str
    doc_count: int


class SearchGateway(Protocol):
    """Executes routed queries against a search backend.

    Implementations must be async.  Queries and filters are plain
    Elasticsearch DSL dicts; hits keep the backend's ``_id``/``_source``
    layout.  Failures are raised as
    :class:`~audit_search.errors.SearchBackendError` subclasses and are
    never retried.
    """

    async def execute_search(
        self,
        index: str,
        query: dict[str, Any],
        offset: int,
        size: int,
        sort: list[dict[str, Any]],
    ) -> SearchHits:
        """Run a paginated, sorted search."""
        ...

    async def execute_aggregation(
        self,
        index: str,
        pre_filter: list[dict[str, Any]],
        field: str,
        bucket_limit: int | None,
    ) -> list[Bucket]:
        """Count documents per distinct *field* value, largest buckets first."""
        ...

    async def close(self) -> None:
        """Release any resources held by the gateway."""
        ...
