"""Python client for the audit-search REST API."""

from datetime import date
from typing import Any

import httpx

from audit_search.models import CallRecord, SearchResult, StatsResult, TrafficRecord


def _params(**values: Any) -> dict[str, Any]:
    """Drop unset parameters and render dates as ISO strings."""
    params: dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        params[key] = value.isoformat() if isinstance(value, date) else value
    return params


class AuditSearchClient:
    """Synchronous client for the audit-search REST API.

    Every method raises ``httpx.HTTPStatusError`` on a 4xx/5xx answer.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get(self, path: str, **params: Any) -> Any:
        resp = self._http.get(f"{self.base_url}{path}", params=_params(**params))
        resp.raise_for_status()
        return resp.json()

    # -- HTTP traffic ------------------------------------------------------

    def search_requests(
        self,
        query: str | None = None,
        status_code: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[TrafficRecord]:
        data = self._get("/api/v1/requests/search", query=query, statusCode=status_code, page=page, size=size)
        return SearchResult[TrafficRecord].model_validate(data)

    def find_requests(
        self,
        uri: str | None = None,
        method: str | None = None,
        status_code: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[TrafficRecord]:
        data = self._get("/api/v1/requests", uri=uri, method=method, statusCode=status_code, page=page, size=size)
        return SearchResult[TrafficRecord].model_validate(data)

    def request_stats(self, group_by: str = "statusCode", direction: str | None = None) -> StatsResult:
        return StatsResult.model_validate(self._get("/api/v1/requests/stats", groupBy=group_by, direction=direction))

    # -- Method calls ------------------------------------------------------

    def search_methods(
        self,
        query: str | None = None,
        level: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[CallRecord]:
        data = self._get("/api/v1/methods/search", query=query, level=level, page=page, size=size)
        return SearchResult[CallRecord].model_validate(data)

    def find_methods(
        self,
        method: str | None = None,
        log_level: str | None = None,
        event_type: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[CallRecord]:
        data = self._get(
            "/api/v1/methods",
            method=method,
            logLevel=log_level,
            eventType=event_type,
            page=page,
            size=size,
        )
        return SearchResult[CallRecord].model_validate(data)

    def method_stats(
        self,
        group_by: str = "level",
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> StatsResult:
        data = self._get("/api/v1/methods/stats", **{"groupBy": group_by, "from": date_from, "to": date_to})
        return StatsResult.model_validate(data)

    def health(self) -> dict[str, Any]:
        return self._get("/health")


class AsyncAuditSearchClient:
    """Async variant of :class:`AuditSearchClient` using ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _get(self, path: str, **params: Any) -> Any:
        resp = await self._http.get(f"{self.base_url}{path}", params=_params(**params))
        resp.raise_for_status()
        return resp.json()

    # -- HTTP traffic ------------------------------------------------------

    async def search_requests(
        self,
        query: str | None = None,
        status_code: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[TrafficRecord]:
        data = await self._get("/api/v1/requests/search", query=query, statusCode=status_code, page=page, size=size)
        return SearchResult[TrafficRecord].model_validate(data)

    async def find_requests(
        self,
        uri: str | None = None,
        method: str | None = None,
        status_code: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[TrafficRecord]:
        data = await self._get("/api/v1/requests", uri=uri, method=method, statusCode=status_code, page=page, size=size)
        return SearchResult[TrafficRecord].model_validate(data)

    async def request_stats(self, group_by: str = "statusCode", direction: str | None = None) -> StatsResult:
        data = await self._get("/api/v1/requests/stats", groupBy=group_by, direction=direction)
        return StatsResult.model_validate(data)

    # -- Method calls ------------------------------------------------------

    async def search_methods(
        self,
        query: str | None = None,
        level: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[CallRecord]:
        data = await self._get("/api/v1/methods/search", query=query, level=level, page=page, size=size)
        return SearchResult[CallRecord].model_validate(data)

    async def find_methods(
        self,
        method: str | None = None,
        log_level: str | None = None,
        event_type: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[CallRecord]:
        data = await self._get(
            "/api/v1/methods",
            method=method,
            logLevel=log_level,
            eventType=event_type,
            page=page,
            size=size,
        )
        return SearchResult[CallRecord].model_validate(data)

    async def method_stats(
        self,
        group_by: str = "level",
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> StatsResult:
        data = await self._get("/api/v1/methods/stats", **{"groupBy": group_by, "from": date_from, "to": date_to})
        return StatsResult.model_validate(data)

    async def health(self) -> dict[str, Any]:
        return await self._get("/health")
