"""Shared fixtures for audit-search tests."""

from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from audit_search import ServiceConfig, create_app
from audit_search.gateway.base import Bucket, SearchHits
from audit_search.gateway.memory_gateway import MemorySearchGateway

TRAFFIC_INDEX = "audit-requests"
CALL_INDEX = "audit-methods"

# ------------------------------------------------------------------
# Seed documents
# ------------------------------------------------------------------

TRAFFIC_DOCS: list[dict[str, Any]] = [
    {
        "id": "r1",
        "timestamp": "2025-01-10T09:00:00",
        "uri": "/api/orders",
        "method": "GET",
        "direction": "INCOMING",
        "statusCode": "200",
        "requestBody": "",
        "responseBody": '{"orders": []}',
    },
    {
        "id": "r2",
        "timestamp": "2025-01-11T09:00:00",
        "uri": "/api/orders/42",
        "method": "DELETE",
        "direction": "INCOMING",
        "statusCode": "404",
        "requestBody": "",
        "responseBody": '{"error": "order not found"}',
    },
    {
        "id": "r3",
        "timestamp": "2025-01-12T09:00:00",
        "uri": "/api/users/7",
        "method": "GET",
        "direction": "OUTGOING",
        "statusCode": "200",
        "requestBody": "",
        "responseBody": '{"name": "John"}',
    },
]

CALL_DOCS: list[dict[str, Any]] = [
    {
        "id": "c1",
        "timestamp": "2025-01-15T10:00:00",
        "method": "getUserById",
        "level": "INFO",
        "eventType": "START",
        "correlationId": "k1",
        "args": "[123]",
        "result": "User{id=123}",
    },
    {
        "id": "c2",
        "timestamp": "2025-01-31T18:30:00",
        "method": "Service.createUser",
        "level": "ERROR",
        "eventType": "ERROR",
        "correlationId": "k2",
        "args": "[{name: 'John'}]",
        "result": None,
        "errorMessage": "duplicate user",
    },
    {
        "id": "c3",
        "timestamp": "2025-02-01T08:00:00",
        "method": "UserService.updateUser",
        "level": "DEBUG",
        "eventType": "START",
        "correlationId": "k3",
        "args": "[456, {name: 'Jane'}]",
    },
]


# ------------------------------------------------------------------
# Recording gateway
# ------------------------------------------------------------------


class RecordingGateway:
    """Captures every request and answers with canned hits/buckets."""

    def __init__(self) -> None:
        self.searches: list[dict[str, Any]] = []
        self.aggregations: list[dict[str, Any]] = []
        self.hits: list[dict[str, Any]] = []
        self.total = 0
        self.buckets: list[Bucket] = []
        self.error: Exception | None = None
        self.closed = False

    @property
    def last_search(self) -> dict[str, Any]:
        return self.searches[-1]

    @property
    def last_aggregation(self) -> dict[str, Any]:
        return self.aggregations[-1]

    async def execute_search(self, index, query, offset, size, sort) -> SearchHits:
        self.searches.append({"index": index, "query": query, "offset": offset, "size": size, "sort": sort})
        if self.error is not None:
            raise self.error
        return SearchHits(hits=list(self.hits), total=self.total)

    async def execute_aggregation(self, index, pre_filter, field, bucket_limit) -> list[Bucket]:
        self.aggregations.append(
            {"index": index, "pre_filter": pre_filter, "field": field, "bucket_limit": bucket_limit}
        )
        if self.error is not None:
            raise self.error
        return list(self.buckets)

    async def close(self) -> None:
        self.closed = True


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def recording_gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def memory_gateway() -> MemorySearchGateway:
    """In-memory gateway seeded with three traffic and three call records."""
    gateway = MemorySearchGateway()
    gateway.add_documents(TRAFFIC_INDEX, TRAFFIC_DOCS)
    gateway.add_documents(CALL_INDEX, CALL_DOCS)
    return gateway


@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig(backend="memory")


@pytest.fixture
def app(service_config: ServiceConfig, memory_gateway: MemorySearchGateway) -> FastAPI:
    return create_app(service_config, gateway=memory_gateway)


@pytest_asyncio.fixture
async def client(app: FastAPI):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as c:
        yield c
