"""Search services: router → gateway → shaper, one service per record kind."""

import logging
from datetime import date
from enum import Enum
from typing import Generic

from audit_search.aggregation import (
    DEFAULT_CALL_BUCKET_LIMIT,
    DEFAULT_TRAFFIC_BUCKET_LIMIT,
    AggregationRequest,
    call_stats_request,
    traffic_stats_request,
)
from audit_search.errors import InvalidParameterError
from audit_search.gateway.base import SearchGateway
from audit_search.models import (
    CallRecord,
    Direction,
    EventType,
    LogLevel,
    RecordT,
    SearchResult,
    StatsResult,
    TrafficRecord,
)
from audit_search.routing import CALL_SCHEMA, TRAFFIC_SCHEMA, QueryRouter, SearchQuery, is_present
from audit_search.shaping import to_search_result, to_stats_result

logger = logging.getLogger(__name__)


def validate_choice(param: str, value: str | None, choices: type[Enum]) -> str | None:
    """Blank values become ``None``; other values must name a member of *choices*."""
    if not is_present(value):
        return None
    allowed = {member.value for member in choices}
    if value not in allowed:
        raise InvalidParameterError(param, value, allowed)  # type: ignore[arg-type]
    return value


class RecordSearchService(Generic[RecordT]):
    """Shared plumbing for one index and one record kind."""

    record_type: type[RecordT]

    def __init__(
        self,
        gateway: SearchGateway,
        index: str,
        router: QueryRouter,
    ) -> None:
        self.gateway = gateway
        self.index = index
        self.router = router

    async def execute(self, search: SearchQuery) -> SearchResult[RecordT]:
        hits = await self.gateway.execute_search(
            self.index,
            search.query,
            offset=search.offset,
            size=search.size,
            sort=search.sort,
        )
        logger.debug("%s on %s matched %d documents", search.shape, self.index, hits.total)
        return to_search_result(hits, self.record_type)

    async def aggregate(self, request: AggregationRequest) -> StatsResult:
        buckets = await self.gateway.execute_aggregation(
            request.index,
            request.pre_filter,
            request.field,
            request.bucket_limit,
        )
        return to_stats_result(buckets)


class TrafficSearchService(RecordSearchService[TrafficRecord]):
    """Queries over captured HTTP traffic."""

    record_type = TrafficRecord

    def __init__(
        self,
        gateway: SearchGateway,
        index: str = "audit-requests",
        analyzer: str | None = None,
        bucket_limit: int | None = DEFAULT_TRAFFIC_BUCKET_LIMIT,
    ) -> None:
        super().__init__(gateway, index, QueryRouter(TRAFFIC_SCHEMA, analyzer=analyzer))
        self.bucket_limit = bucket_limit

    async def search_full_text(
        self,
        query: str | None = None,
        status_code: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[TrafficRecord]:
        return await self.execute(self.router.route_full_text(query, status_code, page=page, size=size))

    async def search_by_fields(
        self,
        uri: str | None = None,
        method: str | None = None,
        status_code: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[TrafficRecord]:
        return await self.execute(self.router.route_fields((uri, method, status_code), page=page, size=size))

    async def get_stats(
        self,
        group_by: str | None = "statusCode",
        direction: str | None = None,
    ) -> StatsResult:
        direction = validate_choice("direction", direction, Direction)
        return await self.aggregate(traffic_stats_request(self.index, group_by, direction, self.bucket_limit))


class CallSearchService(RecordSearchService[CallRecord]):
    """Queries over intercepted method calls."""

    record_type = CallRecord

    def __init__(
        self,
        gateway: SearchGateway,
        index: str = "audit-methods",
        analyzer: str | None = None,
        bucket_limit: int | None = DEFAULT_CALL_BUCKET_LIMIT,
    ) -> None:
        super().__init__(gateway, index, QueryRouter(CALL_SCHEMA, analyzer=analyzer))
        self.bucket_limit = bucket_limit

    async def search_full_text(
        self,
        query: str | None = None,
        level: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[CallRecord]:
        level = validate_choice("level", level, LogLevel)
        return await self.execute(self.router.route_full_text(query, level, page=page, size=size))

    async def search_by_fields(
        self,
        method: str | None = None,
        level: str | None = None,
        event_type: str | None = None,
        page: int = 0,
        size: int = 10,
    ) -> SearchResult[CallRecord]:
        level = validate_choice("logLevel", level, LogLevel)
        event_type = validate_choice("eventType", event_type, EventType)
        return await self.execute(self.router.route_fields((method, level, event_type), page=page, size=size))

    async def get_stats(
        self,
        group_by: str | None = "level",
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> StatsResult:
        return await self.aggregate(call_stats_request(self.index, group_by, date_from, date_to, self.bucket_limit))
