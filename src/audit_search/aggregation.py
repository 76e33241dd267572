"""Terms-aggregation requests for the stats endpoints."""

import logging
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from audit_search.routing import TIMESTAMP_FIELD, is_present

logger = logging.getLogger(__name__)

TRAFFIC_GROUP_FIELDS = {
    "statusCode": "statusCode",
    "method": "method",
    "uri": "uri.keyword",
}
DEFAULT_TRAFFIC_GROUP = "statusCode"
DEFAULT_TRAFFIC_BUCKET_LIMIT = 100

CALL_GROUP_FIELDS = {
    "level": "level",
    "method": "method.keyword",
}
# Applied to any groupBy other than "level"
CALL_FALLBACK_GROUP = "method"
DEFAULT_CALL_BUCKET_LIMIT = 10


class AggregationRequest(BaseModel):
    """A pre-filtered terms aggregation over one field of one index."""

    index: str
    field: str
    pre_filter: list[dict[str, Any]] = Field(default_factory=list)
    bucket_limit: int | None = None

    @property
    def name(self) -> str:
        return aggregation_name(self.field)


def aggregation_name(field: str) -> str:
    return f"{field}_stats"


def date_range_filter(
    date_from: date | None,
    date_to: date | None,
    field: str = TIMESTAMP_FIELD,
) -> dict[str, Any] | None:
    """Inclusive day range; either bound may be left open.

    Bounds are sent as bare ISO dates.  The engine fills the missing time
    components so that ``lte`` covers the whole final day.
    """
    bounds: dict[str, str] = {}
    if date_from is not None:
        bounds["gte"] = date_from.isoformat()
    if date_to is not None:
        bounds["lte"] = date_to.isoformat()
    if not bounds:
        return None
    return {"range": {field: bounds}}


def traffic_stats_request(
    index: str,
    group_by: str | None,
    direction: str | None = None,
    bucket_limit: int | None = DEFAULT_TRAFFIC_BUCKET_LIMIT,
) -> AggregationRequest:
    group = group_by if group_by in TRAFFIC_GROUP_FIELDS else DEFAULT_TRAFFIC_GROUP
    if group != group_by:
        logger.debug("Unrecognized traffic groupBy %r, falling back to %s", group_by, group)

    pre_filter: list[dict[str, Any]] = []
    if is_present(direction):
        pre_filter.append({"term": {"direction": direction}})

    return AggregationRequest(
        index=index,
        field=TRAFFIC_GROUP_FIELDS[group],
        pre_filter=pre_filter,
        bucket_limit=bucket_limit,
    )


def call_stats_request(
    index: str,
    group_by: str | None,
    date_from: date | None = None,
    date_to: date | None = None,
    bucket_limit: int | None = DEFAULT_CALL_BUCKET_LIMIT,
) -> AggregationRequest:
    group = group_by if group_by in CALL_GROUP_FIELDS else CALL_FALLBACK_GROUP
    if group != group_by:
        logger.debug("Unrecognized call groupBy %r, falling back to %s", group_by, group)

    pre_filter: list[dict[str, Any]] = []
    time_range = date_range_filter(date_from, date_to)
    if time_range is not None:
        pre_filter.append(time_range)

    return AggregationRequest(
        index=index,
        field=CALL_GROUP_FIELDS[group],
        pre_filter=pre_filter,
        bucket_limit=bucket_limit,
    )
