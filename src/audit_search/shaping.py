"""Translate raw backend hits and buckets into the public envelopes."""

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from audit_search.errors import SearchQueryError
from audit_search.gateway.base import Bucket, SearchHits
from audit_search.models import RecordT, SearchResult, StatsResult


def to_record(hit: dict[str, Any], record_type: type[RecordT]) -> RecordT:
    source = dict(hit.get("_source") or {})
    if source.get("id") is None and hit.get("_id") is not None:
        source["id"] = hit["_id"]
    try:
        return record_type.model_validate(source)
    except ValidationError as exc:
        raise SearchQueryError(
            f"Document {source.get('id')!r} in {hit.get('_index', 'index')} is not a valid {record_type.__name__}"
        ) from exc


def to_search_result(hits: SearchHits, record_type: type[RecordT]) -> SearchResult[RecordT]:
    """Keep backend order; ``total_hits`` counts every match, not just this page."""
    return SearchResult[record_type](  # type: ignore[valid-type]
        results=[to_record(hit, record_type) for hit in hits.hits],
        total_hits=hits.total,
    )


def to_stats_result(buckets: Iterable[Bucket]) -> StatsResult:
    """Empty buckets are dropped so every emitted key has a positive count."""
    return StatsResult(stats={b.key: b.doc_count for b in buckets if b.doc_count > 0})
