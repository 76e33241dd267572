"""Pydantic data models for audit-search."""

from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Direction(str, Enum):
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class EventType(str, Enum):
    START = "START"
    END = "END"
    ERROR = "ERROR"


class _AuditDocument(BaseModel):
    """Stored documents and API responses both use camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        frozen=True,
    )


class TrafficRecord(_AuditDocument):
    """A captured HTTP request/response pair (``audit-requests`` index)."""

    id: str | None = None
    timestamp: datetime | None = None
    uri: str | None = None
    method: str | None = None
    direction: Direction | None = None
    status_code: str | None = None
    request_body: str | None = None
    response_body: str | None = None


class CallRecord(_AuditDocument):
    """A single intercepted method-call event (``audit-methods`` index)."""

    id: str | None = None
    timestamp: datetime | None = None
    method: str | None = None
    level: LogLevel | None = None
    event_type: EventType | None = None
    # Joins the START/END/ERROR events of one invocation
    correlation_id: str | None = None
    args: str | None = None
    result: str | None = None
    error_message: str | None = None


RecordT = TypeVar("RecordT", bound=_AuditDocument)


class SearchResult(_AuditDocument, Generic[RecordT]):
    """One page of records plus the total number of matches."""

    results: list[RecordT] = Field(default_factory=list)
    total_hits: int = 0


class StatsResult(_AuditDocument):
    """Document counts keyed by the grouped field's value."""

    stats: dict[str, int] = Field(default_factory=dict)


class ServiceConfig(BaseModel):
    """Top-level service configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    backend: str = "elasticsearch"
    es_hosts: list[str] = Field(default_factory=lambda: ["http://localhost:9200"])
    es_api_key: str | None = None
    es_username: str | None = None
    es_password: str | None = None
    verify_certs: bool = True
    request_timeout: float = 10.0
    traffic_index: str = "audit-requests"
    call_index: str = "audit-methods"
    traffic_stats_bucket_limit: int = 100
    call_stats_bucket_limit: int | None = 10
    full_text_analyzer: str | None = None
    create_missing_indices: bool = False
    access_log: bool = True
    log_level: str = "INFO"
