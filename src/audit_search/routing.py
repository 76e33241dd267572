"""Query routing: maps sparse optional filters onto exactly one query shape.

Each optional parameter contributes one bit to a presence mask (bit ``i`` is
set when parameter ``i`` is non-blank).  A router precomputes a decision
table with one entry per mask value, so ``table[mask]`` names the matchers
whose predicates make up the query.  With ``n`` parameters the table has
``2 ** n`` entries and partitions the input space without overlap:

- mask 0 is the unfiltered listing (``match_all``);
- a single set bit sends that predicate on its own;
- several set bits are combined in one ``bool`` query, scoring predicates
  under ``must`` and exact terms under ``filter``.

The router never performs I/O.  It returns a :class:`SearchQuery` that a
:class:`~audit_search.gateway.base.SearchGateway` executes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

WILDCARD_CHARS = ("*", "?")

TIMESTAMP_FIELD = "timestamp"

# Characters with special meaning in the query_string syntax
_QUERY_STRING_RESERVED = frozenset('+-=&|><!(){}[]^"~*?:\\/ ')


def timestamp_sort() -> list[dict[str, Any]]:
    return [{TIMESTAMP_FIELD: {"order": "desc"}}]


# ------------------------------------------------------------------
# Parameter classification
# ------------------------------------------------------------------


def is_present(value: str | None) -> bool:
    """A parameter counts only if it holds at least one non-whitespace character."""
    return value is not None and bool(value.strip())


def contains_wildcard(value: str) -> bool:
    """True when *value* must be matched as a glob pattern (``*`` or ``?``)."""
    return any(ch in value for ch in WILDCARD_CHARS)


def presence_mask(*values: str | None) -> int:
    mask = 0
    for bit, value in enumerate(values):
        if is_present(value):
            mask |= 1 << bit
    return mask


def escape_query_string(value: str) -> str:
    return "".join(f"\\{ch}" if ch in _QUERY_STRING_RESERVED else ch for ch in value)


# ------------------------------------------------------------------
# Predicates
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Predicate:
    """One query clause plus the label used to name the resulting shape."""

    label: str
    clause: dict[str, Any]
    # Scoring clauses go under ``bool.must``; the rest under ``bool.filter``
    scoring: bool = False


def term_predicate(param: str, field: str, value: str) -> Predicate:
    return Predicate(f"{param}:term", {"term": {field: value}})


def wildcard_predicate(param: str, field: str, pattern: str) -> Predicate:
    return Predicate(
        f"{param}:wildcard",
        {"wildcard": {field: {"value": pattern}}},
        scoring=True,
    )


def contains_predicate(param: str, field: str, value: str) -> Predicate:
    return Predicate(
        f"{param}:contains",
        {
            "query_string": {
                "query": f"*{escape_query_string(value)}*",
                "fields": [field],
                "analyze_wildcard": True,
            }
        },
        scoring=True,
    )


def full_text_predicate(query: str, fields: tuple[str, ...], analyzer: str | None = None) -> Predicate:
    multi_match: dict[str, Any] = {
        "query": query,
        "fields": list(fields),
        "type": "best_fields",
    }
    if analyzer:
        multi_match["analyzer"] = analyzer
    return Predicate("full_text", {"multi_match": multi_match}, scoring=True)


def combine(predicates: list[Predicate]) -> tuple[str, dict[str, Any]]:
    """Fold predicates into ``(shape, query)``."""
    if not predicates:
        return "match_all", {"match_all": {}}
    shape = "+".join(p.label for p in predicates)
    if len(predicates) == 1:
        return shape, predicates[0].clause

    bool_query: dict[str, Any] = {}
    must = [p.clause for p in predicates if p.scoring]
    filters = [p.clause for p in predicates if not p.scoring]
    if must:
        bool_query["must"] = must
    if filters:
        bool_query["filter"] = filters
    return shape, {"bool": bool_query}


# ------------------------------------------------------------------
# Matchers: one per optional parameter
# ------------------------------------------------------------------


class Matcher(Protocol):
    """Turns a present parameter value into its predicate."""

    def predicate(self, value: str) -> Predicate: ...


@dataclass(frozen=True)
class FieldMatcher:
    """Match rule for one field-search parameter.

    Values containing wildcard characters are matched against
    ``pattern_field`` when one is configured.  Other values use substring
    matching on ``field`` when ``contains`` is set, an exact term otherwise.
    """

    param: str
    field: str
    pattern_field: str | None = None
    contains: bool = False

    def predicate(self, value: str) -> Predicate:
        if self.pattern_field is not None and contains_wildcard(value):
            return wildcard_predicate(self.param, self.pattern_field, value)
        if self.contains:
            return contains_predicate(self.param, self.field, value)
        return term_predicate(self.param, self.field, value)


@dataclass(frozen=True)
class FullTextMatcher:
    """Multi-field relevance match; wildcard characters are not interpreted."""

    fields: tuple[str, ...]
    analyzer: str | None = None

    def predicate(self, value: str) -> Predicate:
        return full_text_predicate(value, self.fields, self.analyzer)


DecisionTable = tuple[tuple[tuple[int, Matcher], ...], ...]


def build_decision_table(matchers: tuple[Matcher, ...]) -> DecisionTable:
    """Return ``table[mask]`` → ``((param_index, matcher), ...)`` for every mask."""
    return tuple(
        tuple((bit, matcher) for bit, matcher in enumerate(matchers) if mask & (1 << bit))
        for mask in range(1 << len(matchers))
    )


# ------------------------------------------------------------------
# Routed query
# ------------------------------------------------------------------


class SearchQuery(BaseModel):
    """A fully parameterised search, ready for a gateway."""

    shape: str
    query: dict[str, Any]
    page: int = 0
    size: int = 10
    sort: list[dict[str, Any]] = Field(default_factory=timestamp_sort)

    @property
    def offset(self) -> int:
        return self.page * self.size


# ------------------------------------------------------------------
# Record schemas
# ------------------------------------------------------------------


@dataclass(frozen=True)
class RecordSchema:
    """Describes how one record kind is searched."""

    name: str
    full_text_fields: tuple[str, ...]
    full_text_filter: FieldMatcher
    field_matchers: tuple[FieldMatcher, ...]

    @property
    def field_params(self) -> tuple[str, ...]:
        return tuple(m.param for m in self.field_matchers)


TRAFFIC_SCHEMA = RecordSchema(
    name="traffic",
    full_text_fields=("uri^2", "requestBody", "responseBody"),
    full_text_filter=FieldMatcher("statusCode", "statusCode"),
    field_matchers=(
        FieldMatcher("uri", "uri", pattern_field="uri.keyword", contains=True),
        FieldMatcher("method", "method", pattern_field="method"),
        FieldMatcher("statusCode", "statusCode"),
    ),
)

CALL_SCHEMA = RecordSchema(
    name="call",
    full_text_fields=("method^2", "args", "result"),
    full_text_filter=FieldMatcher("level", "level"),
    field_matchers=(
        FieldMatcher("method", "method", pattern_field="method.keyword", contains=True),
        FieldMatcher("level", "level"),
        FieldMatcher("eventType", "eventType"),
    ),
)


# ------------------------------------------------------------------
# Router
# ------------------------------------------------------------------


class QueryRouter:
    """Selects one query shape per request for a single record schema."""

    def __init__(self, schema: RecordSchema, analyzer: str | None = None) -> None:
        self.schema = schema
        self._full_text_table = build_decision_table(
            (FullTextMatcher(schema.full_text_fields, analyzer), schema.full_text_filter)
        )
        self._field_table = build_decision_table(schema.field_matchers)

    def route_full_text(
        self,
        query: str | None,
        filter_value: str | None,
        page: int = 0,
        size: int = 10,
    ) -> SearchQuery:
        """Full-text search with an optional exact filter (4-way table)."""
        return self._dispatch(self._full_text_table, (query, filter_value), page, size)

    def route_fields(
        self,
        values: tuple[str | None, ...],
        page: int = 0,
        size: int = 10,
    ) -> SearchQuery:
        """Field search; *values* follow ``schema.field_params`` order (8-way table)."""
        if len(values) != len(self.schema.field_matchers):
            raise ValueError(f"Expected {len(self.schema.field_matchers)} values for {self.schema.field_params}, got {len(values)}")
        return self._dispatch(self._field_table, values, page, size)

    def _dispatch(
        self,
        table: DecisionTable,
        values: tuple[str | None, ...],
        page: int,
        size: int,
    ) -> SearchQuery:
        mask = presence_mask(*values)
        predicates = [matcher.predicate(values[idx]) for idx, matcher in table[mask]]  # type: ignore[arg-type]
        shape, query = combine(predicates)
        logger.debug("Routed %s search (mask=%d) to %s", self.schema.name, mask, shape)
        return SearchQuery(shape=shape, query=query, page=page, size=size)
