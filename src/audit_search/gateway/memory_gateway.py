"""In-memory search gateway for testing and local runs.

Evaluates the subset of the query DSL that the router and aggregation
builder emit: ``match_all``, ``bool``, ``term``, ``wildcard``,
``query_string`` (wildcard patterns only), ``multi_match`` and ``range``,
plus ``terms`` aggregations and field sorting.  Text matching is a rough
stand-in for an analyzer: lower-cased ``\\w+`` tokens.
"""

import re
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any

from audit_search.aggregation import DEFAULT_CALL_BUCKET_LIMIT
from audit_search.errors import SearchQueryError
from audit_search.gateway.base import Bucket, SearchHits

_TOKEN_RE = re.compile(r"\w+")
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class MemorySearchGateway:
    """Ephemeral document store with search semantics close to Elasticsearch."""

    def __init__(self) -> None:
        # index -> doc_id -> source  (insertion order)
        self._indices: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)

    def add_documents(self, index: str, documents: Iterable[dict[str, Any]]) -> list[str]:
        """Store documents, assigning ids where missing.  Returns the ids."""
        ids: list[str] = []
        for doc in documents:
            doc_id = str(doc.get("id") or uuid.uuid4())
            self._indices[index][doc_id] = dict(doc)
            ids.append(doc_id)
        return ids

    def count(self, index: str) -> int:
        return len(self._indices.get(index, {}))

    # ------------------------------------------------------------------
    # SearchGateway protocol
    # ------------------------------------------------------------------

    async def execute_search(
        self,
        index: str,
        query: dict[str, Any],
        offset: int,
        size: int,
        sort: list[dict[str, Any]],
    ) -> SearchHits:
        matched = [(doc_id, src) for doc_id, src in self._indices.get(index, {}).items() if _matches(query, src)]
        matched = _sorted(matched, sort)
        page = matched[offset : offset + size]
        return SearchHits(
            hits=[{"_index": index, "_id": doc_id, "_source": dict(src)} for doc_id, src in page],
            total=len(matched),
        )

    async def execute_aggregation(
        self,
        index: str,
        pre_filter: list[dict[str, Any]],
        field: str,
        bucket_limit: int | None,
    ) -> list[Bucket]:
        query = {"bool": {"filter": pre_filter}}
        counts: Counter[str] = Counter()
        for src in self._indices.get(index, {}).values():
            if not _matches(query, src):
                continue
            value = _field_value(src, field)
            if value is None:
                continue
            counts[_stringify(value)] += 1

        # Engine default when a terms aggregation names no size
        limit = DEFAULT_CALL_BUCKET_LIMIT if bucket_limit is None else bucket_limit
        # Engine order: count descending, then key ascending
        ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [Bucket(key=key, doc_count=n) for key, n in ordered[:limit]]

    async def close(self) -> None:
        """No-op for the in-memory gateway."""


# ------------------------------------------------------------------
# Field access
# ------------------------------------------------------------------


def _field_value(source: dict[str, Any], field: str) -> Any:
    field = field.split("^", 1)[0]
    if field in source:
        return source[field]
    # ``x.keyword`` is the unanalyzed copy of ``x``
    if field.endswith(".keyword"):
        return source.get(field[: -len(".keyword")])
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _tokens(value: Any) -> set[str]:
    if value is None:
        return set()
    return set(_TOKEN_RE.findall(_stringify(value).lower()))


def _as_datetime(value: Any, round_up: bool = False) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.max if round_up else time.min)
    elif isinstance(value, str):
        if _DATE_ONLY_RE.match(value):
            return datetime.combine(date.fromisoformat(value), time.max if round_up else time.min)
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _comparable(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    dt = _as_datetime(value)
    if dt is not None:
        return dt
    return _stringify(value)


# ------------------------------------------------------------------
# Query evaluation
# ------------------------------------------------------------------


def _matches(clause: dict[str, Any], source: dict[str, Any]) -> bool:
    if not isinstance(clause, dict) or len(clause) != 1:
        raise SearchQueryError(f"Malformed query clause: {clause!r}")
    ((kind, body),) = clause.items()
    handler = _CLAUSES.get(kind)
    if handler is None:
        raise SearchQueryError(f"Unsupported query clause: {kind}")
    return handler(body, source)


def _single_field(body: dict[str, Any], kind: str) -> tuple[str, Any]:
    if not isinstance(body, dict) or len(body) != 1:
        raise SearchQueryError(f"{kind} expects exactly one field, got {body!r}")
    ((field, spec),) = body.items()
    return field, spec


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _match_all(body: dict[str, Any], source: dict[str, Any]) -> bool:
    return True


def _bool(body: dict[str, Any], source: dict[str, Any]) -> bool:
    must = _as_list(body.get("must")) + _as_list(body.get("filter"))
    if not all(_matches(c, source) for c in must):
        return False
    if any(_matches(c, source) for c in _as_list(body.get("must_not"))):
        return False
    should = _as_list(body.get("should"))
    if should and not must:
        return any(_matches(c, source) for c in should)
    return True


def _term(body: dict[str, Any], source: dict[str, Any]) -> bool:
    field, spec = _single_field(body, "term")
    expected = spec.get("value") if isinstance(spec, dict) else spec
    value = _field_value(source, field)
    return value is not None and _stringify(value) == _stringify(expected)


def _glob_regex(pattern: str, escapes: bool = False) -> str:
    """``*`` and ``?`` are wildcards; with *escapes*, ``\\x`` is a literal ``x``."""
    parts: list[str] = []
    chars = iter(pattern)
    for ch in chars:
        if escapes and ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return "".join(parts)


def _wildcard(body: dict[str, Any], source: dict[str, Any]) -> bool:
    field, spec = _single_field(body, "wildcard")
    if isinstance(spec, dict):
        pattern = spec.get("value", spec.get("wildcard"))
        flags = re.IGNORECASE if spec.get("case_insensitive") else 0
    else:
        pattern, flags = spec, 0
    value = _field_value(source, field)
    if value is None or pattern is None:
        return False
    return re.fullmatch(_glob_regex(pattern), _stringify(value), flags | re.DOTALL) is not None


def _query_string(body: dict[str, Any], source: dict[str, Any]) -> bool:
    query = body.get("query")
    fields = body.get("fields") or [body.get("default_field")]
    if not isinstance(query, str) or not all(fields):
        raise SearchQueryError(f"Unsupported query_string: {body!r}")
    regex = _glob_regex(query, escapes=True)
    for field in fields:
        value = _field_value(source, field)
        if value is not None and re.fullmatch(regex, _stringify(value), re.IGNORECASE | re.DOTALL):
            return True
    return False


def _multi_match(body: dict[str, Any], source: dict[str, Any]) -> bool:
    wanted = _tokens(body.get("query"))
    if not wanted:
        return False
    return any(wanted & _tokens(_field_value(source, field)) for field in body.get("fields", []))


_RANGE_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "gte": lambda v, b: v >= b,
    "gt": lambda v, b: v > b,
    "lte": lambda v, b: v <= b,
    "lt": lambda v, b: v < b,
}


def _range(body: dict[str, Any], source: dict[str, Any]) -> bool:
    field, bounds = _single_field(body, "range")
    value = _field_value(source, field)
    if value is None:
        return False
    current = _comparable(value)
    for op, bound in bounds.items():
        if op not in _RANGE_OPS:
            continue
        if isinstance(current, datetime):
            # Missing time components round toward the inclusive side
            limit = _as_datetime(bound, round_up=op in ("lte", "gt"))
        else:
            limit = _comparable(bound)
        try:
            if limit is None or not _RANGE_OPS[op](current, limit):
                return False
        except TypeError as exc:
            raise SearchQueryError(f"Cannot compare {field} with {bound!r}") from exc
    return True


_CLAUSES: dict[str, Callable[[Any, dict[str, Any]], bool]] = {
    "match_all": _match_all,
    "bool": _bool,
    "term": _term,
    "wildcard": _wildcard,
    "query_string": _query_string,
    "multi_match": _multi_match,
    "range": _range,
}


# ------------------------------------------------------------------
# Sorting
# ------------------------------------------------------------------


def _sorted(
    docs: list[tuple[str, dict[str, Any]]],
    sort: list[dict[str, Any]],
) -> list[tuple[str, dict[str, Any]]]:
    result = list(docs)
    # Apply keys last-to-first so the first sort key dominates (stable sort)
    for spec in reversed(sort):
        if isinstance(spec, str):
            field, descending = spec, False
        else:
            ((field, opts),) = spec.items()
            order = opts.get("order", "asc") if isinstance(opts, dict) else opts
            descending = order == "desc"
        present = [d for d in result if _field_value(d[1], field) is not None]
        missing = [d for d in result if _field_value(d[1], field) is None]
        try:
            present.sort(key=lambda d: _comparable(_field_value(d[1], field)), reverse=descending)
        except TypeError as exc:
            raise SearchQueryError(f"Cannot sort on mixed values of {field}") from exc
        # Documents without the field go last in either direction
        result = present + missing
    return result
