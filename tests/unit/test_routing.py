"""Tests for presence/wildcard classification and the decision-table routers."""

import itertools

import pytest

from audit_search.routing import (
    CALL_SCHEMA,
    TRAFFIC_SCHEMA,
    FieldMatcher,
    QueryRouter,
    build_decision_table,
    combine,
    contains_wildcard,
    escape_query_string,
    is_present,
    presence_mask,
    term_predicate,
    wildcard_predicate,
)

TRAFFIC_FULL_TEXT = {
    "multi_match": {
        "query": "orders",
        "fields": ["uri^2", "requestBody", "responseBody"],
        "type": "best_fields",
    }
}

CALL_FULL_TEXT = {
    "multi_match": {
        "query": "createUser",
        "fields": ["method^2", "args", "result"],
        "type": "best_fields",
    }
}


def _contains(field: str, escaped: str) -> dict:
    return {"query_string": {"query": f"*{escaped}*", "fields": [field], "analyze_wildcard": True}}


@pytest.fixture
def traffic_router() -> QueryRouter:
    return QueryRouter(TRAFFIC_SCHEMA)


@pytest.fixture
def call_router() -> QueryRouter:
    return QueryRouter(CALL_SCHEMA)


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


class TestPresence:
    @pytest.mark.parametrize("value", [None, "", " ", "\t\n", "   \r "])
    def test_blank_is_absent(self, value):
        assert not is_present(value)

    @pytest.mark.parametrize("value", ["a", " 200 ", "*", "?"])
    def test_non_blank_is_present(self, value):
        assert is_present(value)

    def test_mask_sets_one_bit_per_present_value(self):
        assert presence_mask(None, None, None) == 0
        assert presence_mask("x", None, None) == 0b001
        assert presence_mask(None, "x", "  ") == 0b010
        assert presence_mask("x", "", "y") == 0b101
        assert presence_mask("x", "y", "z") == 0b111


class TestWildcardDetection:
    @pytest.mark.parametrize(
        "value",
        ["*", "?", "/api/*", "*Service.*", "G?T", "a*b?c", "trailing?"],
    )
    def test_glob_characters_route_to_wildcard(self, value, traffic_router: QueryRouter):
        assert contains_wildcard(value)
        routed = traffic_router.route_fields((value, None, None))
        assert routed.query == {"wildcard": {"uri.keyword": {"value": value}}}

    @pytest.mark.parametrize(
        "value",
        ["/api/orders", "orders", "a+b", "[x]", "100%", "back\\slash"],
    )
    def test_plain_values_route_to_substring(self, value, traffic_router: QueryRouter):
        assert not contains_wildcard(value)
        routed = traffic_router.route_fields((value, None, None))
        assert "query_string" in routed.query
        assert routed.shape == "uri:contains"

    def test_property_holds_for_every_matcher_with_a_pattern_field(self):
        samples = ["plain", "with*star", "with?mark", "both*?", "", "x y"]
        matchers = [m for m in TRAFFIC_SCHEMA.field_matchers + CALL_SCHEMA.field_matchers if m.pattern_field]
        for matcher, value in itertools.product(matchers, samples):
            predicate = matcher.predicate(value)
            assert (predicate.label == f"{matcher.param}:wildcard") == contains_wildcard(value)

    def test_exact_filters_never_interpret_glob_characters(self):
        assert FieldMatcher("statusCode", "statusCode").predicate("2*").clause == {"term": {"statusCode": "2*"}}

    def test_escape_query_string(self):
        assert escape_query_string("/api/orders") == "\\/api\\/orders"
        assert escape_query_string("a b") == "a\\ b"
        assert escape_query_string("plain") == "plain"


# ------------------------------------------------------------------
# Decision table
# ------------------------------------------------------------------


class TestDecisionTable:
    def test_table_has_one_entry_per_mask(self):
        table = build_decision_table(TRAFFIC_SCHEMA.field_matchers)
        assert len(table) == 8
        assert table[0] == ()
        assert [idx for idx, _ in table[0b111]] == [0, 1, 2]
        assert [idx for idx, _ in table[0b101]] == [0, 2]

    def test_combine_single_predicate_is_unwrapped(self):
        shape, query = combine([term_predicate("statusCode", "statusCode", "200")])
        assert shape == "statusCode:term"
        assert query == {"term": {"statusCode": "200"}}

    def test_combine_splits_scoring_and_filter_clauses(self):
        shape, query = combine(
            [
                wildcard_predicate("uri", "uri.keyword", "/api/*"),
                term_predicate("method", "method", "GET"),
            ]
        )
        assert shape == "uri:wildcard+method:term"
        assert query == {
            "bool": {
                "must": [{"wildcard": {"uri.keyword": {"value": "/api/*"}}}],
                "filter": [{"term": {"method": "GET"}}],
            }
        }

    def test_combine_nothing_is_match_all(self):
        assert combine([]) == ("match_all", {"match_all": {}})


# ------------------------------------------------------------------
# Traffic routing
# ------------------------------------------------------------------


class TestTrafficFullText:
    @pytest.mark.parametrize(
        "query, status_code, expected_shape, expected_query",
        [
            (
                "orders",
                "200",
                "full_text+statusCode:term",
                {"bool": {"must": [TRAFFIC_FULL_TEXT], "filter": [{"term": {"statusCode": "200"}}]}},
            ),
            ("orders", None, "full_text", TRAFFIC_FULL_TEXT),
            (None, "200", "statusCode:term", {"term": {"statusCode": "200"}}),
            (None, None, "match_all", {"match_all": {}}),
        ],
    )
    def test_all_presence_combinations(self, traffic_router, query, status_code, expected_shape, expected_query):
        routed = traffic_router.route_full_text(query, status_code)
        assert routed.shape == expected_shape
        assert routed.query == expected_query

    @pytest.mark.parametrize("blank", ["", "  ", "\t"])
    def test_blank_behaves_like_absent(self, traffic_router, blank):
        assert traffic_router.route_full_text(blank, "200") == traffic_router.route_full_text(None, "200")
        assert traffic_router.route_full_text("orders", blank) == traffic_router.route_full_text("orders", None)
        assert traffic_router.route_full_text(blank, blank) == traffic_router.route_full_text(None, None)

    def test_full_text_ignores_glob_characters(self, traffic_router):
        routed = traffic_router.route_full_text("ord*", None)
        assert routed.shape == "full_text"
        assert routed.query["multi_match"]["query"] == "ord*"

    def test_analyzer_is_forwarded(self):
        routed = QueryRouter(TRAFFIC_SCHEMA, analyzer="audit_analyzer").route_full_text("orders", None)
        assert routed.query["multi_match"]["analyzer"] == "audit_analyzer"

    def test_pagination_and_sort(self, traffic_router):
        routed = traffic_router.route_full_text(None, None, page=3, size=25)
        assert routed.offset == 75
        assert routed.size == 25
        assert routed.sort == [{"timestamp": {"order": "desc"}}]


class TestTrafficFields:
    URI = _contains("uri", "\\/api\\/orders")
    METHOD = {"term": {"method": "GET"}}
    STATUS = {"term": {"statusCode": "200"}}

    @pytest.mark.parametrize(
        "uri, method, status_code, expected_shape, expected_query",
        [
            (None, None, None, "match_all", {"match_all": {}}),
            ("/api/orders", None, None, "uri:contains", URI),
            (None, "GET", None, "method:term", METHOD),
            (None, None, "200", "statusCode:term", STATUS),
            ("/api/orders", "GET", None, "uri:contains+method:term", {"bool": {"must": [URI], "filter": [METHOD]}}),
            ("/api/orders", None, "200", "uri:contains+statusCode:term", {"bool": {"must": [URI], "filter": [STATUS]}}),
            (None, "GET", "200", "method:term+statusCode:term", {"bool": {"filter": [METHOD, STATUS]}}),
            (
                "/api/orders",
                "GET",
                "200",
                "uri:contains+method:term+statusCode:term",
                {"bool": {"must": [URI], "filter": [METHOD, STATUS]}},
            ),
        ],
    )
    def test_all_eight_combinations(self, traffic_router, uri, method, status_code, expected_shape, expected_query):
        routed = traffic_router.route_fields((uri, method, status_code))
        assert routed.shape == expected_shape
        assert routed.query == expected_query

    def test_every_mask_yields_a_distinct_shape(self, traffic_router):
        shapes = set()
        for mask in range(8):
            values = tuple("v" if mask & (1 << bit) else None for bit in range(3))
            shapes.add(traffic_router.route_fields(values).shape)
        assert len(shapes) == 8

    def test_wildcard_uri_in_three_way_branch(self, traffic_router):
        routed = traffic_router.route_fields(("/api/*", "GET", "200"))
        assert routed.shape == "uri:wildcard+method:term+statusCode:term"
        assert routed.query["bool"]["must"] == [{"wildcard": {"uri.keyword": {"value": "/api/*"}}}]

    def test_wildcard_method(self, traffic_router):
        routed = traffic_router.route_fields((None, "P*", None))
        assert routed.query == {"wildcard": {"method": {"value": "P*"}}}

    def test_each_parameter_is_classified_independently(self, traffic_router):
        routed = traffic_router.route_fields(("/api/orders", "DEL?TE", None))
        assert routed.shape == "uri:contains+method:wildcard"

    @pytest.mark.parametrize("blank", ["", "   "])
    def test_blank_behaves_like_absent(self, traffic_router, blank):
        for mask in range(8):
            with_blank = tuple("v" if mask & (1 << bit) else blank for bit in range(3))
            with_none = tuple("v" if mask & (1 << bit) else None for bit in range(3))
            assert traffic_router.route_fields(with_blank) == traffic_router.route_fields(with_none)

    def test_wrong_arity_is_rejected(self, traffic_router):
        with pytest.raises(ValueError):
            traffic_router.route_fields(("only-one",))


# ------------------------------------------------------------------
# Call routing
# ------------------------------------------------------------------


class TestCallRouting:
    METHOD = _contains("method", "Service")
    LEVEL = {"term": {"level": "ERROR"}}
    EVENT = {"term": {"eventType": "START"}}

    @pytest.mark.parametrize(
        "query, level, expected_shape, expected_query",
        [
            (
                "createUser",
                "ERROR",
                "full_text+level:term",
                {"bool": {"must": [CALL_FULL_TEXT], "filter": [{"term": {"level": "ERROR"}}]}},
            ),
            ("createUser", None, "full_text", CALL_FULL_TEXT),
            (None, "ERROR", "level:term", {"term": {"level": "ERROR"}}),
            (None, None, "match_all", {"match_all": {}}),
        ],
    )
    def test_full_text_combinations(self, call_router, query, level, expected_shape, expected_query):
        routed = call_router.route_full_text(query, level)
        assert routed.shape == expected_shape
        assert routed.query == expected_query

    @pytest.mark.parametrize(
        "method, level, event_type, expected_shape, expected_query",
        [
            (None, None, None, "match_all", {"match_all": {}}),
            ("Service", None, None, "method:contains", METHOD),
            (None, "ERROR", None, "level:term", LEVEL),
            (None, None, "START", "eventType:term", EVENT),
            ("Service", "ERROR", None, "method:contains+level:term", {"bool": {"must": [METHOD], "filter": [LEVEL]}}),
            ("Service", None, "START", "method:contains+eventType:term", {"bool": {"must": [METHOD], "filter": [EVENT]}}),
            (None, "ERROR", "START", "level:term+eventType:term", {"bool": {"filter": [LEVEL, EVENT]}}),
            (
                "Service",
                "ERROR",
                "START",
                "method:contains+level:term+eventType:term",
                {"bool": {"must": [METHOD], "filter": [LEVEL, EVENT]}},
            ),
        ],
    )
    def test_field_combinations(self, call_router, method, level, event_type, expected_shape, expected_query):
        routed = call_router.route_fields((method, level, event_type))
        assert routed.shape == expected_shape
        assert routed.query == expected_query

    def test_wildcard_method_uses_keyword_field(self, call_router):
        routed = call_router.route_fields(("*Service.*", None, None))
        assert routed.query == {"wildcard": {"method.keyword": {"value": "*Service.*"}}}

    def test_wildcard_detection_only_on_method(self, call_router):
        routed = call_router.route_fields((None, "ERR*", "ST?RT"))
        assert routed.shape == "level:term+eventType:term"
