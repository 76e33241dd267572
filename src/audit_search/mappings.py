"""Index definitions for the two audit indices.

The router relies on these field types: exact filters and aggregations run
against ``keyword`` fields, substring and full-text matching against
``text`` fields, and wildcard patterns against the ``.keyword`` copies.
"""

from typing import Any

TRAFFIC_INDEX_MAPPING: dict[str, Any] = {
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "timestamp": {"type": "date"},
            "uri": {
                "type": "text",
                "fields": {"keyword": {"type": "keyword", "ignore_above": 2048}},
            },
            "method": {"type": "keyword"},
            "direction": {"type": "keyword"},
            "statusCode": {"type": "keyword"},
            "requestBody": {"type": "text"},
            "responseBody": {"type": "text"},
        }
    }
}

CALL_INDEX_MAPPING: dict[str, Any] = {
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "timestamp": {"type": "date"},
            "method": {
                "type": "text",
                "fields": {"keyword": {"type": "keyword", "ignore_above": 512}},
            },
            "level": {"type": "keyword"},
            "eventType": {"type": "keyword"},
            "correlationId": {"type": "keyword"},
            "args": {"type": "text"},
            "result": {"type": "text"},
            "errorMessage": {"type": "text"},
        }
    }
}
