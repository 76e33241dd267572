"""Search gateways: adapters between the query router and a search backend."""

from audit_search.gateway.base import Bucket, SearchGateway, SearchHits

__all__ = ["Bucket", "SearchGateway", "SearchHits"]
