"""Elasticsearch-backed search gateway.

Wraps a single ``AsyncElasticsearch`` client that is created once at startup
and shared by every request.  The gateway owns no other state.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import elasticsearch
from elasticsearch import AsyncElasticsearch

from audit_search.aggregation import aggregation_name
from audit_search.errors import BackendUnavailableError, SearchQueryError
from audit_search.gateway.base import Bucket, SearchHits
from audit_search.models import ServiceConfig

logger = logging.getLogger(__name__)


def create_client(config: ServiceConfig) -> AsyncElasticsearch:
    """Build the process-wide client from service configuration."""
    kwargs: dict[str, Any] = {
        "request_timeout": config.request_timeout,
        "verify_certs": config.verify_certs,
        # Failures are terminal for the request
        "max_retries": 0,
        "retry_on_timeout": False,
    }
    if config.es_api_key:
        kwargs["api_key"] = config.es_api_key
    elif config.es_username:
        kwargs["basic_auth"] = (config.es_username, config.es_password or "")
    return AsyncElasticsearch(config.es_hosts, **kwargs)


@contextmanager
def _translate_errors(action: str, index: str) -> Iterator[None]:
    """Re-raise client exceptions as :class:`SearchBackendError` subclasses."""
    try:
        yield
    except elasticsearch.ApiError as exc:
        logger.warning("%s on %s rejected (%s): %s", action, index, exc.status_code, exc)
        raise SearchQueryError(f"{action} on {index} failed: {exc}") from exc
    except (elasticsearch.ConnectionError, elasticsearch.ConnectionTimeout) as exc:
        logger.warning("%s on %s could not reach the backend: %s", action, index, exc)
        raise BackendUnavailableError(f"Search backend unavailable: {exc}") from exc
    except elasticsearch.SerializationError as exc:
        raise SearchQueryError(f"{action} on {index} returned an unreadable response: {exc}") from exc


class ElasticsearchGateway:
    """Issues routed queries through the official async client."""

    def __init__(
        self,
        client: AsyncElasticsearch,
        request_timeout: float | None = None,
    ) -> None:
        self._client = client
        self.request_timeout = request_timeout

    def _es(self) -> AsyncElasticsearch:
        if self.request_timeout is None:
            return self._client
        return self._client.options(request_timeout=self.request_timeout)

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
        with _translate_errors("Search", index):
            resp = await self._es().search(
                index=index,
                query=query,
                from_=offset,
                size=size,
                sort=sort,
                track_total_hits=True,
            )

        try:
            hits = resp["hits"]
            total = hits["total"]
            return SearchHits(
                hits=list(hits["hits"]),
                total=total["value"] if isinstance(total, dict) else int(total),
            )
        except (KeyError, TypeError) as exc:
            raise SearchQueryError(f"Unexpected search response from {index}") from exc

    async def execute_aggregation(
        self,
        index: str,
        pre_filter: list[dict[str, Any]],
        field: str,
        bucket_limit: int | None,
    ) -> list[Bucket]:
        name = aggregation_name(field)
        terms: dict[str, Any] = {"field": field}
        if bucket_limit is not None:
            terms["size"] = bucket_limit

        with _translate_errors("Aggregation", index):
            resp = await self._es().search(
                index=index,
                query={"bool": {"filter": pre_filter}},
                size=0,
                aggregations={name: {"terms": terms}},
            )

        try:
            buckets = resp["aggregations"][name]["buckets"]
            return [Bucket(key=str(b.get("key_as_string", b["key"])), doc_count=int(b["doc_count"])) for b in buckets]
        except (KeyError, TypeError) as exc:
            raise SearchQueryError(f"Unexpected aggregation response from {index}") from exc

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    async def ensure_index(self, index: str, mapping: dict[str, Any]) -> bool:
        """Create *index* with *mapping* if missing.  Returns True when created."""
        with _translate_errors("Index creation", index):
            if await self._client.indices.exists(index=index):
                return False
            await self._client.indices.create(index=index, **mapping)
        logger.info("Created index %s", index)
        return True
