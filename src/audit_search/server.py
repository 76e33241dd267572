"""FastAPI application factory and CLI entrypoint for audit-search."""

import argparse
import logging
import os
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

import yaml
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from audit_search._version import __version__
from audit_search.errors import (
    BackendUnavailableError,
    InvalidParameterError,
    SearchBackendError,
)
from audit_search.gateway.base import SearchGateway
from audit_search.mappings import CALL_INDEX_MAPPING, TRAFFIC_INDEX_MAPPING
from audit_search.middleware import AccessLogMiddleware
from audit_search.models import (
    CallRecord,
    SearchResult,
    ServiceConfig,
    StatsResult,
    TrafficRecord,
)
from audit_search.service import CallSearchService, TrafficSearchService

logger = logging.getLogger(__name__)

# Plain calendar dates only: no time component, no epoch numbers
ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def _iso_date(param: str, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise RequestValidationError(
            [
                {
                    "type": "date_from_datetime_parsing",
                    "loc": ("query", param),
                    "msg": f"Invalid date: {exc}",
                    "input": value,
                }
            ]
        ) from exc


# ------------------------------------------------------------------
# Gateway factory
# ------------------------------------------------------------------


def create_gateway(config: ServiceConfig) -> SearchGateway:
    backend = config.backend
    if backend == "elasticsearch":
        from audit_search.gateway.elasticsearch_gateway import ElasticsearchGateway, create_client

        return ElasticsearchGateway(create_client(config), request_timeout=config.request_timeout)
    elif backend == "memory":
        from audit_search.gateway.memory_gateway import MemorySearchGateway

        return MemorySearchGateway()
    else:
        raise ValueError(f"Unknown search backend: {backend}")


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------


def create_app(
    config: ServiceConfig | None = None,
    gateway: SearchGateway | None = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if config is None:
        config = ServiceConfig()

    if gateway is None:
        gateway = create_gateway(config)

    traffic = TrafficSearchService(
        gateway,
        index=config.traffic_index,
        analyzer=config.full_text_analyzer,
        bucket_limit=config.traffic_stats_bucket_limit,
    )
    calls = CallSearchService(
        gateway,
        index=config.call_index,
        analyzer=config.full_text_analyzer,
        bucket_limit=config.call_stats_bucket_limit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_index = getattr(gateway, "ensure_index", None)
        if config.create_missing_indices and ensure_index is not None:
            await ensure_index(config.traffic_index, TRAFFIC_INDEX_MAPPING)
            await ensure_index(config.call_index, CALL_INDEX_MAPPING)
        yield
        await gateway.close()

    app = FastAPI(title="audit-search", version=__version__, lifespan=lifespan)

    # -- Middleware ---------------------------------------------------------

    if config.access_log:
        app.add_middleware(AccessLogMiddleware)

    # -- Error mapping -----------------------------------------------------

    @app.exception_handler(InvalidParameterError)
    async def invalid_parameter(request: Request, exc: InvalidParameterError):
        return JSONResponse(
            status_code=400,
            content={"error": str(exc), "details": [{"loc": ["query", exc.param], "msg": str(exc)}]},
        )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        details = [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request parameters", "details": details},
        )

    @app.exception_handler(BackendUnavailableError)
    async def backend_unavailable(request: Request, exc: BackendUnavailableError):
        logger.error("Search backend unavailable for %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @app.exception_handler(SearchBackendError)
    async def backend_failure(request: Request, exc: SearchBackendError):
        logger.exception("Search failed for %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # -- Health endpoints --------------------------------------------------

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # -- HTTP traffic endpoints --------------------------------------------

    @app.get("/api/v1/requests/search", response_model=SearchResult[TrafficRecord])
    async def search_requests(
        query: str | None = Query(None),
        status_code: str | None = Query(None, alias="statusCode"),
        page: int = Query(0, ge=0),
        size: int = Query(10, ge=1),
    ):
        return await traffic.search_full_text(query, status_code, page=page, size=size)

    @app.get("/api/v1/requests/stats", response_model=StatsResult)
    async def request_stats(
        group_by: str = Query("statusCode", alias="groupBy"),
        direction: str | None = Query(None),
    ):
        return await traffic.get_stats(group_by, direction)

    @app.get("/api/v1/requests", response_model=SearchResult[TrafficRecord])
    async def find_requests(
        uri: str | None = Query(None),
        method: str | None = Query(None),
        status_code: str | None = Query(None, alias="statusCode"),
        page: int = Query(0, ge=0),
        size: int = Query(10, ge=1),
    ):
        return await traffic.search_by_fields(uri, method, status_code, page=page, size=size)

    # -- Method call endpoints ---------------------------------------------

    @app.get("/api/v1/methods/search", response_model=SearchResult[CallRecord])
    async def search_methods(
        query: str | None = Query(None),
        level: str | None = Query(None),
        page: int = Query(0, ge=0),
        size: int = Query(10, ge=1),
    ):
        return await calls.search_full_text(query, level, page=page, size=size)

    @app.get("/api/v1/methods/stats", response_model=StatsResult)
    async def method_stats(
        group_by: str = Query("level", alias="groupBy"),
        date_from: str | None = Query(None, alias="from", pattern=ISO_DATE_PATTERN),
        date_to: str | None = Query(None, alias="to", pattern=ISO_DATE_PATTERN),
    ):
        return await calls.get_stats(group_by, _iso_date("from", date_from), _iso_date("to", date_to))

    @app.get("/api/v1/methods", response_model=SearchResult[CallRecord])
    async def find_methods(
        method: str | None = Query(None),
        log_level: str | None = Query(None, alias="logLevel"),
        event_type: str | None = Query(None, alias="eventType"),
        page: int = Query(0, ge=0),
        size: int = Query(10, ge=1),
    ):
        return await calls.search_by_fields(method, log_level, event_type, page=page, size=size)

    # Exposed for tests and embedding applications
    app.state.config = config  # type: ignore[attr-defined]
    app.state.gateway = gateway  # type: ignore[attr-defined]
    app.state.traffic = traffic  # type: ignore[attr-defined]
    app.state.calls = calls  # type: ignore[attr-defined]

    return app


# ------------------------------------------------------------------
# Config loading
# ------------------------------------------------------------------


def _split_hosts(value: str) -> list[str]:
    return [h.strip() for h in value.split(",") if h.strip()]


# Environment variable -> (config field, converter)
_ENV_VARS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "AUDIT_SEARCH_HOST": ("host", str),
    "AUDIT_SEARCH_PORT": ("port", int),
    "AUDIT_SEARCH_BACKEND": ("backend", str),
    "AUDIT_SEARCH_ES_HOSTS": ("es_hosts", _split_hosts),
    "AUDIT_SEARCH_ES_API_KEY": ("es_api_key", str),
    "AUDIT_SEARCH_ES_USERNAME": ("es_username", str),
    "AUDIT_SEARCH_ES_PASSWORD": ("es_password", str),
    "AUDIT_SEARCH_REQUEST_TIMEOUT": ("request_timeout", float),
    "AUDIT_SEARCH_LOG_LEVEL": ("log_level", str),
}

_CLI_FIELDS = ("host", "port", "backend", "log_level")


def _load_config(args: argparse.Namespace) -> ServiceConfig:
    """Merge the YAML file, ``AUDIT_SEARCH_*`` variables and CLI flags, later sources winning."""
    data: dict[str, Any] = {}

    config_path = getattr(args, "config", None)
    if config_path:
        with open(config_path) as f:
            data.update(yaml.safe_load(f) or {})

    for env_key, (field, convert) in _ENV_VARS.items():
        raw = os.environ.get(env_key)
        if raw is not None:
            data[field] = convert(raw)

    for field in _CLI_FIELDS:
        value = getattr(args, field, None)
        if value is not None:
            data[field] = value
    if getattr(args, "es_host", None):
        data["es_hosts"] = args.es_host

    return ServiceConfig(**data)


# ------------------------------------------------------------------
# CLI entrypoint
# ------------------------------------------------------------------


def main() -> None:
    parser = argparse.ArgumentParser(description="audit-search: read-only query API over audit indices")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config")
    parser.add_argument(
        "--es-host",
        type=str,
        action="append",
        help="Elasticsearch URL (can be repeated)",
    )
    parser.add_argument("--backend", type=str, default=None, choices=["elasticsearch", "memory"])
    parser.add_argument("--log-level", type=str, default=None)

    args = parser.parse_args()
    config = _load_config(args)

    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO))

    app = create_app(config)

    import uvicorn

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
