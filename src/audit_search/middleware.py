"""Per-request access logging.

Pure ASGI so it sees the final status code without buffering the body.
"""

import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class AccessLogMiddleware:
    """Logs ``METHOD path?query -> status (ms)`` once the response has started.

    Requests whose path is in ``exclude_paths`` (health probes) are passed
    through without logging.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        exclude_paths: tuple[str, ...] = ("/health",),
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            target = scope["path"]
            query = scope.get("query_string", b"")
            if query:
                target = f"{target}?{query.decode('latin-1')}"
            logger.info("%s %s -> %d (%.1f ms)", scope.get("method", ""), target, status_code, elapsed_ms)
