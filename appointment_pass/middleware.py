"""
Request size limit middleware.

Rejects requests whose body exceeds the configured maximum. A declared
Content-Length is checked up front; bodies without one (chunked uploads)
are counted as they stream in and buffered up to the limit before the
route sees them.
"""

import logging

from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import MAX_BODY_SIZE

logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware:
    """Answer 413 for request bodies larger than max_size bytes"""

    def __init__(self, app: ASGIApp, max_size: int = MAX_BODY_SIZE):
        self.app = app
        self.max_size = max_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            if content_length.isdigit() and int(content_length) > self.max_size:
                await self.reject(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        messages = []
        received = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > self.max_size:
                await self.reject(scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if messages:
                return messages.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    async def reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.warning(f"Rejected oversized request body: {scope.get('path')}")
        response = JSONResponse(status_code=413, content={"error": "Request body too large"})
        await response(scope, receive, send)
