import asyncio
import logging

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class DeadlineMiddleware:
    """
    Cancel an HTTP request that runs past `timeout_seconds` and answer 504.

    Cancellation lands at the handler's next await; blocking work already
    handed to the thread pool finishes in the background and its result is
    dropped. If the response has already started it is left to finish.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float = 10.0) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "%s %s exceeded the %.1fs deadline", scope.get("method"), scope.get("path"), self.timeout_seconds
            )
            if response_started:
                return
            response = JSONResponse(
                status_code=504,
                content={"error": "GatewayTimeout", "message": "Request deadline exceeded"},
            )
            await response(scope, receive, send)
