"""Body decoding stage with a hard size ceiling.

The body is rejected with 413 as soon as it is known to exceed the ceiling:
immediately when ``Content-Length`` announces more, otherwise while the
streamed chunks are counted. A body of exactly the ceiling is accepted.

Accepted bodies are buffered, decoded when they are JSON or URL-encoded
(stored on ``request.state.body``) and replayed to the downstream stages.
"""

from urllib.parse import parse_qs

import orjson
from loguru import logger
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.constants import FORM_CONTENT_TYPES, INVALID_JSON_BODY, JSON_CONTENT_TYPES
from src.api.schemas.errors import ErrorResponse
from src.api.utils.responses import ORJSONResponse
from src.core.constants import DEFAULT_MAX_BODY_BYTES
from src.core.exceptions import InvalidBodyError, PayloadTooLargeError, VigilError

BODY_STATE_KEY = "body"


class BodyLimitMiddleware:
    """Buffers, bounds and decodes request bodies.

    Args:
        app: The ASGI application to wrap.
        max_body_bytes: Largest accepted body in bytes.
    """

    def __init__(
        self, app: ASGIApp, *, max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    ) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)

        content_length = headers.get("content-length", "")
        if content_length.isdigit() and int(content_length) > self.max_body_bytes:
            await self._reject(
                PayloadTooLargeError(self.max_body_bytes, int(content_length)),
                scope,
                receive,
                send,
            )
            return

        chunks: list[bytes] = []
        received = 0
        disconnect: Message | None = None
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                disconnect = message
                break

            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.max_body_bytes:
                await self._reject(
                    PayloadTooLargeError(self.max_body_bytes, received),
                    scope,
                    receive,
                    send,
                )
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)

        if body:
            try:
                decoded = self._decode(headers, body)
            except InvalidBodyError as error:
                await self._reject(error, scope, receive, send)
                return
            if decoded is not None:
                scope.setdefault("state", {})[BODY_STATE_KEY] = decoded

        replayed = False

        async def replay_receive() -> Message:
            nonlocal replayed
            if disconnect is not None:
                return disconnect
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

    @staticmethod
    def _decode(headers: Headers, body: bytes) -> object | None:
        media_type = headers.get("content-type", "").split(";")[0].strip().lower()

        if media_type in JSON_CONTENT_TYPES:
            try:
                return orjson.loads(body)
            except orjson.JSONDecodeError as exc:
                raise InvalidBodyError(INVALID_JSON_BODY, exc) from exc

        if media_type in FORM_CONTENT_TYPES:
            try:
                text = body.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise InvalidBodyError("Invalid form body", exc) from exc
            # Repeated keys keep every value
            return {
                key: values[0] if len(values) == 1 else values
                for key, values in parse_qs(text, keep_blank_values=True).items()
            }

        return None

    @staticmethod
    async def _reject(
        error: VigilError, scope: Scope, receive: Receive, send: Send
    ) -> None:
        logger.warning(
            "Rejected request body: {}",
            error.message,
            path=scope["path"],
            **error.context,
        )

        content = ErrorResponse(error=error.message)
        if isinstance(error, PayloadTooLargeError):
            content.limit = error.limit

        response = ORJSONResponse(
            status_code=error.status_code,
            content=content.to_content(),
        )
        await response(scope, receive, send)
