"""ASGI middleware for the localmem backend.

Pure ASGI classes rather than BaseHTTPMiddleware so each layer can answer
a request on its own (401, 413, preflight) without touching the router.

Request order (outermost first):
    LoopbackCORSMiddleware -> PrefixStripMiddleware -> AuthMiddleware
    -> BodySizeLimitMiddleware -> router
"""

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from localmem.errors import AuthError, LocalMemError, OversizeError, ValidationError
from localmem.log_config import get_logger
from localmem.security import extract_bearer_token, is_loopback_origin, verify_token

log = get_logger("auth.middleware")

API_PREFIX = "/v1"
HEALTH_PATH = "/health"
BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def error_response(error: LocalMemError, headers: dict[str, str] | None = None) -> JSONResponse:
    """Render an error as ``{"error": message}`` with its status."""
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


class PrefixStripMiddleware:
    """Accept every route with or without the ``/v1`` prefix."""

    def __init__(self, app: ASGIApp, prefix: str = API_PREFIX):
        self.app = app
        self.prefix = prefix

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            path = scope["path"]
            if path == self.prefix or path.startswith(self.prefix + "/"):
                scope = dict(scope)
                scope["path"] = path[len(self.prefix):] or "/"
        await self.app(scope, receive, send)


class AuthMiddleware:
    """Bearer token gate.

    OPTIONS requests short-circuit (preflights that reach this layer come
    from non-loopback origins or non-browser clients), /health is public,
    everything else needs ``Authorization: Bearer <token>``. Runs before
    routing, so unknown paths and malformed bodies still get 401.
    """

    EXCLUDED_PATHS = {HEALTH_PATH}

    def __init__(self, app: ASGIApp, token: str):
        self.app = app
        self.token = token

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            await Response(status_code=204)(scope, receive, send)
            return

        if scope["path"] in self.EXCLUDED_PATHS:
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        provided = extract_bearer_token(headers.get("authorization"))

        if provided is None:
            log.warning(f"Rejected {scope['method']} {scope['path']}: missing bearer token")
            error = AuthError("Missing bearer token")
        elif not verify_token(provided, self.token):
            log.warning(f"Rejected {scope['method']} {scope['path']}: invalid bearer token")
            error = AuthError("Invalid bearer token")
        else:
            await self.app(scope, receive, send)
            return

        response = error_response(error, headers={"WWW-Authenticate": "Bearer"})
        await response(scope, receive, send)


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_bytes``.

    A declared Content-Length over the cap is refused before reading;
    otherwise the body is buffered chunk by chunk and refused as soon as the
    running total passes the cap. The buffered body is replayed downstream.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in BODY_METHODS:
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            log.warning(f"Rejected body: Content-Length {declared} > {self.max_bytes}")
            await error_response(OversizeError(self.max_bytes))(scope, receive, send)
            return

        chunks: list[bytes] = []
        total = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            total += len(chunk)
            if total > self.max_bytes:
                log.warning(f"Rejected body mid-stream after {total} bytes (limit {self.max_bytes})")
                await error_response(OversizeError(self.max_bytes))(scope, receive, send)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)


class LoopbackCORSMiddleware(CORSMiddleware):
    """CORS that only ever allows loopback origins.

    Non-loopback origins get no CORS headers, so browsers block the
    cross-origin call; their preflights are refused with 400. Requests
    without an Origin pass straight through.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(
            app,
            allow_origins=(),
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
            max_age=600,
        )

    def is_allowed_origin(self, origin: str) -> bool:
        return is_loopback_origin(origin)

    def preflight_response(self, request_headers: Headers) -> Response:
        # Starlette copies its preflight headers onto rejections too
        if not self.is_allowed_origin(origin=request_headers["origin"]):
            log.debug(f"Rejected CORS preflight from {request_headers['origin']}")
            return error_response(ValidationError("Disallowed CORS origin"))
        return super().preflight_response(request_headers=request_headers)
