"""Error taxonomy for localmem.

Every error a client can observe maps to one HTTP status and is rendered
as ``{"error": message}`` by the backend exception handlers.
"""


class LocalMemError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message}


class ValidationError(LocalMemError):
    """Missing or invalid required field."""

    status_code = 400


class MalformedInputError(LocalMemError):
    """Request body is not valid JSON."""

    status_code = 400

    def __init__(self, message: str = "Invalid JSON"):
        super().__init__(message)


class AuthError(LocalMemError):
    """Missing or incorrect bearer token."""

    status_code = 401


class NotFoundError(LocalMemError):
    """Unknown record id."""

    status_code = 404

    def __init__(self, message: str = "Memory not found"):
        super().__init__(message)


class OversizeError(LocalMemError):
    """Request body exceeds the configured cap."""

    status_code = 413

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"Request body too large (limit {limit_bytes:,} bytes)")


class InternalError(LocalMemError):
    """Unexpected failure, e.g. the snapshot could not be written."""

    status_code = 500


__all__ = [
    "LocalMemError",
    "ValidationError",
    "MalformedInputError",
    "AuthError",
    "NotFoundError",
    "OversizeError",
    "InternalError",
]
