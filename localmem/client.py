"""HTTP client for the localmem backend.

Makes authenticated requests to a local localmem server, with a
client-side rate limit and error mapping.
"""

import os
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable
from urllib.parse import quote, urlparse

import httpx

from localmem.log_config import get_logger
from localmem.security import TOKEN_FILENAME, is_loopback_host, sanitize_query

log = get_logger("client")

DEFAULT_BACKEND_URL = "http://127.0.0.1:19877"
DEFAULT_CONTAINER_TAG = "default"
RATE_LIMIT_MAX_CALLS = 100
RATE_LIMIT_WINDOW_SECONDS = 60.0
MAX_CLIENT_SEARCH_LIMIT = 50


class MemoryBackendError(Exception):
    """Error from the localmem backend."""

    def __init__(self, status_code: int, error: str):
        self.status_code = status_code
        self.error = error
        super().__init__(f"Backend error {status_code}: {error}")


class RateLimitExceeded(Exception):
    """Raised when the client exceeds its call budget."""


class RateLimiter:
    """Sliding-window rate limiter: at most ``max_calls`` per ``window`` seconds."""

    def __init__(
        self,
        max_calls: int = RATE_LIMIT_MAX_CALLS,
        window: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_calls = max_calls
        self.window = window
        self._clock = clock
        self._calls: deque[float] = deque()

    def is_allowed(self) -> bool:
        """Record a call if it fits in the window; return whether it did."""
        now = self._clock()
        while self._calls and now - self._calls[0] >= self.window:
            self._calls.popleft()
        if len(self._calls) >= self.max_calls:
            return False
        self._calls.append(now)
        return True

    def check(self) -> None:
        """Record a call or raise RateLimitExceeded."""
        if not self.is_allowed():
            raise RateLimitExceeded(
                f"Rate limit exceeded: {self.max_calls} calls per {self.window:g}s"
            )


def _default_data_dir() -> Path:
    return Path(os.environ.get("LOCALMEM_DATA_DIR", str(Path.home() / ".localmem"))).expanduser()


def read_token(data_dir: Path | None = None) -> str | None:
    """Read the auth token from LOCALMEM_TOKEN or the server's token file."""
    env_token = os.environ.get("LOCALMEM_TOKEN")
    if env_token:
        return env_token.strip()

    token_path = (data_dir or _default_data_dir()) / TOKEN_FILENAME
    try:
        return token_path.read_text().strip() or None
    except OSError:
        return None


def _default_base_url() -> str:
    url = os.environ.get("LOCALMEM_URL")
    if url:
        return url
    port = os.environ.get("LOCALMEM_PORT")
    return f"http://127.0.0.1:{port}" if port else DEFAULT_BACKEND_URL


class LocalMemoryClient:
    """Async HTTP client for the localmem API.

    Handles:
    - Bearer token authentication
    - Loopback-only base URLs
    - Client-side rate limiting
    - Error mapping to MemoryBackendError
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        container_tag: str = DEFAULT_CONTAINER_TAG,
        timeout: float = 30.0,
        rate_limiter: RateLimiter | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Server URL (defaults to LOCALMEM_URL env or 127.0.0.1)
            token: Bearer token (defaults to LOCALMEM_TOKEN env or the token file)
            container_tag: Tag used when a call does not name one
            timeout: Request timeout in seconds
            rate_limiter: Call budget (default: 100 calls per minute)

        Raises:
            ValueError: If the base URL does not point at a loopback host
        """
        self.base_url = (base_url or _default_base_url()).rstrip("/")
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not is_loopback_host(parsed.hostname):
            raise ValueError(f"localmem URL must be a loopback http(s) URL, got {self.base_url!r}")

        self.token = token or read_token()
        self.container_tag = container_tag
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LocalMemoryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, path: str, json_data: dict | None = None) -> dict:
        """Make a rate-limited request to the backend.

        Raises:
            RateLimitExceeded: If the call budget is spent
            MemoryBackendError: On a non-2xx response or a transport failure
        """
        self.rate_limiter.check()
        client = await self._get_client()

        try:
            response = await client.request(method=method, url=path, json=json_data)
        except httpx.RequestError as e:
            log.error(f"Request to {path} failed: {e}")
            raise MemoryBackendError(0, str(e)) from e

        if response.status_code >= 400:
            try:
                error = response.json().get("error", response.text)
            except ValueError:
                error = response.text
            raise MemoryBackendError(response.status_code, error)

        return response.json()

    # ═══════════════════════════════════════════════════════════════════════════════
    # MEMORIES API
    # ═══════════════════════════════════════════════════════════════════════════════

    async def add_memory(
        self,
        content: str,
        container_tag: str | None = None,
        metadata: dict[str, Any] | None = None,
        custom_id: str | None = None,
    ) -> dict:
        """Store a memory; returns ``{id, status, containerTag}``."""
        tag = container_tag or self.container_tag
        data: dict[str, Any] = {"content": content, "containerTag": tag}
        if metadata:
            data["metadata"] = metadata
        if custom_id:
            data["customId"] = custom_id

        result = await self._request("POST", "/add", json_data=data)
        return {"id": result["id"], "status": result.get("status"), "containerTag": tag}

    async def search(self, query: str, container_tag: str | None = None, limit: int = 10) -> dict:
        """Search memories; an empty query returns no results without a request."""
        safe_query = sanitize_query(query)
        if not safe_query:
            return {"results": [], "total": 0, "timing": 0}

        data = {
            "q": safe_query,
            "containerTag": container_tag or self.container_tag,
            "limit": min(limit, MAX_CLIENT_SEARCH_LIMIT),
        }
        return await self._request("POST", "/search/memories", json_data=data)

    async def get_profile(self, container_tag: str | None = None, query: str | None = None) -> dict:
        """Get the profile of a tag, with search results when ``query`` is given."""
        data: dict[str, Any] = {"containerTag": container_tag or self.container_tag}
        safe_query = sanitize_query(query) if query else ""
        if safe_query:
            data["q"] = safe_query
        return await self._request("POST", "/profile", json_data=data)

    async def list_memories(self, container_tag: str | None = None, limit: int = 20) -> dict:
        """List the most recent memories of a tag."""
        data = {"containerTags": container_tag or self.container_tag, "limit": limit}
        return await self._request("POST", "/memories/list", json_data=data)

    async def delete_memory(self, memory_id: str) -> dict:
        """Soft-delete a memory by id."""
        return await self._request("DELETE", f"/memories/{quote(memory_id, safe='')}")

    # ═══════════════════════════════════════════════════════════════════════════════
    # HEALTH CHECK
    # ═══════════════════════════════════════════════════════════════════════════════

    async def health_check(self) -> dict:
        """Check backend health."""
        return await self._request("GET", "/health")

    async def is_healthy(self) -> bool:
        """Check if backend is healthy and reachable."""
        try:
            result = await self.health_check()
            return result.get("status") == "ok"
        except (MemoryBackendError, RateLimitExceeded):
            return False
