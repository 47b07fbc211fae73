"""Tests for the localmem HTTP client."""

import json

import pytest
import respx
from httpx import ConnectError, Response

from localmem.client import (
    LocalMemoryClient,
    MemoryBackendError,
    RateLimiter,
    RateLimitExceeded,
    read_token,
)
from localmem.security import TOKEN_FILENAME

BASE_URL = "http://127.0.0.1:19877"


@pytest.fixture
def client():
    """Create a test client pointed at the default local URL."""
    return LocalMemoryClient(base_url=BASE_URL, token="test-token", container_tag="proj1")


class TestClientSetup:
    """Tests for client construction."""

    @pytest.mark.parametrize("url", ["http://example.com:19877", "http://192.168.1.2", "ftp://localhost"])
    def test_non_loopback_url_refused(self, url):
        with pytest.raises(ValueError, match="loopback"):
            LocalMemoryClient(base_url=url, token="t")

    def test_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOCALMEM_URL", "http://localhost:4000/")
        assert LocalMemoryClient(token="t").base_url == "http://localhost:4000"

    def test_port_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOCALMEM_PORT", "4001")
        assert LocalMemoryClient(token="t").base_url == "http://127.0.0.1:4001"

    def test_token_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOCALMEM_TOKEN", "env-token")
        assert read_token() == "env-token"

    def test_token_from_file(self, tmp_path):
        (tmp_path / TOKEN_FILENAME).write_text("file-token\n")
        assert read_token(tmp_path) == "file-token"

    def test_missing_token_file(self, tmp_path):
        assert read_token(tmp_path) is None


class TestLocalMemoryClient:
    """Tests for LocalMemoryClient requests."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_bearer_token(self, client):
        route = respx.get(f"{BASE_URL}/health").mock(
            return_value=Response(200, json={"status": "ok"})
        )

        await client.health_check()
        assert route.calls.last.request.headers["Authorization"] == "Bearer test-token"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_is_healthy_returns_true(self, client):
        respx.get(f"{BASE_URL}/health").mock(
            return_value=Response(200, json={"status": "ok", "storage": "json"})
        )

        assert await client.is_healthy() is True
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_is_healthy_returns_false_on_error(self, client):
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(500))

        assert await client.is_healthy() is False
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_is_healthy_returns_false_when_unreachable(self, client):
        respx.get(f"{BASE_URL}/health").mock(side_effect=ConnectError("refused"))

        assert await client.is_healthy() is False
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_add_memory(self, client):
        route = respx.post(f"{BASE_URL}/add").mock(
            return_value=Response(200, json={"id": "mem-1", "status": "ok"})
        )

        result = await client.add_memory("User prefers TypeScript", metadata={"source": "test"}, custom_id="mem-1")
        assert result == {"id": "mem-1", "status": "ok", "containerTag": "proj1"}

        body = json.loads(route.calls.last.request.content)
        assert body == {
            "content": "User prefers TypeScript",
            "containerTag": "proj1",
            "metadata": {"source": "test"},
            "customId": "mem-1",
        }
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_caps_limit(self, client):
        route = respx.post(f"{BASE_URL}/search/memories").mock(
            return_value=Response(200, json={"results": [], "total": 0, "timing": 1})
        )

        await client.search("alpha gamma", container_tag="other", limit=500)
        body = json.loads(route.calls.last.request.content)
        assert body == {"q": "alpha gamma", "containerTag": "other", "limit": 50}
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_search_skips_request(self, client):
        route = respx.post(f"{BASE_URL}/search/memories")

        result = await client.search("   ")
        assert result == {"results": [], "total": 0, "timing": 0}
        assert not route.called
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_profile_with_query(self, client):
        route = respx.post(f"{BASE_URL}/profile").mock(
            return_value=Response(200, json={"profile": {"static": ["x"], "dynamic": []}})
        )

        result = await client.get_profile(query="typescript")
        assert result["profile"]["static"] == ["x"]
        assert json.loads(route.calls.last.request.content) == {"containerTag": "proj1", "q": "typescript"}
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_memories(self, client):
        route = respx.post(f"{BASE_URL}/memories/list").mock(
            return_value=Response(200, json={"memories": []})
        )

        await client.list_memories(limit=5)
        assert json.loads(route.calls.last.request.content) == {"containerTags": "proj1", "limit": 5}
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_memory_not_found(self, client):
        respx.delete(f"{BASE_URL}/memories/missing").mock(
            return_value=Response(404, json={"error": "Memory not found"})
        )

        with pytest.raises(MemoryBackendError) as exc_info:
            await client.delete_memory("missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.error == "Memory not found"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_error_body(self, client):
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(502, text="Bad Gateway"))

        with pytest.raises(MemoryBackendError) as exc_info:
            await client.health_check()
        assert exc_info.value.error == "Bad Gateway"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_blocks_before_request(self):
        client = LocalMemoryClient(base_url=BASE_URL, token="t", rate_limiter=RateLimiter(max_calls=1))
        route = respx.get(f"{BASE_URL}/health").mock(
            return_value=Response(200, json={"status": "ok"})
        )

        await client.health_check()
        with pytest.raises(RateLimitExceeded):
            await client.health_check()
        assert route.call_count == 1
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_async_context_manager_closes(self):
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))

        async with LocalMemoryClient(base_url=BASE_URL, token="t") as client:
            await client.health_check()
        assert client._client is None
