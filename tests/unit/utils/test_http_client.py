"""Unit tests for the aiohttp HTTP client.

Tests cover:
- Session lifecycle through the async context manager
- JSON POST and multipart upload requests
- Response body normalization
- Timeout, malformed URL and connection error handling
- Retry-After header parsing
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from bulk_notify.utils.http_client import AIOHTTPClient, parse_retry_after


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create mock aiohttp ClientSession."""
    session = AsyncMock(spec=aiohttp.ClientSession)
    return session


@pytest.fixture
def mock_response() -> AsyncMock:
    """Create mock aiohttp ClientResponse."""
    response = AsyncMock()
    response.status = 200
    response.json = AsyncMock(return_value={"id": "media-1"})
    response.headers = {"Content-Type": "application/json"}
    return response


@pytest.fixture
def client(mock_session: AsyncMock, mock_response: AsyncMock) -> AIOHTTPClient:
    """Create AIOHTTPClient wired to the mock session."""
    mock_session.post.return_value.__aenter__.return_value = mock_response
    http_client = AIOHTTPClient(default_timeout_seconds=5.0)
    http_client._session = mock_session  # pyright: ignore[reportPrivateUsage]  # testing internal state
    return http_client


class TestAIOHTTPClientBasics:
    """Test basic HTTP client functionality."""

    async def test_context_manager_creates_session(self) -> None:
        """Test that async context manager creates aiohttp session."""
        client = AIOHTTPClient()

        async with client:
            assert client._session is not None  # pyright: ignore[reportPrivateUsage]  # testing internal state
            assert isinstance(client._session, aiohttp.ClientSession)  # pyright: ignore[reportPrivateUsage]  # testing internal state

        # Session should be closed after context exit
        assert client._session is None  # pyright: ignore[reportPrivateUsage]  # testing internal state

    async def test_context_manager_closes_session_on_error(self) -> None:
        """Test that session is closed even when exception occurs."""
        client = AIOHTTPClient()

        with pytest.raises(ValueError, match="Test error"):
            async with client:
                raise ValueError("Test error")

        assert client._session is None  # pyright: ignore[reportPrivateUsage]  # testing internal state

    async def test_post_without_session_raises(self) -> None:
        """Test that using the client outside its context fails clearly."""
        client = AIOHTTPClient()

        with pytest.raises(RuntimeError, match="session not initialized"):
            _ = await client.post("https://api.example.com", {}, timeout=1.0)


class TestPost:
    """Test JSON POST requests."""

    async def test_successful_post(self, client: AIOHTTPClient, mock_session: AsyncMock) -> None:
        """Test status, body and headers of a successful request."""
        response = await client.post(
            "https://api.example.com/v2/whatsapp/messages/sendDirectly",
            {"to": "+85291234567"},
            timeout=5.0,
            headers={"X-API-Key": "key-123"},
        )

        assert response.status == 200
        assert response.body == {"id": "media-1"}
        assert response.headers == {"Content-Type": "application/json"}
        mock_session.post.assert_called_once_with(
            "https://api.example.com/v2/whatsapp/messages/sendDirectly",
            json={"to": "+85291234567"},
            headers={"X-API-Key": "key-123"},
        )

    async def test_error_status_is_returned(self, client: AIOHTTPClient, mock_response: AsyncMock) -> None:
        """Test non-2xx responses are returned for the caller to interpret."""
        mock_response.status = 429
        mock_response.json = AsyncMock(return_value={"error": {"message": "slow down"}})

        response = await client.post("https://api.example.com", {}, timeout=5.0)

        assert response.status == 429
        assert response.body == {"error": {"message": "slow down"}}

    async def test_non_json_body(self, client: AIOHTTPClient, mock_response: AsyncMock) -> None:
        """Test unparseable bodies become an empty mapping."""
        mock_response.json = AsyncMock(side_effect=aiohttp.ContentTypeError(Mock(), Mock()))

        response = await client.post("https://api.example.com", {}, timeout=5.0)

        assert response.body == {}

    async def test_non_mapping_json_body(self, client: AIOHTTPClient, mock_response: AsyncMock) -> None:
        """Test list bodies are wrapped under ``data``."""
        mock_response.json = AsyncMock(return_value=[1, 2])

        response = await client.post("https://api.example.com", {}, timeout=5.0)

        assert response.body == {"data": [1, 2]}

    async def test_timeout(self, client: AIOHTTPClient, mock_session: AsyncMock) -> None:
        """Test slow requests raise TimeoutError."""

        async def slow_request(*_args: object, **_kwargs: object) -> None:
            await asyncio.sleep(1.0)

        mock_session.post.return_value.__aenter__.side_effect = slow_request

        with pytest.raises(TimeoutError):
            _ = await client.post("https://api.example.com", {}, timeout=0.01)

    async def test_invalid_url(self, client: AIOHTTPClient, mock_session: AsyncMock) -> None:
        """Test malformed URLs raise ValueError."""
        mock_session.post.side_effect = aiohttp.InvalidURL("not a url")

        with pytest.raises(ValueError, match="Malformed URL"):
            _ = await client.post("not a url", {}, timeout=5.0)

    async def test_client_error_propagates(self, client: AIOHTTPClient, mock_session: AsyncMock) -> None:
        """Test connection errors are left for the caller to classify."""
        mock_session.post.side_effect = aiohttp.ClientConnectionError("reset")

        with pytest.raises(aiohttp.ClientConnectionError):
            _ = await client.post("https://api.example.com", {}, timeout=5.0)


class TestPostFile:
    """Test multipart uploads."""

    async def test_upload_sends_form_data(self, client: AIOHTTPClient, mock_session: AsyncMock) -> None:
        """Test the file is posted as form data with the given headers."""
        response = await client.post_file(
            "https://api.example.com/v2/whatsapp/media/+85290000000/upload",
            filename="qrcode.png",
            content=b"png-bytes",
            content_type="image/png",
            timeout=5.0,
            headers={"X-API-Key": "key-123"},
        )

        assert response.body == {"id": "media-1"}
        call = mock_session.post.call_args
        assert isinstance(call.kwargs["data"], aiohttp.FormData)
        assert call.kwargs["headers"] == {"X-API-Key": "key-123"}

    async def test_upload_without_session_raises(self) -> None:
        """Test uploads also require an open session."""
        with pytest.raises(RuntimeError):
            _ = await AIOHTTPClient().post_file(
                "https://api.example.com",
                filename="qrcode.png",
                content=b"x",
                content_type="image/png",
                timeout=1.0,
            )


class TestParseRetryAfter:
    """Test Retry-After parsing."""

    @pytest.mark.parametrize(
        ("headers", "expected"),
        [
            ({"Retry-After": "30"}, 30.0),
            ({"retry-after": "1.5"}, 1.5),
            ({}, None),
            ({"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}, None),
            ({"Retry-After": "-5"}, None),
        ],
    )
    def test_parse(self, headers: dict[str, str], expected: float | None) -> None:
        """Test numeric values are parsed and others ignored."""
        assert parse_retry_after(headers) == expected
