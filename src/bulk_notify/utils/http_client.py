"""HTTP client abstraction for API-based transports.

This module provides the aiohttp implementation of the HTTPClient protocol
used by messaging-API transports. Each request is bounded by its own timeout.
Retrying is not done here: the queue's RecipientDispatcher owns retry and
backoff so that every channel follows one policy.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Self

import aiohttp

from bulk_notify.types.models import Response


def parse_retry_after(headers: Mapping[str, str]) -> float | None:
    """Parse a Retry-After header expressed in seconds.

    Args:
        headers: HTTP response headers

    Returns:
        Delay in seconds, or None if the header is absent or not numeric
    """
    retry_after = headers.get("Retry-After") or headers.get("retry-after")
    if not retry_after:
        return None
    try:
        value = float(retry_after)
    except ValueError:
        return None
    return value if value >= 0 else None


class AIOHTTPClient:
    """Async HTTP client implementing the HTTPClient protocol with aiohttp.

    Example:
        >>> async with AIOHTTPClient() as client:
        ...     response = await client.post(
        ...         "https://api.example.com/v2/messages",
        ...         {"to": "+85251234567"},
        ...         timeout=10.0,
        ...     )
    """

    def __init__(self, *, default_timeout_seconds: float = 30.0) -> None:
        """Initialize HTTP client.

        Args:
            default_timeout_seconds: Session-wide timeout ceiling in seconds
        """
        self._default_timeout_seconds: float = default_timeout_seconds
        self._session: aiohttp.ClientSession | None = None
        self._logger: logging.Logger = logging.getLogger(__name__)

    async def __aenter__(self) -> Self:
        timeout = aiohttp.ClientTimeout(total=self._default_timeout_seconds)
        self._session = aiohttp.ClientSession(
            timeout=timeout,
            json_serialize=json.dumps,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def post(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        timeout: float,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send HTTP POST request with a JSON body.

        Args:
            url: Target URL for the POST request
            payload: Request body data (will be JSON-encoded)
            timeout: Request timeout in seconds (keyword-only)
            headers: Extra request headers

        Returns:
            HTTP response with status, body, and headers

        Raises:
            TimeoutError: If request exceeds timeout
            ValueError: If URL is malformed
            aiohttp.ClientError: For connection issues
        """
        session = self._require_session()
        self._logger.debug("Initiating POST request to %s", url)

        try:
            async with asyncio.timeout(timeout):
                async with session.post(url, json=payload, headers=dict(headers or {})) as response:
                    return await self._to_response(response)
        except TimeoutError:
            self._logger.warning("Request to %s timed out after %.1fs", url, timeout)
            raise
        except aiohttp.InvalidURL as exc:
            self._logger.error("Invalid URL: %s", url)
            raise ValueError(f"Malformed URL: {url}") from exc
        except aiohttp.ClientError as exc:
            self._logger.warning("Client error for %s: %s", url, exc)
            raise

    async def post_file(
        self,
        url: str,
        *,
        filename: str,
        content: bytes,
        content_type: str,
        timeout: float,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Upload a file as multipart/form-data under the ``file`` field.

        Raises:
            TimeoutError: If request exceeds timeout
            ValueError: If URL is malformed
            aiohttp.ClientError: For connection issues
        """
        session = self._require_session()
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        self._logger.debug("Uploading %s (%d bytes) to %s", filename, len(content), url)

        try:
            async with asyncio.timeout(timeout):
                async with session.post(url, data=form, headers=dict(headers or {})) as response:
                    return await self._to_response(response)
        except TimeoutError:
            self._logger.warning("Upload to %s timed out after %.1fs", url, timeout)
            raise
        except aiohttp.InvalidURL as exc:
            self._logger.error("Invalid URL: %s", url)
            raise ValueError(f"Malformed URL: {url}") from exc
        except aiohttp.ClientError as exc:
            self._logger.warning("Client error for %s: %s", url, exc)
            raise

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            msg = "HTTP client session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)
        return self._session

    @staticmethod
    async def _to_response(response: aiohttp.ClientResponse) -> Response:
        body: Mapping[str, object]
        try:
            parsed: object = await response.json(content_type=None)  # pyright: ignore[reportAny]
        except (aiohttp.ContentTypeError, ValueError):
            parsed = {}
        body = parsed if isinstance(parsed, Mapping) else {"data": parsed}  # pyright: ignore[reportUnknownVariableType]
        return Response(
            status=response.status,
            body=body,  # pyright: ignore[reportUnknownArgumentType]
            headers=dict(response.headers),
        )
