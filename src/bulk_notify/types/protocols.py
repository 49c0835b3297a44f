"""Protocol definitions for component interfaces.

This module defines structural subtyping protocols for the collaborators the
queue core depends on, so transports and HTTP clients plug in without
inheritance.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from bulk_notify.types.models import Channel, RecipientTask, Response, SendOutcome


@runtime_checkable
class TransportClient(Protocol):
    """Protocol for channel-specific message delivery.

    A transport sends one message to one recipient and reports the outcome.
    Template rendering, attachment preparation and credential lookup are the
    transport's own business; the queue core only routes tasks to it.
    """

    channel: Channel

    async def send_one(self, task: RecipientTask) -> SendOutcome:
        """Deliver a single recipient task.

        Args:
            task: Recipient address plus render-ready payload

        Returns:
            Outcome of the attempt with its error classification

        Raises:
            TransportConfigurationError: If the transport cannot send to anyone
        """
        ...

    def validate_config(self) -> bool:
        """Validate transport credentials and settings.

        Returns:
            True if the transport is able to send messages
        """
        ...


class HTTPClient(Protocol):
    """Protocol for HTTP client operations used by API-based transports."""

    async def post(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        timeout: float,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a JSON POST request with timeout.

        Args:
            url: Target URL for the POST request
            payload: Request body data
            timeout: Request timeout in seconds (keyword-only)
            headers: Extra request headers

        Returns:
            HTTP response with status, body, and headers
        """
        ...

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
        """Upload a single file as multipart form data.

        Args:
            url: Upload endpoint
            filename: File name reported to the server
            content: Raw file bytes
            content_type: MIME type of the file
            timeout: Request timeout in seconds
            headers: Extra request headers

        Returns:
            HTTP response with status, body, and headers
        """
        ...
