"""WhatsApp Business messaging API client.

Wraps the two calls needed to deliver a QR code: a multipart media upload
returning a media id, and a template message whose header shows that image.
HTTP failures are raised as WhatsAppAPIError carrying the status code and any
Retry-After hint so the transport can classify them.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

import aiohttp

from bulk_notify.transports.whatsapp.config import WhatsAppConfig
from bulk_notify.types.models import Response
from bulk_notify.types.protocols import HTTPClient
from bulk_notify.utils.http_client import parse_retry_after

__all__ = [
    "WhatsAppAPIClient",
    "WhatsAppAPIError",
    "WhatsAppAuthenticationError",
]

_API_KEY_HEADER: Final[str] = "X-API-Key"
_UPLOAD_CONTENT_TYPE: Final[str] = "image/png"


class WhatsAppAPIError(RuntimeError):
    """Base exception for messaging API failures.

    ``status`` is the HTTP status, 408 for local timeouts and 0 for network
    errors where no response arrived.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        error_code: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status: int = status
        self.error_code: str | None = error_code
        self.retry_after: float | None = retry_after


class WhatsAppAuthenticationError(WhatsAppAPIError):
    """Raised when the API rejects the configured API key."""


@dataclass(slots=True)
class WhatsAppAPIClient:
    """HTTP client wrapper for media upload and template message calls."""

    config: WhatsAppConfig
    http_client: HTTPClient
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    async def upload_media(self, *, filename: str, content: bytes) -> str:
        """Upload an image and return its media id."""
        if not content:
            msg = "media content must not be empty"
            raise ValueError(msg)

        url = f"{self.config.api_base_url}/whatsapp/media/{self.config.sender_number}/upload"
        try:
            response = await self.http_client.post_file(
                url,
                filename=filename,
                content=content,
                content_type=_UPLOAD_CONTENT_TYPE,
                timeout=self.config.request_timeout,
                headers=self._headers(),
            )
        except TimeoutError as exc:
            raise WhatsAppAPIError("Media upload timed out", status=408) from exc
        except aiohttp.ClientError as exc:
            raise WhatsAppAPIError(f"Media upload failed: {type(exc).__name__}", status=0) from exc

        body = self._handle_response(response, action="Media upload").body
        media_id = body.get("id")
        if not isinstance(media_id, str) or not media_id:
            msg = "Media upload response did not include an id"
            raise WhatsAppAPIError(msg, status=response.status)
        return media_id

    async def send_template(
        self,
        *,
        to: str,
        template_name: str,
        language_code: str,
        media_id: str,
        body_text: str,
    ) -> Mapping[str, object]:
        """Send a template message with an image header and one body parameter."""
        payload = self._build_template_payload(
            to=to,
            template_name=template_name,
            language_code=language_code,
            media_id=media_id,
            body_text=body_text,
        )
        url = f"{self.config.api_base_url}/whatsapp/messages/sendDirectly"
        try:
            response = await self.http_client.post(
                url,
                payload,
                timeout=self.config.request_timeout,
                headers=self._headers(),
            )
        except TimeoutError as exc:
            raise WhatsAppAPIError("Template message request timed out", status=408) from exc
        except aiohttp.ClientError as exc:
            raise WhatsAppAPIError(f"Template message request failed: {type(exc).__name__}", status=0) from exc

        return self._handle_response(response, action="Template message").body

    def _build_template_payload(
        self,
        *,
        to: str,
        template_name: str,
        language_code: str,
        media_id: str,
        body_text: str,
    ) -> dict[str, object]:
        return {
            "type": "template",
            "template": {
                "language": {"code": language_code},
                "name": template_name,
                "components": [
                    {
                        "type": "header",
                        "parameters": [{"type": "image", "image": {"id": media_id}}],
                    },
                    {
                        "type": "body",
                        "parameters": [{"type": "text", "text": body_text}],
                    },
                ],
            },
            "to": to,
            "from": self.config.sender_number,
        }

    def _headers(self) -> dict[str, str]:
        return {_API_KEY_HEADER: self.config.api_key}

    def _handle_response(self, response: Response, *, action: str) -> Response:
        if 200 <= response.status < 300:
            return response
        raise self._build_api_error(response, action=action)

    def _build_api_error(self, response: Response, *, action: str) -> WhatsAppAPIError:
        error = response.body.get("error")
        details: Mapping[str, object] = error if isinstance(error, Mapping) else response.body  # pyright: ignore[reportUnknownVariableType]
        description = details.get("message")
        code = details.get("code")
        message = f"{action} failed with HTTP {response.status}"
        if isinstance(description, str) and description:
            message = f"{message}: {description}"
        error_code = str(code) if isinstance(code, (str, int)) else None
        retry_after = parse_retry_after(response.headers)

        self._logger.debug("%s (error_code=%s, retry_after=%s)", message, error_code, retry_after)

        if response.status in (401, 403):
            return WhatsAppAuthenticationError(
                message,
                status=response.status,
                error_code=error_code,
                retry_after=retry_after,
            )
        return WhatsAppAPIError(
            message,
            status=response.status,
            error_code=error_code,
            retry_after=retry_after,
        )
