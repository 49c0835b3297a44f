"""Registry mapping each channel to the transport that delivers it."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from bulk_notify.transports.email.transport import create_transport as create_email_transport
from bulk_notify.transports.whatsapp.transport import create_transport as create_whatsapp_transport
from bulk_notify.types.models import Channel
from bulk_notify.types.protocols import HTTPClient, TransportClient

if TYPE_CHECKING:
    from bulk_notify.core.config import TransportsConfig

__all__ = ["TransportRegistry", "build_transport_registry"]


class TransportRegistry:
    """Channel-keyed store of transport clients.

    Example:
        >>> registry = TransportRegistry()
        >>> registry.register(email_transport)
        >>> registry.get(Channel.EMAIL) is email_transport
        True
    """

    def __init__(self) -> None:
        self._transports: dict[Channel, TransportClient] = {}

    def register(self, transport: TransportClient) -> None:
        """Register a transport under its own ``channel``."""
        channel = Channel(transport.channel)
        if channel in self._transports:
            msg = f"Transport for channel {channel.value!r} already registered"
            raise ValueError(msg)
        self._transports[channel] = transport

    def get(self, channel: Channel) -> TransportClient | None:
        """Return the transport for the channel, or None if there is none."""
        return self._transports.get(channel)

    def channels(self) -> tuple[Channel, ...]:
        """Return registered channels sorted by name."""
        return tuple(sorted(self._transports, key=lambda channel: channel.value))

    def __contains__(self, channel: object) -> bool:
        return channel in self._transports

    def __iter__(self) -> Iterator[TransportClient]:
        return iter(tuple(self._transports[channel] for channel in self.channels()))

    def __len__(self) -> int:
        return len(self._transports)


def build_transport_registry(
    config: TransportsConfig,
    *,
    http_client: HTTPClient | None = None,
) -> TransportRegistry:
    """Create transports for every configured channel.

    Args:
        config: Transport sections from the application configuration
        http_client: Open HTTP client, required when WhatsApp is configured

    Returns:
        Registry holding one transport per configured channel
    """
    registry = TransportRegistry()
    if config.smtp is not None:
        registry.register(create_email_transport(config=config.smtp))
    if config.whatsapp is not None:
        if http_client is None:
            msg = "An HTTP client is required for the WhatsApp transport"
            raise ValueError(msg)
        registry.register(create_whatsapp_transport(config=config.whatsapp, http_client=http_client))
    return registry
