"""Channel transports and the registry that routes Jobs to them."""

from bulk_notify.transports.email.transport import EmailTransport
from bulk_notify.transports.registry import TransportRegistry, build_transport_registry
from bulk_notify.transports.whatsapp.transport import WhatsAppTransport

__all__ = [
    "EmailTransport",
    "TransportRegistry",
    "WhatsAppTransport",
    "build_transport_registry",
]
