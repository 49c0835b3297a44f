"""WhatsApp messaging API transport."""

from bulk_notify.transports.whatsapp.config import WhatsAppConfig
from bulk_notify.transports.whatsapp.transport import WhatsAppTransport, classify_api_error, create_transport

__all__ = ["WhatsAppConfig", "WhatsAppTransport", "classify_api_error", "create_transport"]
