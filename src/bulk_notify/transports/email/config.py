"""SMTP transport configuration schema."""

from __future__ import annotations

import re
from typing import Annotated, Final, Self, override

from pydantic import BaseModel, Field, field_validator, model_validator

from bulk_notify.utils.sanitization import REDACTED

_ADDRESS_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$",
)

IMPLICIT_TLS_PORT: Final[int] = 465


class SMTPConfig(BaseModel):
    """Pydantic schema for the SMTP relay used by the email transport."""

    host: Annotated[
        str,
        Field(
            min_length=1,
            description="SMTP relay hostname",
        ),
    ]
    port: Annotated[
        int,
        Field(
            ge=1,
            le=65535,
            description="SMTP relay port (465 selects implicit TLS)",
        ),
    ] = 587
    username: Annotated[
        str | None,
        Field(
            description="Login name for SMTP AUTH",
        ),
    ] = None
    password: Annotated[
        str | None,
        Field(
            description="Password for SMTP AUTH",
        ),
    ] = None
    sender: Annotated[
        str,
        Field(
            description="Envelope and header From address",
        ),
    ]
    sender_name: Annotated[
        str | None,
        Field(
            description="Display name shown next to the From address",
        ),
    ] = None
    use_tls: Annotated[
        bool,
        Field(
            description="Encrypt the connection (implicit TLS on 465, STARTTLS otherwise)",
        ),
    ] = True
    timeout: Annotated[
        float,
        Field(
            gt=0,
            description="Socket timeout for the SMTP conversation in seconds",
        ),
    ] = 30.0

    @field_validator("sender")
    @classmethod
    def validate_sender(cls, value: str) -> str:
        """Validate sender address format."""
        cleaned = value.strip()
        if not _ADDRESS_PATTERN.match(cleaned):
            msg = f"Sender must be a valid email address, got: {cleaned!r}"
            raise ValueError(msg)
        return cleaned

    @model_validator(mode="after")
    def validate_credentials_pair(self) -> Self:
        """Require username and password to be given together."""
        if (self.username is None) != (self.password is None):
            msg = "SMTP username and password must both be set or both be omitted"
            raise ValueError(msg)
        return self

    @property
    def implicit_tls(self) -> bool:
        """Return True when the connection starts encrypted."""
        return self.use_tls and self.port == IMPLICIT_TLS_PORT

    @override
    def __repr__(self) -> str:
        """Return sanitized representation preventing password exposure."""
        password = REDACTED if self.password is not None else None
        return (
            f"SMTPConfig("
            f"host={self.host!r}, "
            f"port={self.port!r}, "
            f"username={self.username!r}, "
            f"password={password!r}, "
            f"sender={self.sender!r}, "
            f"use_tls={self.use_tls!r}, "
            f"timeout={self.timeout!r})"
        )
