"""Configuration system for bulk-notify.

This module implements the configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Self

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from bulk_notify.transports.email.config import SMTPConfig
from bulk_notify.transports.whatsapp.config import WhatsAppConfig
from bulk_notify.types.models import Channel, RecipientTask

# Matches ${VARIABLE_NAME} where VARIABLE_NAME can contain letters, digits, and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class ApplicationConfig(BaseModel):
    """Configuration for application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    syslog_enabled: Annotated[
        bool,
        Field(
            description="Enable syslog integration",
        ),
    ] = False


class QueueSettings(BaseModel):
    """Retention and housekeeping of finished Jobs."""

    retention_hours: Annotated[
        float,
        Field(
            gt=0,
            description="How long a finished Job stays queryable before eviction",
        ),
    ] = 24.0
    sweep_interval_seconds: Annotated[
        float,
        Field(
            gt=0,
            description="Interval between eviction sweeps in seconds",
        ),
    ] = 3600.0


class ChannelSettings(BaseModel):
    """Batching, pacing, and retry policy for one channel.

    Defaults match the mail relay limits the queue was tuned against; the
    WhatsApp section overrides them with its own defaults.
    """

    batch_size: Annotated[
        int,
        Field(
            ge=1,
            description="Recipients per batch",
        ),
    ] = 2
    inter_item_delay: Annotated[
        float,
        Field(
            ge=0,
            description="Delay between consecutive sends inside a batch in seconds",
        ),
    ] = 0.5
    inter_batch_delay: Annotated[
        float,
        Field(
            ge=0,
            description="Delay between batches in seconds",
        ),
    ] = 1.0
    attempt_timeout: Annotated[
        float,
        Field(
            gt=0,
            description="Timeout applied to each transport call in seconds",
        ),
    ] = 30.0
    max_retries: Annotated[
        int,
        Field(
            ge=0,
            le=10,
            description="Retries after the first attempt for transient errors",
        ),
    ] = 2
    retry_base_delay: Annotated[
        float,
        Field(
            ge=0,
            description="Base retry delay in seconds; retry n waits base * n",
        ),
    ] = 5.0
    rate_limit_multiplier: Annotated[
        float,
        Field(
            ge=1,
            description="Extra factor applied to the delay after a rate-limit rejection",
        ),
    ] = 2.0
    max_retry_delay: Annotated[
        float,
        Field(
            ge=0,
            description="Upper bound for any single retry delay in seconds",
        ),
    ] = 60.0
    jitter_percent: Annotated[
        float,
        Field(
            ge=0,
            le=50,
            description="Random +/- spread applied to retry delays, in percent",
        ),
    ] = 0.0


def _default_whatsapp_settings() -> ChannelSettings:
    return ChannelSettings(
        batch_size=10,
        inter_item_delay=1.0,
        inter_batch_delay=2.0,
        attempt_timeout=25.0,
        max_retries=2,
        retry_base_delay=2.0,
    )


class ChannelsConfig(BaseModel):
    """Per-channel pacing and retry settings."""

    email: Annotated[
        ChannelSettings,
        Field(
            default_factory=ChannelSettings,
            description="Email channel settings",
        ),
    ]
    whatsapp: Annotated[
        ChannelSettings,
        Field(
            default_factory=_default_whatsapp_settings,
            description="WhatsApp channel settings",
        ),
    ]

    def for_channel(self, channel: Channel) -> ChannelSettings:
        """Return the settings for a channel."""
        match channel:
            case Channel.EMAIL:
                return self.email
            case Channel.WHATSAPP:
                return self.whatsapp


class TransportsConfig(BaseModel):
    """Credentials and endpoints of the concrete transports.

    A channel is only available when its transport section is present.
    """

    smtp: Annotated[
        SMTPConfig | None,
        Field(
            description="SMTP relay used for the email channel",
        ),
    ] = None
    whatsapp: Annotated[
        WhatsAppConfig | None,
        Field(
            description="Messaging API used for the WhatsApp channel",
        ),
    ] = None


class MainConfig(BaseModel):
    """Main application configuration schema.

    Top-level configuration container aggregating all configuration sections:
    - application: Logging settings
    - queue: Retention of finished Jobs
    - channels: Batching, pacing and retry policy per channel
    - transports: Transport credentials and endpoints
    """

    application: Annotated[
        ApplicationConfig,
        Field(
            default_factory=ApplicationConfig,
            description="Application-level configuration",
        ),
    ]
    queue: Annotated[
        QueueSettings,
        Field(
            default_factory=QueueSettings,
            description="Queue housekeeping configuration",
        ),
    ]
    channels: Annotated[
        ChannelsConfig,
        Field(
            default_factory=ChannelsConfig,
            description="Per-channel pacing and retry configuration",
        ),
    ]
    transports: Annotated[
        TransportsConfig,
        Field(
            default_factory=TransportsConfig,
            description="Transport configuration",
        ),
    ]

    @model_validator(mode="after")
    def validate_some_transport_configured(self) -> Self:
        """Require at least one transport section."""
        if self.transports.smtp is None and self.transports.whatsapp is None:
            msg = "At least one transport must be configured (transports.smtp or transports.whatsapp)"
            raise ValueError(msg)
        return self


class EnvironmentVariableError(Exception):
    """Exception raised when environment variable resolution fails.

    Raised when a required environment variable is missing. The message names
    the variable but never includes a value.
    """


class ConfigurationError(Exception):
    """Exception raised when configuration loading or validation fails.

    This exception provides detailed, actionable error messages for configuration
    issues including file not found, YAML parsing errors, and validation failures.
    """


def resolve_env_var(value: str) -> str:
    """Resolve environment variable references in a string value.

    Args:
        value: String potentially containing ${VARIABLE_NAME} references

    Returns:
        String with environment variables resolved

    Raises:
        EnvironmentVariableError: If a required environment variable is missing

    Examples:
        >>> os.environ["SMTP_PASSWORD"] = "hunter2"
        >>> resolve_env_var("${SMTP_PASSWORD}")
        'hunter2'
        >>> resolve_env_var("no variables here")
        'no variables here'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)

        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)

        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _resolve_item(item: object) -> object:
    if isinstance(item, str):
        return resolve_env_var(item)
    if isinstance(item, dict):
        # YAML data is untyped at load time; validated by Pydantic after resolution
        return resolve_env_vars_in_dict(item)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(item, list):
        return [_resolve_item(element) for element in item]  # pyright: ignore[reportUnknownVariableType]  # YAML list items
    return item


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a dictionary.

    Traverses nested dictionaries and lists, resolving environment variable
    references in string values. Non-string values are preserved as-is.

    Args:
        data: Dictionary potentially containing environment variable references

    Returns:
        New dictionary with environment variables resolved

    Raises:
        EnvironmentVariableError: If a required environment variable is missing

    Examples:
        >>> os.environ["API_KEY"] = "my_secret"
        >>> resolve_env_vars_in_dict({"transports": {"whatsapp": {"api_key": "${API_KEY}"}}})
        {'transports': {'whatsapp': {'api_key': 'my_secret'}}}
    """
    return {key: _resolve_item(value) for key, value in data.items()}


def format_validation_error(error: ValidationError, *, title: str, source: Path) -> str:
    """Format a Pydantic validation error with field-level diagnostics.

    Args:
        error: Validation error raised by model_validate
        title: First line of the message
        source: File the invalid data came from

    Returns:
        Multi-line message listing every failing field
    """
    error_lines = [title, ""]
    for detail in error.errors():
        field_path = " → ".join(str(loc) for loc in detail["loc"])
        error_lines.append(f"  Field: {field_path or '<root>'}")
        error_lines.append(f"  Error: {detail['msg']}")
        error_lines.append(f"  Type: {detail['type']}")
        error_lines.append("")

    error_lines.append(f"Configuration file: {source}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def load_yaml_mapping(path: Path, *, description: str) -> dict[str, object]:
    """Read a YAML file whose root must be a mapping.

    Args:
        path: File to read
        description: Human-readable name of the file used in error messages

    Returns:
        Parsed mapping, before any environment variable resolution

    Raises:
        ConfigurationError: If the file is missing, unreadable, malformed, or not a mapping
    """
    if not path.exists():
        msg = (
            f"{description} not found: {path}\n"
            f"Please create the file at this location.\n"
            f"See the example files under config/ for the expected format."
        )
        raise ConfigurationError(msg)

    try:
        with path.open("r", encoding="utf-8") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML in {description.lower()}: {path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read {description.lower()}: {path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid {description.lower()} format: {path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}\n"
            f"The file must contain key-value pairs."
        )
        raise ConfigurationError(msg)

    return raw_data  # pyright: ignore[reportUnknownVariableType]  # YAML boundary


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate the application configuration from a YAML file.

    Loads the configuration file, resolves environment variables, and
    validates against the MainConfig schema.

    Args:
        config_path: Path to configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If configuration file cannot be loaded or is invalid

    Examples:
        >>> config = load_main_config(Path("config/bulk-notify.yaml"))
        >>> config.channels.for_channel(Channel.EMAIL).batch_size
        2
    """
    raw_data = load_yaml_mapping(config_path, description="Configuration file")

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        msg = format_validation_error(e, title="Configuration validation failed:", source=config_path)
        raise ConfigurationError(msg) from e


class RecipientEntry(BaseModel):
    """One recipient in a recipients file."""

    address: Annotated[
        str,
        Field(
            min_length=1,
            description="Email address or phone number",
        ),
    ]
    label: Annotated[
        str | None,
        Field(
            description="Name used when reporting errors; defaults to the address",
        ),
    ] = None
    payload: Annotated[
        dict[str, object],
        Field(
            default_factory=dict,
            description="Render-ready payload handed to the transport",
        ),
    ]

    def to_task(self) -> RecipientTask:
        return RecipientTask(address=self.address, payload=self.payload, label=self.label or "")


class RecipientsFile(BaseModel):
    """Schema of a recipients file submitted as one Job."""

    channel: Annotated[
        Channel,
        Field(
            description="Channel used to deliver every recipient",
        ),
    ]
    recipients: Annotated[
        list[RecipientEntry],
        Field(
            min_length=1,
            description="Ordered recipients",
        ),
    ]

    def to_tasks(self) -> tuple[RecipientTask, ...]:
        return tuple(entry.to_task() for entry in self.recipients)


def load_recipients(recipients_path: Path) -> RecipientsFile:
    """Load and validate a recipients file.

    Environment variables are not resolved here; recipient payloads are data,
    not configuration.

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    raw_data = load_yaml_mapping(recipients_path, description="Recipients file")
    try:
        return RecipientsFile.model_validate(raw_data)
    except ValidationError as e:
        msg = format_validation_error(e, title="Recipients file validation failed:", source=recipients_path)
        raise ConfigurationError(msg) from e
