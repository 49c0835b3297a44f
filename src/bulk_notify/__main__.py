"""Application entry point and CLI for bulk-notify.

Loads the configuration and a recipients file, submits the recipients as one
Job, prints progress until the Job finishes, and maps the final status to the
process exit code. SIGINT/SIGTERM request cooperative cancellation of the Job.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import NoReturn

from bulk_notify.core.config import (
    ConfigurationError,
    EnvironmentVariableError,
    load_main_config,
    load_recipients,
)
from bulk_notify.core.queue import EmptyRecipientsError, QueueService, UnknownChannelError
from bulk_notify.transports.registry import build_transport_registry
from bulk_notify.types.models import Channel, JobStatus, ProgressSnapshot, RecipientTask
from bulk_notify.utils.formatting import format_progress
from bulk_notify.utils.http_client import AIOHTTPClient
from bulk_notify.utils.logging import configure_logging

__all__ = ["main"]

DEFAULT_CONFIG_PATH: Path = Path("config/bulk-notify.yaml")
DEFAULT_POLL_INTERVAL: float = 1.0

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_JOB_NOT_COMPLETED = 1
EXIT_RUNTIME_ERROR = 1


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    CLI Arguments:
        recipients: Path to the recipients YAML file
        --config, -c: Path to main configuration file
        --channel: Override the channel named in the recipients file
        --log-level: Override log level from config
        --no-syslog: Disable syslog integration
        --poll-interval: Seconds between progress lines
    """
    parser = argparse.ArgumentParser(
        prog="bulk-notify",
        description="Send per-recipient messages in paced batches and report progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bulk-notify recipients.yaml
  bulk-notify --config /etc/bulk-notify.yaml recipients.yaml
  bulk-notify --channel whatsapp --log-level DEBUG workers.yaml
        """,
    )

    _ = parser.add_argument(
        "recipients",
        type=Path,
        help="Path to recipients file",
        metavar="RECIPIENTS",
    )

    _ = parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to main configuration file (default: {DEFAULT_CONFIG_PATH})",
        metavar="PATH",
    )

    _ = parser.add_argument(
        "--channel",
        type=str,
        choices=[channel.value for channel in Channel],
        help="Override the channel named in the recipients file",
    )

    _ = parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration",
        metavar="LEVEL",
    )

    _ = parser.add_argument(
        "--no-syslog",
        action="store_true",
        help="Disable syslog integration (useful for development)",
    )

    _ = parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between progress reports (default: {DEFAULT_POLL_INTERVAL})",
        metavar="SECONDS",
    )

    return parser.parse_args(argv)


def exit_code_for(snapshot: ProgressSnapshot | None) -> int:
    """Map a Job's final snapshot to the process exit code."""
    if snapshot is not None and snapshot.status is JobStatus.COMPLETED:
        return EXIT_SUCCESS
    return EXIT_JOB_NOT_COMPLETED


async def run_job(
    service: QueueService,
    *,
    channel: Channel,
    tasks: Sequence[RecipientTask],
    poll_interval: float,
) -> ProgressSnapshot | None:
    """Submit recipients as one Job and report progress until it ends."""
    logger = logging.getLogger(__name__)
    job_id = service.submit(channel, tasks)
    logger.info("Submitted %d recipients as %s", len(tasks), job_id)

    loop = asyncio.get_running_loop()

    def request_cancel() -> None:
        if service.cancel(job_id):
            logger.info("Cancellation requested; stopping after the current recipient")

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_cancel)

    try:
        finished = asyncio.ensure_future(service.wait(job_id))
        while True:
            done, _ = await asyncio.wait({finished}, timeout=poll_interval)
            if done:
                break
            snapshot = service.get_progress(job_id)
            if snapshot is not None:
                print(format_progress(snapshot), flush=True)
        final = finished.result()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            _ = loop.remove_signal_handler(sig)

    if final is not None:
        print(format_progress(final), flush=True)
        for error in final.errors:
            print(f"  failed: {error.label}: {error.message}", file=sys.stderr)
        if final.failure_reason:
            print(f"  reason: {final.failure_reason}", file=sys.stderr)
    return final


async def async_main(
    *,
    config_path: Path,
    recipients_path: Path,
    channel_override: str | None = None,
    log_level: str | None = None,
    enable_syslog: bool = True,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> int:
    """Run one bulk-send Job and return the exit code.

    Raises:
        ConfigurationError: If configuration or recipients are invalid
    """
    config = load_main_config(config_path)

    if log_level is not None:
        config.application.log_level = log_level

    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=enable_syslog and config.application.syslog_enabled,
        enable_console=True,
    )
    logger = logging.getLogger(__name__)
    logger.info("bulk-notify starting")

    recipients = load_recipients(recipients_path)
    channel = Channel(channel_override) if channel_override else recipients.channel

    async with AIOHTTPClient() as http_client:
        transports = build_transport_registry(config.transports, http_client=http_client)
        async with QueueService.from_config(config, transports) as service:
            final = await run_job(
                service,
                channel=channel,
                tasks=recipients.to_tasks(),
                poll_interval=poll_interval,
            )

    logger.info("bulk-notify finished")
    return exit_code_for(final)


def main() -> NoReturn:
    """Main entry point for the bulk-notify CLI.

    Exit Codes:
        0: Job completed (individual recipient failures allowed)
        1: Configuration error, or the Job failed or was cancelled
    """
    args = parse_arguments()

    # Extract args with type annotations to avoid reportAny at argparse boundary
    config_path_arg: Path = args.config  # pyright: ignore[reportAny]  # argparse boundary
    recipients_arg: Path = args.recipients  # pyright: ignore[reportAny]  # argparse boundary
    channel_arg: str | None = args.channel  # pyright: ignore[reportAny]  # argparse boundary
    log_level_arg: str | None = args.log_level  # pyright: ignore[reportAny]  # argparse boundary
    no_syslog_arg: bool = args.no_syslog  # pyright: ignore[reportAny]  # argparse boundary
    poll_interval_arg: float = args.poll_interval  # pyright: ignore[reportAny]  # argparse boundary

    try:
        code = asyncio.run(
            async_main(
                config_path=config_path_arg,
                recipients_path=recipients_arg,
                channel_override=channel_arg,
                log_level=log_level_arg,
                enable_syslog=not no_syslog_arg,
                poll_interval=poll_interval_arg,
            )
        )

    except ConfigurationError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except EnvironmentVariableError as exc:
        print(f"Environment variable error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except (EmptyRecipientsError, UnknownChannelError) as exc:
        print(f"Cannot submit Job: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except RuntimeError as exc:
        print(f"Runtime error: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_JOB_NOT_COMPLETED)

    except Exception as exc:
        print(f"Unexpected error: {exc}", file=sys.stderr)
        logging.exception("Unexpected error during application execution")
        sys.exit(EXIT_RUNTIME_ERROR)

    sys.exit(code)


if __name__ == "__main__":
    main()
