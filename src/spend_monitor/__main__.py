"""Application entry point and CLI for spend-monitor.

Each invocation loads the configuration, configures logging, builds the
runtime against the provider plugin and runs exactly one command to
completion.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Callable, Sequence
from dataclasses import asdict
from pathlib import Path
from typing import NoReturn

from spend_monitor.core.alerts import detect_breach
from spend_monitor.core.config import MainConfig, load_main_config
from spend_monitor.core.errors import ConfigurationError, SpendMonitorError
from spend_monitor.core.runtime import Runtime, build_runtime
from spend_monitor.plugins.sns import SNSProvider, create_provider, validate_channel_config
from spend_monitor.types.models import DeliveryResult, HealthStatus
from spend_monitor.utils.logging import configure_logging
from spend_monitor.utils.metrics import LoggingMetricsSink
from spend_monitor.utils.sanitization import sanitize_text

__all__ = ["async_main", "main", "parse_arguments"]

DEFAULT_CONFIG_PATH: Path = Path("config/spend-monitor.yaml")

# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_HEALTH_CRITICAL = 3
EXIT_INTERRUPTED = 130

type ProviderFactory = Callable[[MainConfig], SNSProvider]


def _service_cost(value: str) -> tuple[str, float]:
    name, separator, cost = value.rpartition("=")
    if not separator or not name:
        msg = f"expected NAME=COST, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    try:
        return name, float(cost)
    except ValueError as exc:
        msg = f"cost must be a number, got {cost!r}"
        raise argparse.ArgumentTypeError(msg) from exc


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="spend-monitor",
        description="Alert on spend threshold breaches over email, SMS and mobile push",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  spend-monitor check --spend 142.10 --service Compute=90.5 --service Storage=30
  spend-monitor test-alert --dry-run
  spend-monitor health --recover
  spend-monitor register 0a1b...ff --user-id alice
        """,
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
        "--dry-run",
        action="store_true",
        help="Render alerts without publishing them (overrides config)",
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
        help="Disable syslog integration",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Compare spend with the threshold and alert on a breach")
    _ = check.add_argument("--spend", type=float, required=True, help="Observed spend for the period")
    _ = check.add_argument(
        "--service",
        type=_service_cost,
        action="append",
        default=[],
        help="Per-service cost as NAME=COST (repeatable)",
        metavar="NAME=COST",
    )
    _ = check.add_argument("--threshold", type=float, help="Override the configured spend threshold")

    _ = commands.add_parser("test-alert", help="Send a sample alert to every configured channel")

    health = commands.add_parser("health", help="Run the push health check")
    _ = health.add_argument("--recover", action="store_true", help="Run automated recovery when unhealthy")

    register = commands.add_parser("register", help="Register a device token for push alerts")
    _ = register.add_argument("token", help="64-character hex device token")
    _ = register.add_argument("--user-id", help="Application user identifier")

    _ = commands.add_parser("cleanup", help="Remove disabled or invalid push endpoints")

    return parser.parse_args(argv)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def _delivery_summary(result: DeliveryResult) -> dict[str, object]:
    return asdict(result)


async def _run_command(args: argparse.Namespace, runtime: Runtime) -> int:
    command: str = args.command  # pyright: ignore[reportAny]  # argparse boundary
    config = runtime.config

    if command == "check":
        spend: float = args.spend  # pyright: ignore[reportAny]  # argparse boundary
        services: list[tuple[str, float]] = args.service  # pyright: ignore[reportAny]  # argparse boundary
        threshold_arg: float | None = args.threshold  # pyright: ignore[reportAny]  # argparse boundary
        threshold = threshold_arg if threshold_arg is not None else config.alerting.spend_threshold
        context = detect_breach(spend, threshold, dict(services))
        if context is None:
            print(f"Spend ${spend:.2f} is within the ${threshold:.2f} threshold")
            return EXIT_SUCCESS
        _print_json(_delivery_summary(await runtime.dispatcher.dispatch(context, config.channels)))
        return EXIT_SUCCESS

    if command == "test-alert":
        _print_json(_delivery_summary(await runtime.dispatcher.send_test_alert(config.channels)))
        return EXIT_SUCCESS

    if command == "health":
        monitor = runtime.require_health()
        report = await monitor.check()
        _print_json(asdict(report))
        recover: bool = args.recover  # pyright: ignore[reportAny]  # argparse boundary
        if recover and report.overall is not HealthStatus.HEALTHY:
            _print_json(asdict(await monitor.perform_automated_recovery(report)))
        return EXIT_HEALTH_CRITICAL if report.overall is HealthStatus.CRITICAL else EXIT_SUCCESS

    if command == "register":
        token: str = args.token  # pyright: ignore[reportAny]  # argparse boundary
        user_id: str | None = args.user_id  # pyright: ignore[reportAny]  # argparse boundary
        registration = await runtime.require_devices().register_device(token, user_id)
        print(f"Registered endpoint {registration.endpoint_ref}")
        return EXIT_SUCCESS

    if command == "cleanup":
        cleanup = await runtime.require_devices().process_feedback()
        _print_json(asdict(cleanup))
        return EXIT_RUNTIME_ERROR if cleanup.errors else EXIT_SUCCESS

    msg = f"Unknown command: {command}"
    raise ConfigurationError(msg)


async def async_main(
    args: argparse.Namespace,
    *,
    provider_factory: ProviderFactory = create_provider,
) -> int:
    """Load configuration, build the runtime and run the selected command.

    Returns:
        Process exit code

    Raises:
        ConfigurationError: If configuration is missing or invalid
        SpendMonitorError: If the command fails
    """
    config_path: Path = args.config  # pyright: ignore[reportAny]  # argparse boundary
    config = load_main_config(config_path)

    dry_run: bool = args.dry_run  # pyright: ignore[reportAny]  # argparse boundary
    log_level: str | None = args.log_level  # pyright: ignore[reportAny]  # argparse boundary
    no_syslog: bool = args.no_syslog  # pyright: ignore[reportAny]  # argparse boundary
    if dry_run:
        config.application.dry_run = True
    if log_level is not None:
        config.application.log_level = log_level

    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=config.application.syslog_enabled and not no_syslog,
        syslog_address=config.application.syslog_address,
        enable_console=True,
    )
    logger = logging.getLogger(__name__)
    logger.info("spend-monitor starting", extra={"command": args.command, "dry_run": config.application.dry_run})  # pyright: ignore[reportAny]

    problems = validate_channel_config(config.channels)
    if problems:
        raise ConfigurationError("Invalid channel configuration:\n  " + "\n  ".join(problems))

    provider = provider_factory(config)
    platform = provider if config.channels.push is not None else None
    runtime = build_runtime(config, provider, platform, metrics=LoggingMetricsSink())
    return await _run_command(args, runtime)


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point for spend-monitor.

    Exit Codes:
        0: Success
        1: Runtime failure
        2: Configuration error
        3: Health check reported critical status
        130: Interrupted
    """
    args = parse_arguments(argv)

    try:
        exit_code = asyncio.run(async_main(args))
    except ConfigurationError as exc:
        print(f"Configuration error:\n{sanitize_text(str(exc))}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)
    except SpendMonitorError as exc:
        details = ", ".join(f"{key}={value}" for key, value in exc.context.items() if value is not None)
        print(f"Error ({exc.kind.value}): {sanitize_text(str(exc))}", file=sys.stderr)
        if details:
            print(f"  {sanitize_text(details)}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        print(f"Unexpected error: {sanitize_text(str(exc))}", file=sys.stderr)
        logging.exception("Unexpected error during application execution")
        sys.exit(EXIT_RUNTIME_ERROR)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
