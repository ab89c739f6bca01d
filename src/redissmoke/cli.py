"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from .config import CONFIG_PATH_ENV, SmokeTestConfig, load_config
from .errors import ExitCode, SmokeTestError, exit_code_for_report, user_facing_error
from .logging import configure_logging, default_log_path, mask_in_logs
from .reporter import SmokeTestReport
from .smoke import SmokeTest

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

SmokeRunner = Callable[[SmokeTestConfig, Sequence[str] | None], SmokeTestReport]


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="redissmoke", description="Smoke test a managed Redis service.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to the JSON config (defaults to ${CONFIG_PATH_ENV})",
    )
    parser.add_argument(
        "--plan",
        dest="plans",
        action="append",
        default=None,
        help="Service plan to test; repeatable. Defaults to every configured plan.",
    )
    parser.add_argument("--log-level", type=_log_level_type, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def run_smoke_tests(config: SmokeTestConfig, plans: Sequence[str] | None) -> SmokeTestReport:
    return SmokeTest(config).run(plans)


def run_cli_flow(namespace: argparse.Namespace, *, runner: SmokeRunner = run_smoke_tests) -> int:
    config = load_config(namespace.config)
    mask_in_logs(config.admin_password)
    report = runner(config, namespace.plans)
    print(report.render())
    return int(exit_code_for_report(report.passed))


def main(
    argv: Sequence[str] | None = None,
    *,
    runner: SmokeRunner = run_smoke_tests,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level, log_file=log_path)

    try:
        logger.debug("Starting smoke test flow")
        return run_cli_flow(namespace, runner=runner)
    except SmokeTestError as exc:
        logger.error(
            "Handled SmokeTestError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(
            user_facing_error("Unexpected runtime failure", hint=f"Inspect logs: {log_path}"),
            file=sys.stderr,
        )
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
