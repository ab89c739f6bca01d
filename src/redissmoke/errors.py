"""Error model and exit codes for smoke test runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    CF_ERROR = 5
    SMOKE_TEST_FAILED = 6
    VALIDATION_ERROR = 7


@dataclass
class SmokeTestError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class ConfigError(SmokeTestError):
    """The smoke test config is missing or does not validate."""

    code: ExitCode = ExitCode.CONFIG_ERROR
    path: str = ""


@dataclass
class CfCommandError(SmokeTestError):
    """A ``cf`` invocation did not reach its expected result.

    ``command`` is the masked command line as it appears in the logs.
    """

    code: ExitCode = ExitCode.CF_ERROR
    command: str = ""


@dataclass
class PlanSelectionError(SmokeTestError):
    code: ExitCode = ExitCode.VALIDATION_ERROR
    unknown_plans: tuple[str, ...] = field(default_factory=tuple)


def exit_code_for_report(passed: bool) -> ExitCode:
    return ExitCode.SUCCESS if passed else ExitCode.SMOKE_TEST_FAILED


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
