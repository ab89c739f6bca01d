from __future__ import annotations

from redissmoke.errors import (
    CfCommandError,
    ConfigError,
    ExitCode,
    PlanSelectionError,
    SmokeTestError,
    exit_code_for_report,
    user_facing_error,
)
from redissmoke.logging import LOG_LEVELS, configure_logging


def test_exit_codes_are_deterministic() -> None:
    assert int(ExitCode.SUCCESS) == 0
    assert int(ExitCode.INVALID_ARGS) == 2
    assert int(ExitCode.CONFIG_ERROR) == 3
    assert int(ExitCode.CF_ERROR) == 5
    assert int(ExitCode.SMOKE_TEST_FAILED) == 6
    assert int(ExitCode.VALIDATION_ERROR) == 7


def test_smoke_test_error_string_contains_hint() -> None:
    err = SmokeTestError("cf not found", code=ExitCode.CF_ERROR, hint="Install the cf CLI")
    assert "Install the cf CLI" in str(err)
    assert str(SmokeTestError("plain")) == "plain"


def test_smoke_test_error_defaults_to_runtime_code() -> None:
    assert SmokeTestError("boom").code == ExitCode.RUNTIME_ERROR


def test_user_facing_error_template() -> None:
    text = user_facing_error("Invalid plan", hint="Use shared-vm")
    assert text.startswith("Error:")
    assert "Next step" in text
    assert user_facing_error("Broken") == "Error: Broken."


def test_logging_levels() -> None:
    logger = configure_logging("WARN")
    assert logger.level == LOG_LEVELS["WARN"]


def test_domain_errors_carry_their_exit_codes() -> None:
    assert ConfigError("bad config", path="/tmp/c.json").code == ExitCode.CONFIG_ERROR
    assert CfCommandError("cf failed", command="cf auth admin ***").code == ExitCode.CF_ERROR
    err = PlanSelectionError("Unknown service plan(s): gold", unknown_plans=("gold",))
    assert err.code == ExitCode.VALIDATION_ERROR
    assert isinstance(err, SmokeTestError)


def test_exit_code_for_report() -> None:
    assert exit_code_for_report(True) == ExitCode.SUCCESS
    assert exit_code_for_report(False) == ExitCode.SMOKE_TEST_FAILED
