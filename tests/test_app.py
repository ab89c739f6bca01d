from __future__ import annotations

import json
from collections.abc import Sequence

import pytest

from redissmoke.app import RedisApp, curl_command, fail_reason
from redissmoke.errors import ExitCode
from redissmoke.retry.backoff import NoBackoff
from redissmoke.retry.controller import OutcomeKind, RetryFailedError


class FinishedSession:
    def __init__(self, output: str) -> None:
        self.output = output

    @property
    def exit_code(self) -> int | None:
        return 0

    def observed_output(self) -> str:
        return self.output

    def is_terminal(self) -> bool:
        return True

    def terminate(self) -> None:
        return None


class CurlSpawner:
    def __init__(self, *outputs: str) -> None:
        self.outputs = list(outputs)
        self.commands: list[list[str]] = []

    def __call__(self, command: Sequence[str]) -> FinishedSession:
        self.commands.append(list(command))
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        return FinishedSession(output)


def _app(spawner: CurlSpawner, **kwargs: object) -> RedisApp:
    kwargs.setdefault("max_attempts", 3)
    return RedisApp(
        "https://redis-example-app.apps.example.com/",
        2.0,
        NoBackoff(0.0),
        spawn=spawner,
        **kwargs,  # type: ignore[arg-type]
    )


def test_curl_command_is_silent() -> None:
    assert curl_command("http://x/ping") == ["curl", "-s", "http://x/ping"]


def test_fail_reason_is_json() -> None:
    assert json.loads(fail_reason("Failed to get")) == {"FailReason": "Failed to get"}


def test_key_uri_strips_trailing_slash() -> None:
    app = _app(CurlSpawner("ok"))

    assert app.key_uri("mykey") == "https://redis-example-app.apps.example.com/mykey"


def test_is_running_polls_ping_until_key_not_present() -> None:
    spawner = CurlSpawner("502 Bad Gateway", "key not present")

    outcome = _app(spawner).is_running()

    assert outcome.succeeded
    assert outcome.attempts == 2
    assert spawner.commands[0] == [
        "curl",
        "-s",
        "https://redis-example-app.apps.example.com/ping",
        "-k",
    ]


def test_write_puts_value_and_expects_success() -> None:
    spawner = CurlSpawner("success")

    _app(spawner).write("mykey", "myvalue")

    assert spawner.commands == [
        [
            "curl",
            "-s",
            "-d",
            "data=myvalue",
            "-X",
            "PUT",
            "https://redis-example-app.apps.example.com/mykey",
            "-k",
        ]
    ]


def test_read_assert_matches_value_literally() -> None:
    assert _app(CurlSpawner("a.b")).read_assert("mykey", "a.b").succeeded

    with pytest.raises(RetryFailedError):
        _app(CurlSpawner("axb"), max_attempts=1).read_assert("mykey", "a.b")
    with pytest.raises(RetryFailedError):
        _app(CurlSpawner("11"), max_attempts=1).read_assert("mykey", "1+1")


def test_failed_read_carries_json_fail_reason() -> None:
    spawner = CurlSpawner("key not present")

    with pytest.raises(RetryFailedError) as exc:
        _app(spawner).read_assert("mykey", "myvalue")

    assert json.loads(exc.value.message) == {
        "FailReason": "Failed to get https://redis-example-app.apps.example.com/mykey"
    }
    assert exc.value.code == ExitCode.SMOKE_TEST_FAILED
    assert exc.value.outcome.kind == OutcomeKind.ATTEMPTS_EXHAUSTED
    assert len(spawner.commands) == 3


def test_unresponsive_app_reports_deploy_failure() -> None:
    with pytest.raises(RetryFailedError) as exc:
        _app(CurlSpawner("connection refused"), max_attempts=2).is_running()

    assert json.loads(exc.value.message)["FailReason"] == "Test app deployed but did not respond in time"


def test_ssl_validation_flag_controls_insecure_curl() -> None:
    spawner = CurlSpawner("success")

    _app(spawner, skip_ssl_validation=False).write("k", "v")

    assert "-k" not in spawner.commands[0]
