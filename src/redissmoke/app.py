"""Client for the redis example app's HTTP endpoints, polled with curl."""

from __future__ import annotations

import json
import logging as py_logging
import re
from collections.abc import Callable, Sequence

from redissmoke.retry.backoff import Backoff, NoBackoff
from redissmoke.retry.controller import CancelToken, RetryOutcome, retry_session
from redissmoke.retry.matchers import matches_output
from redissmoke.retry.session import CheckableSession, ProcessSession

logger = py_logging.getLogger(__name__)

Spawner = Callable[[Sequence[str]], CheckableSession]


def curl_command(*args: str) -> list[str]:
    return ["curl", "-s", *args]


def fail_reason(message: str) -> str:
    return json.dumps({"FailReason": message})


def _spawn_process(command: Sequence[str]) -> CheckableSession:
    return ProcessSession.start(command)


class RedisApp:
    def __init__(
        self,
        uri: str,
        timeout_seconds: float,
        retry_backoff: Backoff | None = None,
        *,
        max_attempts: int | None = None,
        skip_ssl_validation: bool = True,
        spawn: Spawner | None = None,
        cancel_token: CancelToken | None = None,
    ) -> None:
        self.uri = uri.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_backoff = retry_backoff or NoBackoff()
        self.max_attempts = max_attempts
        self.skip_ssl_validation = skip_ssl_validation
        self._spawn = spawn or _spawn_process
        self._cancel_token = cancel_token

    def key_uri(self, key: str) -> str:
        return f"{self.uri}/{key}"

    def _curl(self, *args: str) -> CheckableSession:
        extra = ("-k",) if self.skip_ssl_validation else ()
        return self._spawn(curl_command(*args, *extra))

    def _until(self, factory: Callable[[], CheckableSession], pattern: str, failure_message: str) -> RetryOutcome:
        builder = (
            retry_session(factory)
            .with_session_timeout(self.timeout_seconds)
            .and_backoff(self.retry_backoff)
            .with_max_attempts(self.max_attempts)
        )
        if self._cancel_token is not None:
            builder = builder.with_cancel_token(self._cancel_token)
        return builder.until(matches_output(pattern), fail_reason(failure_message)).raise_on_failure()

    def is_running(self) -> RetryOutcome:
        ping_uri = f"{self.uri}/ping"

        def ping() -> CheckableSession:
            logger.info("Checking that the app is responding at url: %s", ping_uri)
            return self._curl(ping_uri)

        return self._until(ping, "key not present", "Test app deployed but did not respond in time")

    def write(self, key: str, value: str) -> RetryOutcome:
        uri = self.key_uri(key)

        def put() -> CheckableSession:
            logger.info("Posting to url: %s", uri)
            return self._curl("-d", f"data={value}", "-X", "PUT", uri)

        return self._until(put, "success", f"Failed to put to {uri}")

    def read_assert(self, key: str, expected_value: str) -> RetryOutcome:
        """Poll ``GET <uri>/<key>`` until the body contains ``expected_value``.

        The value is matched literally, not as a regular expression, so stored
        data such as ``a.b`` or ``1+1`` only matches itself.
        """
        uri = self.key_uri(key)

        def get() -> CheckableSession:
            logger.info("Getting from url: %s", uri)
            return self._curl(uri)

        return self._until(get, re.escape(expected_value), f"Failed to get {uri}")
