"""Thin wrapper over the ``cf`` control-plane CLI driven through retry sessions."""

from __future__ import annotations

import json
import logging as py_logging
import os
import shutil
import tempfile
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from redissmoke.errors import CfCommandError, SmokeTestError
from redissmoke.retry.backoff import Backoff, NoBackoff
from redissmoke.retry.controller import RetryOptions, RetryOutcome, RetrySessionController
from redissmoke.retry.matchers import ExitsWith, OutputMatcher
from redissmoke.retry.session import CheckableSession, ProcessSession
from redissmoke.security import command_for_log, sanitize_log_text

logger = py_logging.getLogger(__name__)

CF_BINARY = "cf"
CF_HOME_ENV = "CF_HOME"
DEFAULT_COMMAND_TIMEOUT_SECONDS = 60.0

CommandSpawner = Callable[[Sequence[str], Mapping[str, str]], CheckableSession]


@dataclass(frozen=True)
class UserContext:
    api: str
    username: str
    password: str
    org: str = ""
    space: str = ""
    skip_ssl_validation: bool = False


def cf_command(*args: str) -> list[str]:
    return [CF_BINARY, *args]


def _spawn_process(command: Sequence[str], env: Mapping[str, str]) -> CheckableSession:
    return ProcessSession.start(command, env=env)


class CfCli:
    def __init__(
        self,
        *,
        spawn: CommandSpawner | None = None,
        timeout_scale: float = 1.0,
        cf_home: str | None = None,
        base_env: Mapping[str, str] | None = None,
        secrets: Sequence[str] = (),
    ) -> None:
        self._spawn = spawn or _spawn_process
        self.timeout_scale = max(timeout_scale, 1.0)
        self.cf_home = cf_home
        self._base_env = dict(base_env) if base_env is not None else None
        self._secrets = tuple(secret for secret in secrets if secret)

    @property
    def env(self) -> dict[str, str]:
        env = dict(self._base_env) if self._base_env is not None else dict(os.environ)
        if self.cf_home:
            env[CF_HOME_ENV] = self.cf_home
        return env

    def scaled(self, seconds: float) -> float:
        return seconds * self.timeout_scale

    def spawn(self, *args: str) -> CheckableSession:
        command = cf_command(*args)
        logger.debug("Running %s", command_for_log(command, self._secrets))
        return self._spawn(command, self.env)

    def try_run(
        self,
        *args: str,
        timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        matcher: OutputMatcher | None = None,
        max_attempts: int | None = 1,
        backoff: Backoff | None = None,
        failure_message: str = "",
    ) -> RetryOutcome:
        options = RetryOptions(
            overall_timeout_seconds=self.scaled(timeout_seconds),
            backoff=backoff or NoBackoff(),
            failure_message=failure_message or f"cf {args[0] if args else ''} did not succeed".strip(),
            max_attempts=max_attempts,
        )
        controller = RetrySessionController(
            lambda: self.spawn(*args),
            matcher or ExitsWith(0),
            options,
        )
        return controller.run_until_satisfied()

    def run(
        self,
        *args: str,
        timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        matcher: OutputMatcher | None = None,
        max_attempts: int | None = 1,
        backoff: Backoff | None = None,
    ) -> RetryOutcome:
        outcome = self.try_run(
            *args,
            timeout_seconds=timeout_seconds,
            matcher=matcher,
            max_attempts=max_attempts,
            backoff=backoff,
        )
        if outcome.succeeded:
            return outcome
        rendered = command_for_log(cf_command(*args), self._secrets)
        logger.error("cf command failed command=%s kind=%s", rendered, outcome.kind.value)
        raise CfCommandError(
            f"cf command failed: {rendered}",
            hint=sanitize_log_text(outcome.output, self._secrets, limit=220) or outcome.message,
            command=rendered,
        )

    def api_request(
        self,
        method: str,
        path: str,
        body: str | None = None,
        *,
        timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
    ) -> dict[str, object]:
        args = ["curl", path, "-X", method.upper()]
        if body is not None:
            args.extend(["-d", body])
        outcome = self.run(*args, timeout_seconds=timeout_seconds)
        payload = outcome.output.strip()
        if not payload:
            return {}
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise CfCommandError(
                f"cf curl {path} returned invalid JSON.",
                hint=sanitize_log_text(payload, self._secrets, limit=220),
                command=command_for_log(cf_command("curl", path), self._secrets),
            ) from exc
        if not isinstance(decoded, dict):
            return {"resources": decoded}
        return decoded

    def with_secrets(self, *values: str) -> CfCli:
        return CfCli(
            spawn=self._spawn,
            timeout_scale=self.timeout_scale,
            cf_home=self.cf_home,
            base_env=self._base_env,
            secrets=(*self._secrets, *values),
        )

    def for_user(self, cf_home: str, user: UserContext) -> CfCli:
        return CfCli(
            spawn=self._spawn,
            timeout_scale=self.timeout_scale,
            cf_home=cf_home,
            base_env=self._base_env,
            secrets=(*self._secrets, user.password),
        )

    @contextmanager
    def as_user(self, user: UserContext) -> Iterator[CfCli]:
        """Log in as ``user`` inside an isolated CF_HOME for the duration of the block."""
        home = tempfile.mkdtemp(prefix="redissmoke-cf-home-")
        scoped = self.for_user(home, user)
        logger.debug("Switching cf user to %s api=%s", user.username, user.api)
        try:
            api_args = ["api", user.api]
            if user.skip_ssl_validation:
                api_args.append("--skip-ssl-validation")
            scoped.run(*api_args)
            scoped.run("auth", user.username, user.password)
            if user.org and user.space:
                scoped.run("target", "-o", user.org, "-s", user.space)
            yield scoped
        finally:
            try:
                scoped.run("logout")
            except SmokeTestError as exc:
                logger.warning("cf logout failed for %s: %s", user.username, exc)
            shutil.rmtree(home, ignore_errors=True)
