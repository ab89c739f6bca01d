"""Retry session controller: spawn, observe, decide, back off, respawn."""

from __future__ import annotations

import logging as py_logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from redissmoke.errors import ExitCode, SmokeTestError
from redissmoke.retry.backoff import Backoff, NoBackoff
from redissmoke.retry.matchers import MatchResult, OutputMatcher, describe_matcher
from redissmoke.retry.session import CheckableSession, SessionFactory

logger = py_logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.05
DEFAULT_FAILURE_MESSAGE = "Check did not succeed in time"

Clock = Callable[[], float]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn_error"
    CANCELLED = "cancelled"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


@dataclass(frozen=True)
class RetryOutcome:
    kind: OutcomeKind
    message: str = ""
    attempts: int = 0
    output: str = ""
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    def raise_on_failure(self) -> RetryOutcome:
        if self.succeeded:
            return self
        code = ExitCode.RUNTIME_ERROR if self.kind == OutcomeKind.SPAWN_ERROR else ExitCode.SMOKE_TEST_FAILED
        raise RetryFailedError(
            self.message,
            code=code,
            hint=f"{self.kind.value} after {self.attempts} attempt(s)",
            outcome=self,
        )


@dataclass
class RetryFailedError(SmokeTestError):
    outcome: RetryOutcome | None = None


class CancelToken:
    """Lets a caller abandon a run early; also serves as the interruptible sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(max(timeout, 0.0))


@dataclass(frozen=True)
class RetryOptions:
    overall_timeout_seconds: float
    per_attempt_timeout_seconds: float | None = None
    backoff: Backoff = field(default_factory=NoBackoff)
    failure_message: str = DEFAULT_FAILURE_MESSAGE
    max_attempts: int | None = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if self.overall_timeout_seconds < 0:
            raise ValueError(f"Overall timeout must be non-negative: {self.overall_timeout_seconds}")
        if self.per_attempt_timeout_seconds is not None and self.per_attempt_timeout_seconds <= 0:
            raise ValueError(f"Per-attempt timeout must be positive: {self.per_attempt_timeout_seconds}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"Max attempts must be at least 1: {self.max_attempts}")
        if self.poll_interval_seconds <= 0:
            raise ValueError(f"Poll interval must be positive: {self.poll_interval_seconds}")

    @property
    def attempt_timeout_seconds(self) -> float:
        if self.per_attempt_timeout_seconds is None:
            return self.overall_timeout_seconds
        return self.per_attempt_timeout_seconds


@dataclass
class _RunState:
    started_at: float
    deadline: float
    attempt_index: int = 0
    attempts: int = 0
    session: CheckableSession | None = None
    last_output: str = ""


class RetrySessionController:
    """Drives one check until it matches or the run has to give up.

    A controller may be reused for sequential runs; each run gets its own
    state. Concurrent runs need their own controller instances because each
    run exclusively owns the session it spawned.
    """

    def __init__(
        self,
        factory: SessionFactory,
        matcher: OutputMatcher,
        options: RetryOptions,
        *,
        cancel_token: CancelToken | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._factory = factory
        self._matcher = matcher
        self.options = options
        self._cancel = cancel_token or CancelToken()
        self._clock = clock

    def run_until_satisfied(self) -> RetryOutcome:
        now = self._clock()
        state = _RunState(started_at=now, deadline=now + self.options.overall_timeout_seconds)
        logger.debug(
            "Retry run started expecting=%s timeout=%ss backoff=%s",
            describe_matcher(self._matcher),
            self.options.overall_timeout_seconds,
            self.options.backoff.kind.value,
        )
        try:
            outcome = self._run(state)
        finally:
            self._release(state)
        if outcome.succeeded:
            logger.debug("Retry run succeeded attempts=%s", outcome.attempts)
        else:
            logger.warning(
                "Retry run failed kind=%s attempts=%s message=%s",
                outcome.kind.value,
                outcome.attempts,
                outcome.message,
            )
        return outcome

    def _run(self, state: _RunState) -> RetryOutcome:
        while True:
            if self._cancel.cancelled:
                return self._outcome(state, OutcomeKind.CANCELLED, "Retry run was cancelled")
            if self._clock() >= state.deadline:
                return self._outcome(state, OutcomeKind.TIMEOUT, self.options.failure_message)

            try:
                state.session = self._factory()
            except Exception as exc:
                logger.error("Check session could not be started: %s", exc)
                return self._outcome(state, OutcomeKind.SPAWN_ERROR, f"Could not start check session: {exc}")
            state.attempts += 1
            logger.debug("Attempt %s started", state.attempts)

            verdict = self._observe(state)
            if verdict is not None:
                return verdict
            self._release(state)

            max_attempts = self.options.max_attempts
            if max_attempts is not None and state.attempts >= max_attempts:
                return self._outcome(state, OutcomeKind.ATTEMPTS_EXHAUSTED, self.options.failure_message)

            delay = self.options.backoff.next(state.attempt_index)
            remaining = state.deadline - self._clock()
            if remaining <= 0:
                return self._outcome(state, OutcomeKind.TIMEOUT, self.options.failure_message)
            wait = min(delay, remaining)
            logger.debug("Attempt %s did not match; retrying in %.3fs", state.attempts, wait)
            if wait > 0 and self._cancel.wait(wait):
                return self._outcome(state, OutcomeKind.CANCELLED, "Retry run was cancelled")
            state.attempt_index += 1

    def _observe(self, state: _RunState) -> RetryOutcome | None:
        session = state.session
        assert session is not None
        attempt_deadline = min(state.deadline, self._clock() + self.options.attempt_timeout_seconds)
        while True:
            now = self._clock()
            if now >= state.deadline:
                return self._outcome(state, OutcomeKind.TIMEOUT, self.options.failure_message)

            # Read the terminal flag first so the output seen afterwards is complete.
            terminal = session.is_terminal()
            output = session.observed_output()
            state.last_output = output
            exit_code = session.exit_code if terminal else None
            if self._matcher.evaluate(output, exit_code=exit_code) == MatchResult.MATCHED:
                return self._outcome(state, OutcomeKind.SUCCESS)
            if terminal:
                return None
            if now >= attempt_deadline:
                logger.debug("Attempt %s exceeded %ss", state.attempts, self.options.attempt_timeout_seconds)
                return None
            if self._cancel.wait(min(self.options.poll_interval_seconds, attempt_deadline - now)):
                return self._outcome(state, OutcomeKind.CANCELLED, "Retry run was cancelled")

    def _release(self, state: _RunState) -> None:
        session = state.session
        state.session = None
        if session is not None:
            session.terminate()

    def _outcome(self, state: _RunState, kind: OutcomeKind, message: str = "") -> RetryOutcome:
        return RetryOutcome(
            kind=kind,
            message=message,
            attempts=state.attempts,
            output=state.last_output,
            elapsed_seconds=max(self._clock() - state.started_at, 0.0),
        )


@dataclass(frozen=True)
class RetrySessionBuilder:
    """Fluent configuration ending in :meth:`until`."""

    factory: SessionFactory
    timeout_seconds: float | None = None
    session_timeout_seconds: float | None = None
    backoff: Backoff = field(default_factory=NoBackoff)
    max_attempts: int | None = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    cancel_token: CancelToken | None = None

    def with_timeout(self, seconds: float) -> RetrySessionBuilder:
        return replace(self, timeout_seconds=seconds)

    def with_session_timeout(self, seconds: float) -> RetrySessionBuilder:
        return replace(self, session_timeout_seconds=seconds)

    def and_backoff(self, backoff: Backoff) -> RetrySessionBuilder:
        return replace(self, backoff=backoff)

    def with_max_attempts(self, attempts: int | None) -> RetrySessionBuilder:
        return replace(self, max_attempts=attempts)

    def with_poll_interval(self, seconds: float) -> RetrySessionBuilder:
        return replace(self, poll_interval_seconds=seconds)

    def with_cancel_token(self, token: CancelToken) -> RetrySessionBuilder:
        return replace(self, cancel_token=token)

    def options(self, failure_message: str = DEFAULT_FAILURE_MESSAGE) -> RetryOptions:
        overall = self.timeout_seconds
        if overall is None:
            overall = self.session_timeout_seconds
        if overall is None:
            raise ValueError("A timeout is required: call with_timeout() or with_session_timeout().")
        return RetryOptions(
            overall_timeout_seconds=overall,
            per_attempt_timeout_seconds=self.session_timeout_seconds,
            backoff=self.backoff,
            failure_message=failure_message,
            max_attempts=self.max_attempts,
            poll_interval_seconds=self.poll_interval_seconds,
        )

    def until(self, matcher: OutputMatcher, failure_message: str = DEFAULT_FAILURE_MESSAGE) -> RetryOutcome:
        controller = RetrySessionController(
            self.factory,
            matcher,
            self.options(failure_message),
            cancel_token=self.cancel_token,
        )
        return controller.run_until_satisfied()


def retry_session(factory: SessionFactory) -> RetrySessionBuilder:
    return RetrySessionBuilder(factory)
