"""Retry/backoff polling engine for externally observable checks."""

from .backoff import Backoff, BackoffKind, ExponentialBackoff, LinearBackoff, NoBackoff, backoff_for
from .controller import (
    CancelToken,
    OutcomeKind,
    RetryFailedError,
    RetryOptions,
    RetryOutcome,
    RetrySessionBuilder,
    RetrySessionController,
    retry_session,
)
from .matchers import (
    Contains,
    ExitsWith,
    Matcher,
    MatchesRegex,
    MatchResult,
    OnExit,
    Satisfies,
    matches_output,
)
from .session import CallableSession, CheckableSession, ProcessSession, SessionFactory, SessionSpawnError, SessionState

__all__ = [
    "Backoff",
    "BackoffKind",
    "backoff_for",
    "CallableSession",
    "CancelToken",
    "CheckableSession",
    "Contains",
    "ExitsWith",
    "ExponentialBackoff",
    "LinearBackoff",
    "Matcher",
    "MatchesRegex",
    "MatchResult",
    "matches_output",
    "NoBackoff",
    "OnExit",
    "OutcomeKind",
    "ProcessSession",
    "RetryFailedError",
    "RetryOptions",
    "RetryOutcome",
    "retry_session",
    "RetrySessionBuilder",
    "RetrySessionController",
    "Satisfies",
    "SessionFactory",
    "SessionSpawnError",
    "SessionState",
]
