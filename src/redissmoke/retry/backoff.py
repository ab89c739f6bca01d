"""Backoff policies mapping an attempt index to the wait before the next attempt."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

# 2 ** 32 times any sane baseline is already far beyond an overall deadline.
_MAX_EXPONENT = 32


class BackoffKind(str, Enum):
    NONE = "none"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"

    @classmethod
    def parse(cls, value: str | BackoffKind | None) -> BackoffKind:
        """Resolve a configured keyword, falling back to ``NONE`` when unknown."""
        if isinstance(value, BackoffKind):
            return value
        normalized = (value or "").strip().lower()
        for kind in cls:
            if kind.value == normalized:
                return kind
        return cls.NONE


def _check_index(attempt_index: int) -> None:
    if attempt_index < 0:
        raise ValueError(f"Attempt index must be non-negative: {attempt_index}")


@dataclass(frozen=True)
class Backoff(ABC):
    baseline_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.baseline_seconds < 0:
            raise ValueError(f"Backoff baseline must be non-negative: {self.baseline_seconds}")

    @property
    @abstractmethod
    def kind(self) -> BackoffKind: ...

    @abstractmethod
    def next(self, attempt_index: int) -> float:
        """Seconds to wait after the attempt at ``attempt_index`` (0-based) failed."""


@dataclass(frozen=True)
class NoBackoff(Backoff):
    """Constant interval regardless of attempt index."""

    @property
    def kind(self) -> BackoffKind:
        return BackoffKind.NONE

    def next(self, attempt_index: int) -> float:
        _check_index(attempt_index)
        return self.baseline_seconds


@dataclass(frozen=True)
class LinearBackoff(Backoff):
    """Grows by one baseline unit per attempt."""

    @property
    def kind(self) -> BackoffKind:
        return BackoffKind.LINEAR

    def next(self, attempt_index: int) -> float:
        _check_index(attempt_index)
        return self.baseline_seconds * (attempt_index + 1)


@dataclass(frozen=True)
class ExponentialBackoff(Backoff):
    """Doubles per attempt, optionally capped at ``max_seconds``."""

    max_seconds: float | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.max_seconds is not None and self.max_seconds < 0:
            raise ValueError(f"Backoff cap must be non-negative: {self.max_seconds}")

    @property
    def kind(self) -> BackoffKind:
        return BackoffKind.EXPONENTIAL

    def next(self, attempt_index: int) -> float:
        _check_index(attempt_index)
        delay = self.baseline_seconds * float(2 ** min(attempt_index, _MAX_EXPONENT))
        if self.max_seconds is not None:
            return min(delay, self.max_seconds)
        return delay


def backoff_for(
    kind: str | BackoffKind | None,
    baseline_seconds: float,
    *,
    max_seconds: float | None = None,
) -> Backoff:
    resolved = BackoffKind.parse(kind)
    if resolved == BackoffKind.LINEAR:
        return LinearBackoff(baseline_seconds)
    if resolved == BackoffKind.EXPONENTIAL:
        return ExponentialBackoff(baseline_seconds, max_seconds=max_seconds)
    return NoBackoff(baseline_seconds)
