"""Predicates deciding whether a session's observed output signals success."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class MatchResult(str, Enum):
    MATCHED = "matched"
    NOT_YET = "not_yet"

    @classmethod
    def of(cls, matched: bool) -> MatchResult:
        return cls.MATCHED if matched else cls.NOT_YET


class OutputMatcher(Protocol):
    def evaluate(self, output: str, *, exit_code: int | None = None) -> MatchResult: ...


@dataclass(frozen=True)
class Contains:
    text: str

    def evaluate(self, output: str, *, exit_code: int | None = None) -> MatchResult:
        del exit_code
        return MatchResult.of(self.text in output)

    def describe(self) -> str:
        return f"output containing {self.text!r}"


@dataclass(frozen=True)
class MatchesRegex:
    pattern: str
    flags: int = 0
    _compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", re.compile(self.pattern, self.flags))

    def evaluate(self, output: str, *, exit_code: int | None = None) -> MatchResult:
        del exit_code
        return MatchResult.of(self._compiled.search(output) is not None)

    def describe(self) -> str:
        return f"output matching /{self.pattern}/"


@dataclass(frozen=True)
class Satisfies:
    predicate: Callable[[str], bool]
    description: str = "custom predicate"

    def evaluate(self, output: str, *, exit_code: int | None = None) -> MatchResult:
        del exit_code
        return MatchResult.of(bool(self.predicate(output)))

    def describe(self) -> str:
        return self.description


@dataclass(frozen=True)
class ExitsWith:
    """Matches once the session has exited with ``code``."""

    code: int = 0

    def evaluate(self, output: str, *, exit_code: int | None = None) -> MatchResult:
        del output
        return MatchResult.of(exit_code is not None and exit_code == self.code)

    def describe(self) -> str:
        return f"exit status {self.code}"


@dataclass(frozen=True)
class OnExit:
    """Holds ``inner`` back until the session has exited; partial output never matches."""

    inner: OutputMatcher

    def evaluate(self, output: str, *, exit_code: int | None = None) -> MatchResult:
        if exit_code is None:
            return MatchResult.NOT_YET
        return self.inner.evaluate(output, exit_code=exit_code)

    def describe(self) -> str:
        return f"{describe_matcher(self.inner)} after exit"


Matcher = Contains | MatchesRegex | Satisfies | ExitsWith | OnExit


def matches_output(pattern: str | re.Pattern[str]) -> MatchesRegex:
    if isinstance(pattern, re.Pattern):
        return MatchesRegex(pattern.pattern, pattern.flags)
    return MatchesRegex(pattern)


def describe_matcher(matcher: OutputMatcher) -> str:
    describe = getattr(matcher, "describe", None)
    if callable(describe):
        return str(describe())
    return type(matcher).__name__
