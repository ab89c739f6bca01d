from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from redissmoke.retry.backoff import BackoffKind, LinearBackoff, backoff_for

_BASELINES = st.floats(min_value=0.0, max_value=3600.0, allow_nan=False, allow_infinity=False)
_INDICES = st.integers(min_value=0, max_value=10_000)
_KINDS = st.sampled_from(["none", "linear", "exponential"])
_KNOWN = {kind.value for kind in BackoffKind}


@given(_BASELINES, _INDICES)
def test_linear_backoff_is_baseline_times_attempt_plus_one(baseline: float, index: int) -> None:
    assert LinearBackoff(baseline).next(index) == baseline * (index + 1)


@given(_KINDS, _BASELINES, _INDICES)
def test_every_kind_yields_finite_non_negative_waits(kind: str, baseline: float, index: int) -> None:
    delay = backoff_for(kind, baseline).next(index)

    assert delay >= 0
    assert delay != float("inf")


@given(st.sampled_from(["linear", "exponential"]), _BASELINES, _INDICES)
def test_growing_kinds_are_monotonic(kind: str, baseline: float, index: int) -> None:
    backoff = backoff_for(kind, baseline)

    assert backoff.next(index + 1) >= backoff.next(index)


@given(st.text(max_size=20).filter(lambda value: value.strip().lower() not in _KNOWN), _BASELINES, _INDICES)
def test_unrecognized_kinds_match_none(kind: str, baseline: float, index: int) -> None:
    assert backoff_for(kind, baseline).next(index) == backoff_for("none", baseline).next(index)
