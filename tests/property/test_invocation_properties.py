from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from recurrent.invocation import Invocation
from recurrent.policy import RetryPolicy, TimeUnit


class _Transient(Exception):
    pass


class _Fatal(Exception):
    pass


def _frozen_clock() -> int:
    return 0


@given(st.integers(min_value=0, max_value=25))
def test_never_matching_outcomes_complete_within_max_retries_plus_one(max_retries: int) -> None:
    policy = RetryPolicy().retry_on(_Transient).with_max_retries(max_retries)
    inv = Invocation(policy, clock=_frozen_clock)

    assert inv.can_retry_for("ok") is False

    assert inv.is_complete()
    assert inv.attempt_count == 1


@given(st.integers(min_value=0, max_value=25))
def test_retryable_failures_stop_after_max_retries_plus_one(max_retries: int) -> None:
    inv = Invocation(RetryPolicy().with_max_retries(max_retries), clock=_frozen_clock)
    failure = _Transient()

    decisions = []
    while not inv.is_complete():
        decisions.append(inv.can_retry_on(failure))

    assert decisions == [True] * max_retries + [False]
    assert inv.attempt_count == max_retries + 1
    assert inv.last_failure is failure


@given(st.one_of(st.none(), st.integers(), st.text(max_size=5)), st.integers())
def test_retry_when_value_only_retries_on_that_value(trigger: object, other: int) -> None:
    policy = RetryPolicy().retry_when(trigger)

    pending = Invocation(policy, clock=_frozen_clock)
    assert pending.complete(trigger) is False
    assert not pending.is_complete()

    if other != trigger:
        done = Invocation(policy, clock=_frozen_clock)
        assert done.complete(other) is True
        assert done.is_complete()
        assert done.last_result == other


@given(st.booleans(), st.integers(min_value=0, max_value=5))
def test_retry_on_matches_iff_instance(is_transient: bool, max_retries: int) -> None:
    policy = RetryPolicy().retry_on(_Transient).with_max_retries(max_retries)
    inv = Invocation(policy, clock=_frozen_clock)
    failure: Exception = _Transient() if is_transient else _Fatal()

    retried = inv.can_retry_on(failure)

    assert retried == (is_transient and max_retries > 0)
    assert inv.is_complete() is not retried
    if not retried:
        assert inv.last_failure is failure


@given(
    st.integers(min_value=1, max_value=1_000),
    st.integers(min_value=1, max_value=1_000),
    st.sampled_from([2, 3, 1.5]),
    st.integers(min_value=0, max_value=30),
)
def test_backoff_never_exceeds_max_and_never_shrinks(
    initial: int, extra: int, factor: float, failures: int
) -> None:
    maximum = initial + extra
    policy = RetryPolicy().with_backoff(initial, maximum, TimeUnit.NANOSECONDS, factor)
    inv = Invocation(policy, clock=_frozen_clock)

    previous = inv.wait_nanos()
    assert previous == initial
    for _ in range(failures):
        inv.record_failure(_Transient())
        current = inv.wait_nanos()
        assert previous <= current <= maximum
        previous = current
