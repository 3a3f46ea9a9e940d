"""Per-call retry state machine driven by a shared RetryPolicy."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from recurrent.errors import InvalidStateError
from recurrent.logging import get_logger
from recurrent.policy import UNLIMITED_RETRIES, RetryPolicy

logger = get_logger(__name__)

_NO_RESULT: Any = object()


class Invocation:
    """Tracks the attempts of one logical operation against a :class:`RetryPolicy`.

    The caller performs each attempt, reports its outcome here and asks whether
    to try again and how long to wait first. Once complete, the invocation
    rejects every further report with :class:`InvalidStateError`.

    An invocation has a single owner and is not thread-safe.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._policy = policy
        self._clock = clock
        self._start_nanos = clock()
        self._attempt_count = 0
        self._last_result: Any = None
        self._last_failure: BaseException | None = None
        self._completed = False
        self._pending_result = False
        self._wait_nanos = float(policy.delay_nanos)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def last_result(self) -> Any:
        return self._last_result

    @property
    def last_failure(self) -> BaseException | None:
        return self._last_failure

    def is_complete(self) -> bool:
        return self._completed

    def elapsed_nanos(self) -> int:
        return self._clock() - self._start_nanos

    def complete(self, result: Any = _NO_RESULT) -> bool:
        """Report a successful attempt.

        Without a result the invocation completes unconditionally. A result
        that still needs a retry is held as pending and False is returned; the
        caller may report that attempt through :meth:`can_retry_for`, or call
        ``complete`` again, which counts the pending attempt first. Any other
        result, or a retry-trigger result once a limit would be exceeded,
        completes the invocation and returns True.
        """
        self._ensure_active()
        if result is _NO_RESULT:
            self._record(None, None)
            self._finish()
            return True
        if self._policy.is_retryable_result(result):
            if self._pending_result:
                self._record(self._last_result, None)
            if not self._limits_reached(self._attempt_count + 1):
                self._last_result = result
                self._last_failure = None
                self._pending_result = True
                return False
        self._record(result, None)
        self._finish()
        return True

    def can_retry_for(self, result: Any, failure: BaseException | None = None) -> bool:
        return self._report(result, failure)

    def can_retry_on(self, failure: BaseException) -> bool:
        if failure is None:
            raise ValueError("failure must not be None")
        return self._report(None, failure)

    def record_failure(self, failure: BaseException) -> None:
        """Count a failed attempt without deciding whether to retry it."""
        if failure is None:
            raise ValueError("failure must not be None")
        self._ensure_active()
        self._record(None, failure)

    def wait_nanos(self) -> int:
        """Return how long to wait before the next attempt.

        Never longer than the time left under the policy's max duration.
        """
        wait = int(self._wait_nanos)
        max_duration = self._policy.max_duration_nanos
        if max_duration is not None:
            wait = max(0, min(wait, max_duration - self.elapsed_nanos()))
        return wait

    def wait_seconds(self) -> float:
        return self.wait_nanos() / 1_000_000_000

    def _ensure_active(self) -> None:
        if self._completed:
            raise InvalidStateError(
                "Invocation has already been completed",
                hint="Create a new Invocation for the next call.",
            )

    def _record(self, result: Any, failure: BaseException | None) -> None:
        self._pending_result = False
        self._attempt_count += 1
        self._last_result = result
        self._last_failure = failure
        max_delay = self._policy.max_delay_nanos
        if max_delay is not None:
            self._wait_nanos = min(self._wait_nanos * self._policy.delay_factor, max_delay)

    def _report(self, result: Any, failure: BaseException | None) -> bool:
        self._ensure_active()
        self._record(result, failure)
        if not self._policy.allows_retries_for(result, failure):
            self._finish()
            return False
        if self._limits_reached(self._attempt_count):
            logger.debug(
                "Retry limits reached attempts=%d elapsed_nanos=%d",
                self._attempt_count,
                self.elapsed_nanos(),
            )
            self._finish()
            return False
        logger.debug(
            "Retry permitted attempt=%d wait_nanos=%d failure=%r",
            self._attempt_count,
            self.wait_nanos(),
            failure,
        )
        return True

    def _limits_reached(self, attempts: int) -> bool:
        max_retries = self._policy.max_retries
        if max_retries != UNLIMITED_RETRIES and attempts > max_retries:
            return True
        max_duration = self._policy.max_duration_nanos
        return max_duration is not None and self.elapsed_nanos() >= max_duration

    def _finish(self) -> None:
        self._completed = True
        logger.debug("Invocation completed after %d attempt(s)", self._attempt_count)
