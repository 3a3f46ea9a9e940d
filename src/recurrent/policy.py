"""Immutable retry policy: what to retry, how often, how long and how far apart."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, cast

from recurrent.errors import PolicyConfigError

ResultPredicate = Callable[[Any], bool]
FailurePredicate = Callable[[BaseException], bool]

UNLIMITED_RETRIES = -1
DEFAULT_DELAY_FACTOR = 2.0


class TimeUnit(str, Enum):
    NANOSECONDS = "ns"
    MICROSECONDS = "us"
    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"
    DAYS = "d"

    @property
    def nanos(self) -> int:
        return _NANOS_PER_UNIT[self]

    def to_nanos(self, amount: float) -> int:
        if not math.isfinite(amount):
            raise PolicyConfigError(f"Duration must be a finite number, got {amount!r}")
        return int(round(amount * self.nanos))

    @classmethod
    def parse(cls, value: TimeUnit | str) -> TimeUnit:
        if isinstance(value, TimeUnit):
            return value
        normalized = str(value).strip().lower()
        unit = _UNIT_ALIASES.get(normalized)
        if unit is None:
            raise PolicyConfigError(
                f"Unknown time unit: {value!r}",
                hint=f"Use one of: {', '.join(item.value for item in cls)}.",
            )
        return unit


_NANOS_PER_UNIT = {
    TimeUnit.NANOSECONDS: 1,
    TimeUnit.MICROSECONDS: 1_000,
    TimeUnit.MILLISECONDS: 1_000_000,
    TimeUnit.SECONDS: 1_000_000_000,
    TimeUnit.MINUTES: 60 * 1_000_000_000,
    TimeUnit.HOURS: 3_600 * 1_000_000_000,
    TimeUnit.DAYS: 86_400 * 1_000_000_000,
}

_UNIT_ALIASES: dict[str, TimeUnit] = {}
for _unit in TimeUnit:
    _UNIT_ALIASES[_unit.value] = _unit
    _UNIT_ALIASES[_unit.name.lower()] = _unit
    _UNIT_ALIASES[_unit.name.lower().rstrip("s")] = _unit
_UNIT_ALIASES.update(
    {"millis": TimeUnit.MILLISECONDS, "sec": TimeUnit.SECONDS, "min": TimeUnit.MINUTES}
)
del _unit


@dataclass(frozen=True)
class _EqualTo:
    value: Any

    def __call__(self, result: Any) -> bool:
        return result is self.value or bool(result == self.value)


@dataclass(frozen=True)
class _InstanceOf:
    failure_type: type[BaseException]

    def __call__(self, failure: BaseException) -> bool:
        return isinstance(failure, self.failure_type)


def _is_failure_type(matcher: object) -> bool:
    return isinstance(matcher, type) and issubclass(matcher, BaseException)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration shared by any number of invocations.

    Every ``retry_*`` / ``with_*`` call returns a new policy; the receiver is
    never modified. Parameters are validated on construction, so an invalid
    combination fails at the builder call that introduced it.
    """

    result_predicate: ResultPredicate | None = None
    failure_predicates: tuple[FailurePredicate, ...] = ()
    max_retries: int = UNLIMITED_RETRIES
    max_duration_nanos: int | None = None
    delay_nanos: int = 0
    max_delay_nanos: int | None = None
    delay_factor: float = DEFAULT_DELAY_FACTOR

    def __post_init__(self) -> None:
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise PolicyConfigError(f"max_retries must be an integer, got {self.max_retries!r}")
        if self.max_retries < UNLIMITED_RETRIES:
            raise PolicyConfigError(
                f"Invalid max_retries: {self.max_retries}",
                hint="Use -1 for unlimited retries or a value >= 0.",
            )
        if self.delay_nanos < 0:
            raise PolicyConfigError(f"Delay must be >= 0, got {self.delay_nanos}ns")
        if self.max_duration_nanos is not None:
            if self.max_duration_nanos < 0:
                raise PolicyConfigError(
                    f"Max duration must be >= 0, got {self.max_duration_nanos}ns"
                )
            if self.delay_nanos and self.delay_nanos >= self.max_duration_nanos:
                raise PolicyConfigError(
                    "Delay must be less than the max duration.",
                    hint="Shorten the delay or allow a longer max duration.",
                )
        if self.max_delay_nanos is not None:
            if self.delay_nanos <= 0:
                raise PolicyConfigError("Backoff initial delay must be greater than 0")
            if self.max_delay_nanos < self.delay_nanos:
                raise PolicyConfigError(
                    f"Max delay ({self.max_delay_nanos}ns) must be >= initial delay "
                    f"({self.delay_nanos}ns)"
                )
        if not math.isfinite(self.delay_factor) or self.delay_factor <= 1:
            raise PolicyConfigError(
                f"Delay factor must be greater than 1, got {self.delay_factor}"
            )
        if self.result_predicate is not None and not callable(self.result_predicate):
            raise PolicyConfigError("result_predicate must be callable")
        for predicate in self.failure_predicates:
            if not callable(predicate):
                raise PolicyConfigError(f"Failure predicate is not callable: {predicate!r}")

    # builder

    def retry_when(self, value: Any) -> RetryPolicy:
        return replace(self, result_predicate=_EqualTo(value))

    def retry_if(self, predicate: ResultPredicate) -> RetryPolicy:
        return replace(self, result_predicate=predicate)

    def retry_on(
        self, *matchers: type[BaseException] | FailurePredicate
    ) -> RetryPolicy:
        """Retry failures that are instances of the given types or satisfy the predicates."""
        if not matchers:
            raise PolicyConfigError(
                "retry_on() needs at least one exception type or predicate.",
                hint="Omit retry_on() entirely to retry on any failure.",
            )
        added: list[FailurePredicate] = []
        for matcher in matchers:
            if _is_failure_type(matcher):
                added.append(_InstanceOf(cast(type[BaseException], matcher)))
            elif isinstance(matcher, type):
                raise PolicyConfigError(f"{matcher.__name__} is not an exception type")
            else:
                added.append(cast(FailurePredicate, matcher))
        return replace(self, failure_predicates=self.failure_predicates + tuple(added))

    def with_max_retries(self, max_retries: int) -> RetryPolicy:
        return replace(self, max_retries=max_retries)

    def with_max_duration(self, amount: float, unit: TimeUnit | str) -> RetryPolicy:
        return replace(self, max_duration_nanos=TimeUnit.parse(unit).to_nanos(amount))

    def with_delay(self, amount: float, unit: TimeUnit | str) -> RetryPolicy:
        return replace(
            self,
            delay_nanos=TimeUnit.parse(unit).to_nanos(amount),
            max_delay_nanos=None,
            delay_factor=DEFAULT_DELAY_FACTOR,
        )

    def with_backoff(
        self,
        initial: float,
        maximum: float,
        unit: TimeUnit | str,
        factor: float = DEFAULT_DELAY_FACTOR,
    ) -> RetryPolicy:
        resolved = TimeUnit.parse(unit)
        return replace(
            self,
            delay_nanos=resolved.to_nanos(initial),
            max_delay_nanos=resolved.to_nanos(maximum),
            delay_factor=float(factor),
        )

    # evaluation

    @property
    def uses_backoff(self) -> bool:
        return self.max_delay_nanos is not None

    def retries_any_failure(self) -> bool:
        return not self.failure_predicates

    def allows_retries(self) -> bool:
        if self.max_retries == 0:
            return False
        return self.max_duration_nanos is None or self.max_duration_nanos > 0

    def is_retryable_result(self, result: Any) -> bool:
        if self.result_predicate is None:
            return False
        return bool(self.result_predicate(result))

    def is_retryable_failure(self, failure: BaseException) -> bool:
        if self.retries_any_failure():
            return True
        return any(predicate(failure) for predicate in self.failure_predicates)

    def allows_retries_for(self, result: Any, failure: BaseException | None) -> bool:
        """Decide on the failure when one is present; the result is ignored then."""
        if failure is not None:
            return self.is_retryable_failure(failure)
        return self.is_retryable_result(result)
