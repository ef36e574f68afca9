"""
ScheduleOutcome -- Tagged success/failure result for the public surface.

Responsibility:
    Carries either the value of a scheduling operation or the typed
    SchedulingError that prevented it, together with the error's
    machine-readable code and message.

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.
    Produced by schedule_services at the public boundary; engines raise
    typed exceptions and never build outcomes themselves.

Invariants enforced:
    - A successful outcome has no error fields.
    - A failed outcome always carries ``error_code`` and ``error_message``.

Failure modes:
    - ``unwrap()`` on a failed outcome re-raises the stored error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from schedule_kernel.exceptions import SchedulingError

T = TypeVar("T")


@dataclass(frozen=True)
class ScheduleOutcome(Generic[T]):
    """
    Result of a public scheduling operation.

    Contract:
        Build with ``ok(value)`` or ``fail(error)``; never construct the
        fields by hand.

    Guarantees:
        - Frozen dataclass -- immutable after construction.
        - ``bool(outcome)`` is ``outcome.is_success``.
    """

    success: bool
    value: T | None = None
    error: SchedulingError | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> ScheduleOutcome[T]:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: SchedulingError) -> ScheduleOutcome[T]:
        return cls(
            success=False,
            error=error,
            error_code=error.code,
            error_message=str(error),
        )

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self) -> T:
        """
        Return the value of a successful outcome.

        Raises:
            SchedulingError: the stored error, when the outcome failed.
        """
        if not self.success:
            if self.error is None:
                raise SchedulingError(self.error_message or "failed outcome carries no error")
            raise self.error
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.success
