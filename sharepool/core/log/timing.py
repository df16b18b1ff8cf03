"""Timing helpers that log duration, throughput and statement counts."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from time import perf_counter
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session


class StatementCounter:
    """Count SQL statements executed on a session's connection while attached."""

    def __init__(self, session: Session) -> None:
        self.count = 0
        self._engine = session.get_bind()

    def _on_execute(self, *args: object, **kwargs: object) -> None:
        self.count += 1

    def attach(self) -> None:
        event.listen(self._engine, "before_cursor_execute", self._on_execute)

    def detach(self) -> None:
        if event.contains(self._engine, "before_cursor_execute", self._on_execute):
            event.remove(self._engine, "before_cursor_execute", self._on_execute)


@dataclass
class _Timer:
    label: str
    logger: logging.Logger
    level: int
    unit: str
    expected_total: Optional[int]
    count: int = 0
    start: float = field(default_factory=perf_counter)
    statements: Optional[StatementCounter] = None

    def add(self, amount: int = 1) -> None:
        self.count += amount

    def set_total(self, total: int) -> None:
        self.expected_total = total

    def _resolved_total(self) -> Optional[int]:
        return self.expected_total if self.expected_total is not None else self.count

    def _statement_suffix(self) -> str:
        if self.statements is None or not self.statements.count:
            return ""
        return f" ({self.statements.count:,} DB calls)"

    def finish(self, success: bool = True) -> None:
        elapsed = perf_counter() - self.start
        total = self._resolved_total()

        if success:
            message = f"{self.label} completed in {elapsed:.2f}s"
            if total is not None:
                message += f" ({total:,} {self.unit}"
                if elapsed > 0 and total:
                    message += f" @ {total / elapsed:,.0f} {self.unit}/s"
                message += ")"
            self.logger.log(self.level, message + self._statement_suffix())
        else:
            fail_message = f"{self.label} failed after {elapsed:.2f}s"
            if total is not None:
                fail_message += f" ({total:,} {self.unit})"
            self.logger.error(fail_message + self._statement_suffix())


@contextmanager
def timeit(
    label: str,
    *,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
    unit: str = "items",
    total: Optional[int] = None,
    session: Optional[Session] = None,
) -> Iterator[_Timer]:
    """Time the wrapped block and log its outcome.

    Args:
        label: Description of the operation being timed
        logger: Logger instance to use (defaults to "sharepool.timer")
        level: Logging level for the success message
        unit: Unit for throughput calculation (e.g. "orders", "bookings")
        total: Expected total count for throughput calculation
        session: When given, SQL statements issued through its bind are counted
    """
    log = logger or logging.getLogger("sharepool.timer")
    counter = StatementCounter(session) if session is not None else None

    timer = _Timer(
        label=label,
        logger=log,
        level=level,
        unit=unit,
        expected_total=total,
        statements=counter,
    )

    if counter is not None:
        counter.attach()
    try:
        yield timer
    except Exception:
        timer.finish(success=False)
        raise
    else:
        timer.finish(success=True)
    finally:
        if counter is not None:
            counter.detach()
