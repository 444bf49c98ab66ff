"""Bounded polling with backoff, deadline and cancellation."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from core.errors import OperationCancelledError, ProvisioningTimeoutError

T = TypeVar("T")

logger = logging.getLogger("quokka.polling")


@dataclass(slots=True)
class Poller:
    """Repeatedly call a probe until a predicate holds, the deadline passes or the run is cancelled."""

    interval: float = 5.0
    max_interval: float = 30.0
    backoff: float = 1.5
    timeout: float = 1800.0
    cancel_event: threading.Event = field(default_factory=threading.Event)
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        if self.interval < 0 or self.max_interval < 0:
            raise ValueError("poll intervals must not be negative")
        if self.backoff < 1:
            raise ValueError("backoff must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def wait(
        self,
        probe: Callable[[], T],
        done: Callable[[T], bool],
        *,
        label: str,
        status_of: Optional[Callable[[T], str | None]] = None,
    ) -> T:
        deadline = self.clock() + self.timeout
        delay = self.interval
        attempt = 0
        last_status: str | None = None

        while True:
            self._check_cancelled(label)
            attempt += 1
            value = probe()
            if status_of is not None:
                last_status = status_of(value)
            if done(value):
                logger.debug("%s finished after %d attempt(s)", label, attempt)
                return value

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise ProvisioningTimeoutError(
                    f"{label} did not reach a terminal state within {self.timeout:g}s",
                    last_status=last_status,
                    state={"attempts": attempt},
                )
            logger.debug("%s not ready (attempt %d, status=%s); retrying in %.1fs", label, attempt, last_status, delay)
            if self.cancel_event.wait(min(delay, remaining)):
                self._check_cancelled(label)
            delay = min(delay * self.backoff, self.max_interval)

    def _check_cancelled(self, label: str) -> None:
        if self.cancel_event.is_set():
            raise OperationCancelledError(f"{label} was cancelled")


__all__ = ["Poller"]
