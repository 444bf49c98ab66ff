"""Probe-then-create helper used for the staging bucket and the stack itself."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class Ensured(Generic[T]):
    value: T
    created: bool


def ensure_exists(probe: Callable[[], Optional[T]], create: Callable[[], T]) -> Ensured[T]:
    """Return the existing resource, or create it when the probe is definitively negative.

    ``probe`` returns ``None`` only for a clear "not found"; any other failure
    must be raised by the probe and is propagated untouched, so ``create`` never
    runs on an ambiguous answer.
    """
    existing = probe()
    if existing is not None:
        return Ensured(value=existing, created=False)
    return Ensured(value=create(), created=True)


__all__ = ["Ensured", "ensure_exists"]
