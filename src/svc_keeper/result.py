"""Explicit success/failure values for operations whose errors are discarded.

Best-effort steps return a `Result` instead of hiding a try/except inside the
caller, so the discard is visible at the call site and in the signature.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: Exception


Result = Union[Ok[T], Err]


async def capture(operation: Callable[[], Awaitable[T]]) -> Result[T]:
    """Await `operation` and wrap its value or raised `Exception`."""
    try:
        return Ok(await operation())
    except Exception as exc:
        return Err(exc)
