"""Offload blocking callables from the controller's event loop.

Config-document reads and writes, storage-root creation and backup copies go
through `run_blocking` so slow storage never stalls start/stop handling.
"""

from __future__ import annotations

import asyncio
import atexit
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")

_IO_EXECUTOR = ThreadPoolExecutor(max_workers=2, thread_name_prefix="svc-keeper-io")


@atexit.register
def _shutdown_io_executor() -> None:
    _IO_EXECUTOR.shutdown(wait=False, cancel_futures=True)


async def run_blocking(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run `func` on the shared IO executor and await its result."""
    if not callable(func):
        raise TypeError("func must be callable")
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_IO_EXECUTOR, partial(func, *args, **kwargs))
