"""Bounded polling for external services that take time to come up."""

import time
from typing import Callable, Optional, Type

from devbootstrap.errors import BootstrapError, EngineNotReady


def wait_until(
    probe: Callable[[], bool],
    attempts: int,
    interval_seconds: float,
    error_message: str,
    error_cls: Type[BootstrapError] = EngineNotReady,
    on_wait: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Call ``probe`` up to ``attempts`` times, sleeping between calls.

    Returns the 1-based attempt that succeeded. Raises ``error_cls`` with
    ``error_message`` once the attempts are exhausted. ``on_wait`` receives
    the number of the attempt that just failed.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        if probe():
            return attempt
        if attempt == attempts:
            break
        if on_wait is not None:
            on_wait(attempt)
        sleep(interval_seconds)

    raise error_cls(error_message)
