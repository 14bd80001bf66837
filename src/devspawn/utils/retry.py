"""Retry helper."""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_call(
    func: Callable[[], T],
    attempts: int,
    delay: float,
    backoff: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it returns, at most ``attempts`` times.

    The delay before attempt ``n + 1`` is ``delay * backoff ** (n - 1)``. The
    last exception is re-raised once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    wait = delay
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}), retrying in {wait}s: {e}"
            )
            sleep(wait)
            wait *= backoff

    raise AssertionError("unreachable")
