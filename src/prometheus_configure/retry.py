"""
Bounded fixed-interval polling.

Both waits in a configure run are fixed-interval and bounded: resolver
discovery sleeps between rounds over the resolver list, and the lifecycle
driver sleeps between checks of a transitioning SMF service. Neither backs off
exponentially; a bounded wait that runs out is fatal for the caller, so this
helper only reports whether the condition was met and leaves the error to the
caller.
"""

import logging
import os
import time
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))


def poll_until(func: Callable[[], Any],
               predicate: Callable[[Any], bool],
               max_attempts: int,
               delay: float,
               sleep: Callable[[float], None] = time.sleep,
               description: Optional[str] = None,
               wait_first: bool = False) -> Tuple[Any, int, bool]:
    """
    Call func until predicate(result) holds or max_attempts calls were made.

    Sleeps `delay` seconds between calls, never after the final call. With
    `wait_first` it also sleeps before the first call, so `max_attempts` calls
    span `max_attempts * delay` seconds.
    Exceptions raised by func propagate unchanged.

    Args:
        func: Zero-argument callable producing the value to test.
        predicate: Returns True when the value is acceptable.
        max_attempts: Number of calls before giving up. Must be >= 1.
        delay: Seconds to sleep between calls. Must be >= 0.
        sleep: Sleep function, injectable for tests.
        description: Used in debug logging only.
        wait_first: Sleep before the first call as well.

    Returns:
        (last_value, attempts_made, satisfied)

    Raises:
        ValueError: If max_attempts < 1 or delay < 0.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if delay < 0:
        raise ValueError("delay must be >= 0")

    name = description or getattr(func, '__name__', 'func')
    value = None
    for attempt in range(1, max_attempts + 1):
        if attempt > 1 or wait_first:
            logger.debug(f"{name}: sleeping {delay}s before attempt {attempt}/{max_attempts}")
            sleep(delay)
        value = func()
        if predicate(value):
            if attempt > 1:
                logger.debug(f"{name} satisfied on attempt {attempt}/{max_attempts}")
            return value, attempt, True

    logger.debug(f"{name} not satisfied after {max_attempts} attempts")
    return value, max_attempts, False
