from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    """Result of a bounded poll."""

    success: bool
    attempts: int
    value: Any = None
    last_error: str | None = None


def poll(
    action: Callable[[], Any],
    max_attempts: int,
    delay: float,
    *,
    multiplier: float = 1.0,
    max_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    label: str = "poll",
) -> PollOutcome:
    """Invoke *action* until it returns a truthy value or attempts run out.

    A falsy return means the condition is not yet true; an exception listed in
    *retry_on* means the action itself errored. Both are retried. The delay
    starts at *delay* and is scaled by *multiplier* after every failed attempt,
    capped at *max_delay*. No sleep happens after the final attempt.
    """
    if max_attempts < 1:
        msg = f"max_attempts must be >= 1, got {max_attempts}"
        raise ValueError(msg)

    wait = delay
    last_error: str | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            value = action()
        except retry_on as exc:
            last_error = f"{type(exc).__name__}: {exc}"
            logger.debug("%s attempt %d/%d errored: %s", label, attempt, max_attempts, exc)
        else:
            if value:
                logger.debug("%s succeeded on attempt %d", label, attempt)
                return PollOutcome(success=True, attempts=attempt, value=value)
            last_error = "condition not met"
            logger.debug("%s attempt %d/%d: condition not met", label, attempt, max_attempts)

        if attempt < max_attempts:
            logger.info(
                "%s not ready, retrying (%d/%d) in %.1fs",
                label, attempt, max_attempts, wait,
            )
            sleep(wait)
            wait = wait * multiplier
            if max_delay is not None:
                wait = min(wait, max_delay)

    logger.warning("%s gave up after %d attempts: %s", label, max_attempts, last_error)
    return PollOutcome(success=False, attempts=max_attempts, last_error=last_error)
