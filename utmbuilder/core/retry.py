# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""
Retry with exponential backoff.

The pipeline runner itself never retries; collaborators that talk to flaky
resources (artifact downloads) wrap their own calls with retry_operation().
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar, Union

T = TypeVar("T")


def backoff_delay(attempt: int, base_backoff_s: float, max_backoff_s: float, jitter_s: float) -> float:
    """Delay before retry number `attempt` (1-based)."""
    delay = min(base_backoff_s * (2 ** (attempt - 1)), max_backoff_s)
    if jitter_s > 0:
        delay += random.uniform(0, jitter_s)
    return delay


def retry_operation(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_backoff_s: float = 2.0,
    max_backoff_s: float = 60.0,
    jitter_s: float = 1.0,
    exceptions: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = Exception,
    operation_name: str = "operation",
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `operation` until it succeeds or `max_attempts` is reached.

    Only exceptions matching `exceptions` are retried; anything else
    propagates immediately. The last matching exception is re-raised once
    attempts are exhausted.

    Example:
        path = retry_operation(
            lambda: client.download(url, dest),
            max_attempts=5,
            exceptions=(requests.RequestException, OSError),
            operation_name="guest additions download",
            logger=LOG,
        )
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except exceptions as e:
            if attempt >= attempts:
                if logger:
                    logger.error("%s failed after %d attempts: %s", operation_name, attempts, e)
                raise

            delay = backoff_delay(attempt, base_backoff_s, max_backoff_s, jitter_s)
            if logger:
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.2fs...",
                    operation_name,
                    attempt,
                    attempts,
                    e,
                    delay,
                )
            sleep(delay)

    raise RuntimeError(f"{operation_name} failed with no exception recorded")  # pragma: no cover
