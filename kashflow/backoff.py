"""
Exponential backoff with full jitter for upstream retries.

Delay for retry N is uniform in [0, min(cap, base * factor**N)].
Rate-limited responses may carry a Retry-After header, either delta-seconds
or an HTTP-date; parse_retry_after() turns it into a wait in seconds.
"""

import random
import time
from email.utils import parsedate_to_datetime
from typing import Optional

# Defaults for the KashFlow API client
DEFAULT_BASE = 1.0
DEFAULT_CAP = 30.0
DEFAULT_FACTOR = 2.0

# Minimum wait when the API rate-limits us
RATE_LIMIT_FLOOR = 2.0


def calculate_delay(
    retry_count: int,
    base: float = DEFAULT_BASE,
    cap: float = DEFAULT_CAP,
    factor: float = DEFAULT_FACTOR,
    jitter_seed: Optional[int] = None,
) -> float:
    """
    Calculate backoff delay with full jitter.

    Args:
        retry_count: Zero-based retry attempt number
        base: Delay ceiling for the first retry, in seconds
        cap: Maximum delay ceiling, in seconds
        factor: Exponential growth factor
        jitter_seed: Optional seed for deterministic tests

    Returns:
        Delay in seconds within [0, min(cap, base * factor**retry_count)]
    """
    ceiling = min(cap, base * (factor ** retry_count))
    rng = random.Random(jitter_seed) if jitter_seed is not None else random
    return rng.uniform(0, ceiling)


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> float:
    """
    Parse a Retry-After header into seconds to wait.

    Args:
        value: Header value (delta-seconds or HTTP-date), may be None
        now: Current time (default: time.time()). For testing.

    Returns:
        Seconds to wait, never less than RATE_LIMIT_FLOOR
    """
    if not value:
        return RATE_LIMIT_FLOOR

    value = value.strip()
    try:
        secs = float(value)
        if secs > 0:
            return max(RATE_LIMIT_FLOOR, secs)
        return RATE_LIMIT_FLOOR
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return RATE_LIMIT_FLOOR
    if when is None:
        return RATE_LIMIT_FLOOR

    if now is None:
        now = time.time()
    delta = when.timestamp() - now
    return max(RATE_LIMIT_FLOOR, delta)
