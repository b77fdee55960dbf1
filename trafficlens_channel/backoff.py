"""
Reconnect backoff ladder.

Failure n (counted from 0 since the last successful open) waits
min(BASE_DELAY_S * 2**n, CAP_DELAY_S); once MAX_RECONNECT_ATTEMPTS retries
have been scheduled the next failure is terminal.
"""

from typing import List, Optional

MAX_RECONNECT_ATTEMPTS = 10
BASE_DELAY_S = 1.0
CAP_DELAY_S = 30.0


def backoff_delay(
    attempt: int,
    base: float = BASE_DELAY_S,
    cap: float = CAP_DELAY_S,
) -> float:
    """Delay in seconds before retry number ``attempt`` (0-based)."""
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # Clamp the exponent so large attempt counts never overflow a float
    return min(base * (2 ** min(attempt, 32)), cap)


def next_delay(
    attempt: int,
    max_attempts: int = MAX_RECONNECT_ATTEMPTS,
    base: float = BASE_DELAY_S,
    cap: float = CAP_DELAY_S,
) -> Optional[float]:
    """Delay for the retry after failure ``attempt``, or None when the budget is spent."""
    if attempt >= max_attempts:
        return None
    return backoff_delay(attempt, base, cap)


def ladder(
    max_attempts: int = MAX_RECONNECT_ATTEMPTS,
    base: float = BASE_DELAY_S,
    cap: float = CAP_DELAY_S,
) -> List[float]:
    """Full delay sequence, e.g. [1, 2, 4, 8, 16, 30, 30, 30, 30, 30]."""
    return [backoff_delay(n, base, cap) for n in range(max_attempts)]
