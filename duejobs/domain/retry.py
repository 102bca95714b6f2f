import random

def calculate_backoff(
    attempts: int,
    base_delay_seconds: float = 0.2,
    max_delay_seconds: float = 5.0,
    jitter: bool = True
) -> float:
    """
    Calculates the delay before the next retry using exponential backoff with optional jitter.

    Formula:
        delay = min(base * (2 ^ (attempts - 1)), max_delay)
        if jitter:
            delay = delay + random_uniform(0, 0.1 * delay)

    Args:
        attempts: Number of failed attempts so far. attempts=1 means
                  "we failed once, how long until we try again?"
                  Values below 1 are treated as 1.

    Returns:
        float: Seconds to sleep before the next attempt.
    """
    # 2^20 * base is far past any sane max_delay, cap before pow
    safe_attempts = min(max(attempts, 1), 20)

    delay = base_delay_seconds * (2 ** (safe_attempts - 1))

    if delay > max_delay_seconds:
        delay = max_delay_seconds

    if jitter:
        # Up to 10% extra so overlapping ticks don't retry in lockstep
        delay += random.uniform(0, delay * 0.1)

    return delay
