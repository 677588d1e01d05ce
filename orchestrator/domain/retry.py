import random

def next_poll_delay(
    idle_rounds: int,
    base_delay_seconds: float = 2.0,
    max_delay_seconds: float = 60.0,
    jitter: bool = True
) -> float:
    """
    Calculates how long an idle worker sleeps before polling again.

    Formula:
        delay = min(base * (2 ^ idle_rounds), max_delay)
        if jitter:
            delay = delay + random_uniform(0, 0.1 * delay)

    Args:
        idle_rounds: Number of consecutive polls that found no job.
                     0 means "the previous poll was the first empty one",
                     so the worker sleeps the base delay.
                     The counter is reset by the caller after a claim.

    Returns:
        float: Seconds to sleep.
    """
    if idle_rounds < 0:
        idle_rounds = 0

    # 2^20 * base is far past any sane cap.
    safe_rounds = min(idle_rounds, 20)

    delay = base_delay_seconds * (2 ** safe_rounds)

    if delay > max_delay_seconds:
        delay = max_delay_seconds

    if jitter:
        # Up to 10% so idle workers do not poll in lockstep
        delay += random.uniform(0, delay * 0.1)

    return delay
