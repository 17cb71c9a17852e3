"""Backoff utilities.

``backoff_delays`` yields an endless sequence of exponentially growing delays,
capped at ``max_delay``. Callers sleep for each delay before their next
attempt and start a fresh generator once an attempt succeeds.
"""

from collections.abc import Iterator


def backoff_delays(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
) -> Iterator[float]:
    delay = min(initial_delay, max_delay)
    while True:
        yield delay
        delay = min(delay * multiplier, max_delay)
