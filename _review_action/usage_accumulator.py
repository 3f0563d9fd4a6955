"""
Usage Accumulator - PR Prompt Review

PURPOSE:
    Sum the token usage of every completion made during the run. Prompt
    tasks run on parallel threads, so every increment happens under a lock.
    The total is read once, after the fan-out barrier, and reported by
    review_action_main.py.
"""

import threading


class UsageAccumulator:
    """Thread-safe running total of completion tokens."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total = 0

    def add(self, n: int) -> None:
        with self._lock:
            self._total += n

    def total(self) -> int:
        with self._lock:
            return self._total
