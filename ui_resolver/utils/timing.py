# ui_resolver/utils/timing.py
from __future__ import annotations

import functools
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar, ParamSpec

from ui_resolver.utils.logger import get_logger

P = ParamSpec("P")
T = TypeVar("T")


# ---------------- Monotonic time helpers ----------------

def now_ms() -> int:
    """Monotonic time in milliseconds."""
    return time.monotonic_ns() // 1_000_000


def sleep_ms(ms: int) -> None:
    """Sleep for `ms` milliseconds (blocking)."""
    if ms <= 0:
        return
    time.sleep(ms / 1000.0)


# ---------------- Stopwatch ----------------

@dataclass
class Stopwatch:
    """Simple stopwatch usable as a context manager."""
    start_ms: Optional[int] = None

    def start(self) -> "Stopwatch":
        self.start_ms = now_ms()
        return self

    def elapsed_ms(self) -> int:
        if self.start_ms is None:
            return 0
        return max(0, now_ms() - self.start_ms)

    def __enter__(self) -> "Stopwatch":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


# ---------------- wait_for (polling) ----------------

def wait_for(
    predicate: Callable[[], T],
    timeout_ms: int,
    interval_ms: int = 100,
    description: Optional[str] = None,
) -> T:
    """
    Poll `predicate()` until it returns a truthy value,
    or until `timeout_ms` elapses. Returns the predicate's return value.

    Raises:
        TimeoutError on timeout.
    """
    log = get_logger(__name__)
    deadline = now_ms() + max(0, timeout_ms)

    while True:
        val = predicate()
        if val:
            return val
        if now_ms() >= deadline:
            desc = f" ({description})" if description else ""
            raise TimeoutError(f"wait_for timed out after {timeout_ms} ms{desc}")
        sleep_ms(max(1, interval_ms))

        if interval_ms >= 500 and (deadline - now_ms()) % 1000 < interval_ms:
            log.debug(f"Waiting... {max(0, deadline - now_ms())} ms left{(' - ' + description) if description else ''}")


# ---------------- Bounded poll + bounded retry ----------------

def retry_until(
    action: Callable[[], Any],
    predicate: Callable[[], bool],
    *,
    attempts: int = 3,
    poll_ms: int = 2500,
    interval_ms: int = 150,
    description: Optional[str] = None,
) -> int:
    """
    Run `action`, then poll `predicate` until `poll_ms` elapses; repeat up to
    `attempts` times. Errors raised by `action` are logged and do not end the
    loop, the predicate is still polled.

    Returns:
        the 1-based attempt on which the predicate became true.

    Raises:
        TimeoutError once every attempt is exhausted. Callers attach their
        own diagnostics before re-raising a domain error.
    """
    log = get_logger(__name__)
    total = max(1, attempts)
    desc = description or getattr(action, "__name__", "action")

    for attempt in range(1, total + 1):
        try:
            action()
        except Exception as exc:
            log.debug(f"{desc}: attempt {attempt}/{total} action raised {exc!r}")
        try:
            wait_for(predicate, timeout_ms=poll_ms, interval_ms=interval_ms, description=desc)
            return attempt
        except TimeoutError:
            log.debug(f"{desc}: attempt {attempt}/{total} not satisfied within {poll_ms} ms")

    raise TimeoutError(f"{desc}: not satisfied after {total} attempt(s) x {poll_ms} ms")


# ---------------- measure decorator ----------------

def measure(label: str = "", level: str = "DEBUG") -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator to log the execution time of a function.
    Example:
        @measure("fill")
        def fill(self, key, value): ...
    """
    level = level.upper()
    log = get_logger(__name__)
    log_fn = getattr(log, level.lower(), log.info)

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with Stopwatch() as sw:
                try:
                    return func(*args, **kwargs)
                finally:
                    ms = sw.elapsed_ms()
                    human = f"{ms} ms" if ms < 1000 else f"{ms/1000:.3f} s"
                    name = label or func.__name__
                    log_fn(f"{name} took {human}")
        return wrapper
    return decorator
