"""Bounded retries with exponential backoff for single remote calls."""

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

import httpx
import openai

from console import Reporter

T = TypeVar('T')


def status_code_of(error: BaseException) -> Optional[int]:
    """HTTP status carried by an error, if any."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def retry_after_seconds(error: BaseException) -> Optional[float]:
    """Value of a `Retry-After` header on the failed response, in seconds.

    Only the delta-seconds form is honoured; HTTP-date values are ignored.
    """
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def is_transient_error(error: BaseException) -> bool:
    """Connection resets, timeouts, HTTP 5xx and HTTP 429 are worth retrying."""
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(error, openai.APIConnectionError):
        return True
    if isinstance(error, (ConnectionResetError, TimeoutError)):
        return True
    status = status_code_of(error)
    if status is None:
        return False
    return status >= 500 or status == 429


@dataclass
class RetryState:
    """Bookkeeping for one wrapped call; discarded when the call ends."""
    attempt: int = 1
    computed_delay_ms: float = 0.0
    last_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 10000
    backoff_factor: float = 2
    retry_predicate: Callable[[BaseException], bool] = field(default=is_transient_error, repr=False)
    sleep: Callable[[float], Any] = field(default=time.sleep, repr=False, compare=False)
    jitter: Callable[[float, float], float] = field(default=random.uniform, repr=False, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff_ms(self, attempt: int) -> float:
        """Delay after the given failed attempt, before jitter."""
        return min(self.base_delay_ms * self.backoff_factor ** (attempt - 1), self.max_delay_ms)

    def compute_delay_ms(self, attempt: int, error: Optional[BaseException] = None) -> float:
        delay = self.backoff_ms(attempt)
        total = delay + self.jitter(0, 0.1 * delay)
        if error is not None:
            retry_after = retry_after_seconds(error)
            if retry_after is not None:
                total = max(retry_after * 1000, total)
        return total

    def execute(self, operation: Callable[[], T], reporter: Optional[Reporter] = None) -> T:
        """Run `operation`, retrying transient failures.

        Returns the operation's result, or re-raises the error of the final
        attempt exactly as the operation raised it.
        """
        state = RetryState()
        while True:
            try:
                return operation()
            except Exception as e:
                state.last_error = e
                if state.attempt >= self.max_attempts or not self.retry_predicate(e):
                    raise

                state.computed_delay_ms = self.compute_delay_ms(state.attempt, e)
                if reporter:
                    reporter.warning(
                        f"Retry attempt {state.attempt}/{self.max_attempts} in "
                        f"{round(state.computed_delay_ms)}ms ({type(e).__name__})"
                    )
                self.sleep(state.computed_delay_ms / 1000)
                state.attempt += 1


DEFAULT_POLICY = RetryPolicy()


def execute(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    reporter: Optional[Reporter] = None,
) -> T:
    """Run `operation` under `policy` (defaults: 3 attempts, 1s base, 10s cap, x2)."""
    return (policy or DEFAULT_POLICY).execute(operation, reporter)
