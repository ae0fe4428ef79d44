"""Admission control and retry/backoff for outbound backend calls."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

import requests

from esview.backend.client import RETRYABLE_STATUS_CODES
from esview.exceptions import AdmissionTimeoutError, BackendError, OperationCancelledError

if TYPE_CHECKING:
    from esview.config import RateLimitConfig
    from esview.state.models import CancelToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Granularity of cancellation checks while waiting for a slot
_POLL_INTERVAL = 0.05


def is_retryable(exc: BaseException) -> bool:
    """Return whether repeating the failed call may succeed.

    Backend errors carry their own classification. Raw ``requests``
    connection errors and timeouts are retryable, and so are HTTP errors
    with status 429/502/503/504. Everything else (auth failures, bad
    requests, admission timeouts, cancellation) is terminal.
    """
    if isinstance(exc, BackendError):
        return exc.retryable
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        return response is not None and response.status_code in RETRYABLE_STATUS_CODES
    return False


class AdmissionController:
    """Bounds concurrent backend calls and retries transient failures.

    At most ``max_concurrent_ops`` calls hold a slot at any moment. A
    failed attempt gives its slot back before backing off, so waiting
    retries never block other callers.

    Args:
        config: Limits and backoff parameters.
    """

    def __init__(self, config: RateLimitConfig) -> None:
        self.config = config
        self._slots = threading.BoundedSemaphore(config.max_concurrent_ops)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._current_delay = 0.0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def current_delay(self) -> float:
        """Delay used before the latest retry; 0.0 after a success."""
        with self._lock:
            return self._current_delay

    # -- admission --------------------------------------------------------

    def acquire(self, timeout: float | None = None, cancel: CancelToken | None = None) -> None:
        """Take a slot, waiting up to *timeout* seconds (forever when None).

        Raises:
            AdmissionTimeoutError: If no slot frees up in time.
            OperationCancelledError: If *cancel* fires while waiting.
        """
        if cancel is not None:
            acquired = self._acquire_cancellable(timeout, cancel)
        elif timeout is None:
            acquired = self._slots.acquire()
        else:
            acquired = self._slots.acquire(timeout=timeout)
        if not acquired:
            raise AdmissionTimeoutError(timeout if timeout is not None else 0.0)
        with self._lock:
            self._in_flight += 1

    def _acquire_cancellable(self, timeout: float | None, cancel: CancelToken) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if cancel.cancelled:
                raise OperationCancelledError("slot acquisition")
            wait = _POLL_INTERVAL
            if deadline is not None:
                wait = min(wait, max(deadline - time.monotonic(), 0.0))
            if self._slots.acquire(timeout=wait):
                if cancel.cancelled:
                    self._slots.release()
                    raise OperationCancelledError("slot acquisition")
                return True
            # at least one attempt is made even with a zero timeout
            if deadline is not None and time.monotonic() >= deadline:
                return False

    def release(self) -> None:
        with self._lock:
            if self._in_flight == 0:
                raise RuntimeError("release() called without a held slot")
            self._in_flight -= 1
        self._slots.release()

    @contextmanager
    def slot(
        self, timeout: float | None = None, cancel: CancelToken | None = None
    ) -> Iterator[None]:
        self.acquire(timeout=timeout, cancel=cancel)
        try:
            yield
        finally:
            self.release()

    # -- retry ------------------------------------------------------------

    def backoff_delays(self) -> Iterator[float]:
        """Yield the wait before each retry: exponential, capped, ``max_retries`` long."""
        delay = self.config.initial_retry_delay
        for _ in range(self.config.max_retries):
            yield min(delay, self.config.max_retry_delay)
            delay *= self.config.retry_multiplier

    def _sleep(self, delay: float, cancel: CancelToken | None, description: str) -> None:
        if cancel is None:
            time.sleep(delay)
        elif cancel.wait(delay):
            raise OperationCancelledError(description)

    def with_retry(
        self,
        operation: Callable[[], T],
        *,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
        description: str = "backend call",
    ) -> T:
        """Run *operation* inside a slot, retrying retryable failures.

        Args:
            operation: Zero-argument callable doing one backend call.
            timeout: Slot acquisition timeout per attempt.
            cancel: Aborts waiting (for a slot or between retries).
            description: Used in log messages.

        Returns:
            Whatever *operation* returns.

        Raises:
            AdmissionTimeoutError: If a slot could not be acquired.
            OperationCancelledError: If *cancel* fired.
            Exception: A terminal error immediately, or the last
                retryable error once the retry budget is spent.
        """
        delays = self.backoff_delays()
        attempt = 0
        while True:
            attempt += 1
            if cancel is not None and cancel.cancelled:
                raise OperationCancelledError(description)
            try:
                with self.slot(timeout=timeout, cancel=cancel):
                    result = operation()
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                delay = next(delays, None)
                if delay is None:
                    logger.warning("%s failed after %d attempts: %s", description, attempt, exc)
                    raise
                hint = getattr(exc, "retry_after", None)
                if hint:
                    delay = min(max(delay, hint), self.config.max_retry_delay)
                with self._lock:
                    self._current_delay = delay
                logger.warning(
                    "%s failed (attempt %d), retrying in %.1fs: %s",
                    description,
                    attempt,
                    delay,
                    exc,
                )
                self._sleep(delay, cancel, description)
                continue

            with self._lock:
                self._current_delay = 0.0
            return result
