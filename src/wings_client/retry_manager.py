"""
Retry Manager for the Wings client.

This module provides retry logic with exponential backoff and jitter for
transient connection failures, plus the classification that decides which
failures are transient.

Retry policy:
- Only DNS resolution failures, connect failures and timeouts are retried
- Delay before retry n is floor(2^n * (0.5 + random())) seconds
- At most max_retries retries, i.e. max_retries + 1 attempts
- An optional overall deadline bounds the whole call, backoff included
"""

from __future__ import annotations

import asyncio
import random
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx

from .config import RetryConfig
from .enums import FailureCategory

T = TypeVar("T")

# Last-resort markers, used only when the exception chain carries no
# structured cause. Messages differ between platforms and resolvers.
DNS_ERROR_MARKERS = (
    "could not resolve host",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname provided",
    "no address associated with hostname",
    "getaddrinfo failed",
)
TIMEOUT_ERROR_MARKERS = ("timed out", "timeout")
TLS_ERROR_MARKERS = ("ssl", "certificate", "tls")

_MAX_CHAIN_DEPTH = 10


def _exception_chain(error: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: Optional[BaseException] = error
    while current is not None and current not in chain and len(chain) < _MAX_CHAIN_DEPTH:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_failure(error: BaseException) -> FailureCategory:
    """
    Classify a failed attempt.

    The exception and its causes are inspected for structured types first
    (``ssl.SSLError``, ``socket.gaierror``, httpx timeout/connect errors).
    Message matching is the fallback for transports that only surface text.
    """
    chain = _exception_chain(error)

    for exc in chain:
        if isinstance(exc, ssl.SSLError):
            return FailureCategory.TLS
        if isinstance(exc, socket.gaierror):
            return FailureCategory.DNS_RESOLUTION

    for exc in chain:
        if isinstance(exc, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
            return FailureCategory.TIMEOUT
        if isinstance(exc, ConnectionRefusedError):
            return FailureCategory.CONNECT

    message = " ".join(str(exc) for exc in chain).lower()

    if isinstance(error, (httpx.ConnectError, ConnectionError)):
        if any(marker in message for marker in DNS_ERROR_MARKERS):
            return FailureCategory.DNS_RESOLUTION
        if any(marker in message for marker in TLS_ERROR_MARKERS):
            return FailureCategory.TLS
        if any(marker in message for marker in TIMEOUT_ERROR_MARKERS):
            return FailureCategory.TIMEOUT
        return FailureCategory.CONNECT

    if isinstance(error, httpx.TransportError):
        if any(marker in message for marker in DNS_ERROR_MARKERS):
            return FailureCategory.DNS_RESOLUTION
        return FailureCategory.PROTOCOL

    if any(marker in message for marker in DNS_ERROR_MARKERS):
        return FailureCategory.DNS_RESOLUTION

    return FailureCategory.FATAL


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]
    category: Optional[FailureCategory] = None
    deadline_exceeded: bool = False


class RetryManager:
    """
    Manages retry logic with exponential backoff and jitter.

    The manager holds no per-call state, so one instance can serve
    concurrent calls; each call sleeps only in its own task.
    """

    BACKOFF_BASE = 2
    JITTER_MIN = 0.5

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries, deadline, and retryable errors
            sleep: Coroutine used for backoff waits
            rng: Random source for jitter
            clock: Monotonic clock used for the overall deadline
        """
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock

    @property
    def config(self) -> RetryConfig:
        return self._config

    def jittered_delay(self, attempt: int) -> float:
        """
        Unrounded backoff for a 0-indexed attempt.

        Always within [2^attempt * 0.5, 2^attempt * 1.5).
        """
        jitter = self.JITTER_MIN + self._rng.random()
        return (self.BACKOFF_BASE ** attempt) * jitter

    def calculate_delay(self, attempt: int) -> int:
        """Backoff in whole seconds (the jittered delay, floored)."""
        return int(self.jittered_delay(attempt))

    def is_retryable_error(self, category) -> bool:
        """
        Check if a failure category is transient and should be retried.

        Args:
            category: A FailureCategory or its string value
        """
        if hasattr(category, "value"):
            category = category.value
        return str(category) in self._config.retryable_errors

    def should_retry(self, error: BaseException) -> bool:
        return self.is_retryable_error(classify_failure(error))

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        max_retries: Optional[int] = None,
        on_retry: Optional[Callable[[int, Exception, int], None]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Decides whether an exception is transient;
                defaults to the category-based ``should_retry``
            max_retries: Overrides the configured retry count for this call
            on_retry: Called as ``(attempt, error, delay)`` before each backoff

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        is_retryable = is_retryable or self.should_retry
        retries = self._config.max_retries if max_retries is None else max_retries
        max_attempts = max(retries, 0) + 1
        deadline = self._config.total_deadline_seconds
        started = self._clock()

        last_error: Optional[Exception] = None
        attempts = 0

        while attempts < max_attempts:
            remaining = None if deadline is None else deadline - (self._clock() - started)
            try:
                if remaining is None:
                    result = await operation()
                else:
                    result = await asyncio.wait_for(operation(), timeout=max(remaining, 0))
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except Exception as e:
                last_error = e
                attempts += 1

            if deadline is not None and self._clock() - started >= deadline:
                return self._failure(attempts, last_error, deadline_exceeded=True)

            if not is_retryable(last_error) or attempts >= max_attempts:
                break

            delay = self.calculate_delay(attempts - 1)
            if deadline is not None and (self._clock() - started) + delay >= deadline:
                return self._failure(attempts, last_error, deadline_exceeded=True)

            if on_retry:
                on_retry(attempts, last_error, delay)
            await self._sleep(delay)

        return self._failure(attempts, last_error)

    @staticmethod
    def _failure(
        attempts: int,
        last_error: Optional[Exception],
        deadline_exceeded: bool = False,
    ) -> RetryResult:
        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
            category=classify_failure(last_error) if last_error else None,
            deadline_exceeded=deadline_exceeded,
        )
