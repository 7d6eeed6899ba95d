"""Retry decisions and backoff for utilfetch.

A retry decision is made by an ordered chain of predicates over the outcome
of one attempt. Each predicate either abstains (returns None) or gives a
decisive :class:`Decision`; the first decisive answer wins:

1. cancellation of the calling fetch,
2. transport errors, which are always retried,
3. the success status allow-list, when one is configured,
4. the baseline status rule otherwise: 5xx except 501 is retried, 501 fails.

A chain where every predicate abstains accepts the response.
"""

from __future__ import annotations

import asyncio
import enum
import http
import random
import typing as t
from dataclasses import dataclass

import aiohttp
from aiohttp_retry.retry_options import RetryOptionsBase

from .types import ALLOWED_METHODS

if t.TYPE_CHECKING:
    from collections.abc import Iterable
    from types import SimpleNamespace

    from .log import LeveledLogger

# Exceptions treated as transient transport failures
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (aiohttp.ClientError, TimeoutError)


class Verdict(enum.Enum):
    """What to do after an attempt."""

    RETRY = "retry"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Decision:
    """Outcome of a retry predicate.

    Attributes:
        verdict: Whether to retry, stop with success or stop with failure.
        reason: Why the attempt was not accepted.
        cancelled: The decision was forced by cancellation of the fetch.

    """

    verdict: Verdict
    reason: str | None = None
    cancelled: bool = False

    @classmethod
    def retry(cls, reason: str | None = None) -> Decision:
        return cls(Verdict.RETRY, reason)

    @classmethod
    def success(cls) -> Decision:
        return cls(Verdict.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> Decision:
        return cls(Verdict.FAILURE, reason)

    @classmethod
    def cancel(cls) -> Decision:
        return cls(Verdict.FAILURE, "context canceled", cancelled=True)


@dataclass(frozen=True)
class Attempt:
    """Observed outcome of one attempt: a status code or a transport error."""

    status: int | None = None
    error: BaseException | None = None


RetryPredicate = t.Callable[[Attempt], Decision | None]


def describe_status(status: int) -> str:
    """Return ``"503 Service Unavailable"`` style text for a status code."""
    try:
        return f"{status} {http.HTTPStatus(status).phrase}"
    except ValueError:
        return str(status)


def unexpected_status(status: int) -> str:
    return f"unexpected HTTP status {describe_status(status)}"


def check_cancelled(cancel: asyncio.Event | None) -> RetryPredicate:
    """Fail immediately once ``cancel`` is set."""

    def predicate(_: Attempt) -> Decision | None:
        if cancel is not None and cancel.is_set():
            return Decision.cancel()
        return None

    return predicate


def retry_transport_errors(attempt: Attempt) -> Decision | None:
    """Retry any transport error; it is likely recoverable."""
    if attempt.error is not None:
        return Decision.retry(f"{type(attempt.error).__name__}: {attempt.error}")
    return None


def check_success_status_codes(codes: Iterable[int]) -> RetryPredicate:
    """Accept only ``codes``; retry every other status, even a 200."""
    accepted = frozenset(codes)

    def predicate(attempt: Attempt) -> Decision | None:
        if attempt.status is None:
            return None
        if attempt.status in accepted:
            return Decision.success()
        return Decision.retry(unexpected_status(attempt.status))

    return predicate


def check_server_errors(attempt: Attempt) -> Decision | None:
    """Retry 5xx responses, except 501 which can never succeed."""
    if attempt.status is None:
        return None
    if attempt.status == http.HTTPStatus.NOT_IMPLEMENTED:
        return Decision.failure(unexpected_status(attempt.status))
    if attempt.status >= 500:  # noqa: PLR2004
        return Decision.retry(unexpected_status(attempt.status))
    return None


@dataclass(frozen=True)
class RetryChain:
    """Ordered retry predicates, evaluated until one is decisive."""

    predicates: tuple[RetryPredicate, ...]

    def decide(self, attempt: Attempt) -> Decision:
        for predicate in self.predicates:
            decision = predicate(attempt)
            if decision is not None:
                return decision
        return Decision.success()


def build_retry_chain(
    success_status_codes: Iterable[int] = (),
    cancel: asyncio.Event | None = None,
) -> RetryChain:
    """Build the retry chain for one fetch.

    Args:
        success_status_codes: Status codes accepted as success. When given,
            they replace the baseline status rule.
        cancel: Cancellation signal of the fetch.

    Returns:
        RetryChain: The chain, cancellation first.

    """
    codes = frozenset(success_status_codes)
    status_rule = check_success_status_codes(codes) if codes else check_server_errors
    return RetryChain((check_cancelled(cancel), retry_transport_errors, status_rule))


def backoff_delay(attempt: int, min_delay: float, max_delay: float) -> float:
    """Randomized exponential backoff delay in seconds.

    The delay for ``attempt`` (1-based) is drawn from the upper half of
    ``[min_delay, min_delay * 2 ** (attempt - 1)]``, capped at ``max_delay``.

    Args:
        attempt: Number of the attempt that just failed.
        min_delay: Lower bound in seconds.
        max_delay: Upper bound in seconds.

    Returns:
        float: Seconds to wait before the next attempt.

    """
    ceiling = min(max_delay, min_delay * 2 ** max(attempt - 1, 0))
    if ceiling <= 0:
        return 0.0
    floor = min(max(min_delay, ceiling / 2), ceiling)
    return random.uniform(floor, ceiling)


class JitteredRetry(RetryOptionsBase):
    """aiohttp_retry options driven by a :class:`RetryChain`.

    Transport errors are retried through ``exceptions``; every response is
    judged by the chain through ``evaluate_response_callback``.
    """

    def __init__(
        self,
        *,
        retries: int,
        min_delay: float,
        max_delay: float,
        chain: RetryChain,
        logger: LeveledLogger,
    ) -> None:
        """Initialize JitteredRetry.

        Args:
            retries: Retries after the first try.
            min_delay: Minimum backoff in seconds.
            max_delay: Maximum backoff in seconds.
            chain: Retry predicates.
            logger: Sink for retry lifecycle messages.

        """
        super().__init__(
            attempts=retries + 1,
            statuses=set(),
            exceptions=set(TRANSPORT_ERRORS),
            methods=set(ALLOWED_METHODS),
            retry_all_server_errors=False,
            evaluate_response_callback=self._evaluate_response,
        )
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.chain = chain
        self._logger = logger

    def get_timeout(
        self,
        attempt: int,
        response: aiohttp.ClientResponse | None = None,
    ) -> float:
        delay = backoff_delay(attempt, self.min_delay, self.max_delay)
        self._logger.debug(
            "retrying request",
            attempt=attempt,
            delay=delay,
            status=response.status if response is not None else None,
        )
        return delay

    async def _evaluate_response(self, response: aiohttp.ClientResponse) -> bool:
        decision = self.chain.decide(Attempt(status=response.status))
        if decision.verdict is not Verdict.RETRY:
            return True
        self._logger.debug("response not accepted", status=response.status, reason=decision.reason)
        # Discarded responses are never handed back to the caller
        response.release()
        return False


class AttemptTracker:
    """Counts and logs the attempts of one fetch through aiohttp tracing."""

    def __init__(self, logger: LeveledLogger) -> None:
        self.count = 0
        self._logger = logger

    def trace_config(self) -> aiohttp.TraceConfig:
        trace_config = aiohttp.TraceConfig()
        trace_config.on_request_start.append(self._on_request_start)
        trace_config.on_request_end.append(self._on_request_end)
        trace_config.on_request_exception.append(self._on_request_exception)
        return trace_config

    async def _on_request_start(
        self,
        _: aiohttp.ClientSession,
        ctx: SimpleNamespace,
        params: aiohttp.TraceRequestStartParams,
    ) -> None:
        self.count += 1
        ctx.attempt = self.count
        self._logger.debug("performing request", attempt=self.count, method=params.method)

    async def _on_request_end(
        self,
        _: aiohttp.ClientSession,
        ctx: SimpleNamespace,
        params: aiohttp.TraceRequestEndParams,
    ) -> None:
        self._logger.debug("received response", attempt=ctx.attempt, status=params.response.status)

    async def _on_request_exception(
        self,
        _: aiohttp.ClientSession,
        ctx: SimpleNamespace,
        params: aiohttp.TraceRequestExceptionParams,
    ) -> None:
        self._logger.error("request failed", attempt=ctx.attempt, error=repr(params.exception))
