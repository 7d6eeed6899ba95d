"""Core utilfetch implementation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import typing as t

import aiohttp
import aiohttp_retry
from aiohttp import hdrs
from multidict import CIMultiDict
from yarl import URL

from .config import FetcherConfig, TransportDefaults
from .errors import (
    Diagnostic,
    FetcherError,
    RequestBuildError,
    RequestCancelledError,
    RequestError,
    RequestTimeoutError,
    ResponseReadError,
)
from .log import LeveledLogger
from .retry import (
    TRANSPORT_ERRORS,
    Attempt,
    AttemptTracker,
    JitteredRetry,
    RetryChain,
    Verdict,
    build_retry_chain,
)
from .tls import build_ssl_context
from .types import FetchOutcome, FetchResult, RequestSpec

if t.TYPE_CHECKING:
    import ssl
    from collections.abc import Coroutine

    from multidict import CIMultiDictProxy

# Module-level logger for structured logging
_logger = logging.getLogger("utilfetch")

RESPONSE_ENCODING_WARNING = "ResponseEncodingWarning"

# RFC 9110 section 5.6.2 token, and the reg-name / IP literal characters of RFC 3986.
_HEADER_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_HOST = re.compile(r"[A-Za-z0-9\-._~%!$&'()*+,;=:]+")


def join_headers(headers: CIMultiDictProxy[str]) -> dict[str, str]:
    """Collapse repeated response headers into one value per name.

    Values are joined with ", " as described by RFC 9110 section 5.2. The
    first spelling of a name seen in the response is kept.

    Args:
        headers: Response headers.

    Returns:
        dict[str, str]: One entry per header name.

    """
    joined: dict[str, str] = {}
    seen: set[str] = set()
    for name in headers:
        folded = name.lower()
        if folded in seen:
            continue
        seen.add(folded)
        joined[name] = ", ".join(headers.getall(name))
    return joined


def is_valid_utf8(data: bytes) -> bool:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


class Fetcher:
    """HTTP fetch engine with TLS configuration, retries and diagnostics.

    Each call to :meth:`fetch` is independent: it clones the configured
    transport defaults, opens its own session and closes it before returning.

    Attributes:
        config: Configuration object containing transport defaults, retry delay
            defaults and the logger.

    """

    def __init__(self, config: FetcherConfig | None = None) -> None:
        """Initialize the Fetcher with configuration settings.

        Args:
            config: Configuration object for the fetcher. If None, uses default
                   configuration.

        """
        self.config = config or FetcherConfig()
        self._logger = LeveledLogger(self.config.logger or _logger)

    async def fetch(
        self,
        spec: RequestSpec,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FetchOutcome:
        """Resolve a request specification into an observed result.

        Errors never propagate out of this method; they are returned as
        diagnostics. Cancelling the calling task still raises
        :class:`asyncio.CancelledError` as usual.

        Args:
            spec: The declared request.
            cancel: Setting this event aborts the request and any pending
                retry backoff.

        Returns:
            FetchOutcome: The result and any warnings, or error diagnostics.

        """
        outcome = FetchOutcome()
        log = self._logger.bind(method=spec.method, url=spec.url)
        log.debug("Starting request: %s %s", spec.method, spec.url)

        try:
            if cancel is not None and cancel.is_set():
                msg = "context canceled"
                raise RequestCancelledError(msg, url=spec.url)
            result, warnings = await self._run_cancellable(
                self._fetch(spec, cancel, log),
                cancel,
                spec.url,
            )
        except FetcherError as e:
            log.warning("Request failed: %s %s -> %s", spec.method, spec.url, e, kind=e.kind)
            outcome.diagnostics.append(e.to_diagnostic())
            return outcome

        log.debug(
            "Request completed: %s %s -> %d",
            spec.method,
            spec.url,
            result.status_code,
        )
        outcome.result = result
        outcome.diagnostics.extend(warnings)
        return outcome

    async def _run_cancellable(
        self,
        coro: Coroutine[t.Any, t.Any, tuple[FetchResult, list[Diagnostic]]],
        cancel: asyncio.Event | None,
        url: str,
    ) -> tuple[FetchResult, list[Diagnostic]]:
        """Await ``coro``, aborting it as soon as ``cancel`` is set."""
        if cancel is None:
            return await coro

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if task.cancelled():
            msg = "context canceled"
            raise RequestCancelledError(msg, url=url)
        return task.result()

    def _parse_url(self, spec: RequestSpec) -> URL:
        """Parse and check the request URL.

        Raises:
            RequestBuildError: If the URL is malformed or not http(s).

        """
        try:
            url = URL(spec.url)
        except (TypeError, ValueError) as e:
            msg = f"Error creating request: invalid URL {spec.url!r}"
            raise RequestBuildError(msg, cause=e, url=spec.url) from e
        if url.scheme not in ("http", "https") or not url.raw_host:
            msg = f"Error creating request: unsupported URL {spec.url!r}, expected an absolute http or https URL"
            raise RequestBuildError(msg, url=spec.url)
        if not _HOST.fullmatch(url.raw_host):
            msg = f"Error creating request: invalid host {url.raw_host!r} in URL {spec.url!r}"
            raise RequestBuildError(msg, url=spec.url)
        return url

    def _build_headers(
        self,
        spec: RequestSpec,
        transport: TransportDefaults,
    ) -> CIMultiDict[str]:
        """Build request headers.

        A ``Host`` entry, in any case, is sent verbatim and so overrides the
        Host derived from the URL; the connection still targets the URL.

        Raises:
            RequestBuildError: If a header name or value cannot be sent.

        """
        headers: CIMultiDict[str] = CIMultiDict()
        if transport.user_agent:
            headers[hdrs.USER_AGENT] = transport.user_agent
        for name, value in spec.headers.items():
            if not _HEADER_NAME.fullmatch(name) or any(c in value for c in "\r\n\x00"):
                msg = f"Error creating request: invalid header {name!r}"
                raise RequestBuildError(msg, url=spec.url)
            headers[name] = value
        return headers

    def _build_retry_options(
        self,
        spec: RequestSpec,
        chain: RetryChain,
        log: LeveledLogger,
    ) -> JitteredRetry:
        retry = spec.retry
        min_delay_ms = self.config.default_min_delay_ms
        max_delay_ms = self.config.default_max_delay_ms
        retries = 0
        if retry is not None:
            retries = retry.attempts
            if retry.min_delay_ms is not None:
                min_delay_ms = retry.min_delay_ms
            if retry.max_delay_ms is not None:
                max_delay_ms = retry.max_delay_ms
        return JitteredRetry(
            retries=retries,
            min_delay=min_delay_ms / 1000,
            max_delay=max_delay_ms / 1000,
            chain=chain,
            logger=log,
        )

    def _create_session(
        self,
        transport: TransportDefaults,
        ssl_setting: ssl.SSLContext | bool,
        timeout: float | None,
        tracker: AttemptTracker,
    ) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            ssl=ssl_setting,
            limit=transport.limit,
            limit_per_host=transport.limit_per_host,
            ttl_dns_cache=transport.ttl_dns_cache,
        )
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=timeout),
            trust_env=transport.trust_env,
            trace_configs=[tracker.trace_config()],
        )

    async def _fetch(
        self,
        spec: RequestSpec,
        cancel: asyncio.Event | None,
        log: LeveledLogger,
    ) -> tuple[FetchResult, list[Diagnostic]]:
        """Run the fetch pipeline.

        Raises:
            FetcherError: On any configuration, transport or read failure.

        """
        transport = self.config.transport.clone()
        ssl_setting = build_ssl_context(spec.tls)

        chain = build_retry_chain(spec.success_status_codes, cancel)
        retry_options = self._build_retry_options(spec, chain, log)

        url = self._parse_url(spec)
        headers = self._build_headers(spec, transport)
        data = spec.body.encode("utf-8") if spec.body is not None else None

        tracker = AttemptTracker(log)
        session = self._create_session(transport, ssl_setting, spec.timeout_seconds, tracker)
        async with aiohttp_retry.RetryClient(
            session,
            logger=log,
            retry_options=retry_options,
        ) as client:
            try:
                async with client.request(spec.method, url, headers=headers, data=data) as response:
                    self._check_response(spec, chain, response.status, tracker.count)
                    body = await self._read_body(response, spec.url)
                    response_headers = join_headers(response.headers)
                    status = response.status
            except FetcherError:
                raise
            except TRANSPORT_ERRORS as e:
                raise self._classify_error(spec, chain, e, tracker.count) from e

        warnings: list[Diagnostic] = []
        utf8_valid = is_valid_utf8(body)
        if not utf8_valid:
            log.warning("Response body is not recognized as UTF-8")
            warnings.append(
                Diagnostic.warning(
                    RESPONSE_ENCODING_WARNING,
                    "Response body is not recognized as UTF-8",
                    "The response_body may not be handled properly if the contents are binary.",
                ),
            )

        result = FetchResult(
            status_code=status,
            response_headers=response_headers,
            body=body,
            utf8_valid=utf8_valid,
        )
        return result, warnings

    def _check_response(
        self,
        spec: RequestSpec,
        chain: RetryChain,
        status: int,
        attempts: int,
    ) -> None:
        """Apply the retry chain to the final response.

        Raises:
            RequestCancelledError: If the fetch was cancelled.
            RequestError: If the response was never accepted.

        """
        decision = chain.decide(Attempt(status=status))
        if decision.verdict is Verdict.SUCCESS:
            return
        if decision.cancelled:
            raise RequestCancelledError(decision.reason or "context canceled", url=spec.url)
        if decision.verdict is Verdict.RETRY:
            msg = f"{spec.method} {spec.url} giving up after {attempts} attempt(s): {decision.reason}"
        else:
            msg = f"{spec.method} {spec.url}: {decision.reason}"
        raise RequestError(msg, url=spec.url, status=status, attempts=attempts)

    def _classify_error(
        self,
        spec: RequestSpec,
        chain: RetryChain,
        error: BaseException,
        attempts: int,
    ) -> FetcherError:
        """Turn the last transport error into a FetcherError."""
        if chain.decide(Attempt(error=error)).cancelled:
            return RequestCancelledError("context canceled", cause=error, url=spec.url)
        if isinstance(error, TimeoutError):
            if spec.timeout_ms is not None and spec.timeout_ms > 0:
                msg = f"request exceeded the specified timeout: {spec.timeout_ms}ms"
            else:
                msg = "timeout error"
            return RequestTimeoutError(msg, cause=error, url=spec.url, attempts=attempts)
        msg = f"{spec.method} {spec.url} giving up after {attempts} attempt(s)"
        return RequestError(msg, cause=error, url=spec.url, attempts=attempts)

    async def _read_body(self, response: aiohttp.ClientResponse, url: str) -> bytes:
        """Read the full response body.

        Raises:
            ResponseReadError: If the body cannot be read.

        """
        try:
            return await response.read()
        except TRANSPORT_ERRORS as e:
            msg = f"Error reading response body: {e}"
            raise ResponseReadError(msg, cause=e, url=url) from e
