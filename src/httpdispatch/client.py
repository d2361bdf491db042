"""Synchronous and asynchronous request executors."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, TextIO

import httpx
from loguru import logger

from .config import DispatchSettings
from .context import Context
from .exceptions import DispatchValidationError, QueryParamTypeError, RequestCancelledError
from .middleware import compose_async_transport, compose_transport
from .request_options import LogLevel, RequestOptions
from .security import parse_target_url

CONTEXT_EXTENSION = "context"


def _coerce_query_value(key: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return _coerce_query_value(key, value.value)
    raise QueryParamTypeError(
        f"query parameter {key!r} must be a string-like value, got {type(value).__name__}"
    )


def _merge_query(url: httpx.URL, query: Mapping[str, Any] | None) -> httpx.URL:
    if not query:
        return url
    for key, value in query.items():
        if not isinstance(key, str):
            raise QueryParamTypeError(f"query parameter names must be strings, got {type(key).__name__}")
        url = url.copy_set_param(key, _coerce_query_value(key, value))
    return url


def _resolve_request_options(options: RequestOptions | None) -> RequestOptions:
    return options or RequestOptions()


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    clean: dict[str, str] = {}
    for key, value in headers.items():
        clean[str(key)] = str(value)
    return clean


class _BaseDispatcher:
    def __init__(self, *, settings: DispatchSettings | None = None, dump_stream: TextIO | None = None) -> None:
        self.settings = settings if settings is not None else DispatchSettings.from_env()
        self._dump_stream = dump_stream

    def _request_options(self, options: RequestOptions | None) -> RequestOptions:
        return _resolve_request_options(options)

    def _build_max_retries(self, request_options: RequestOptions) -> int:
        max_retries = request_options.max_retries if request_options.max_retries is not None else self.settings.max_retries
        if max_retries < 0:
            raise DispatchValidationError("max_retries must be non-negative")
        return int(max_retries)

    def _build_retry_wait(self, request_options: RequestOptions) -> float:
        retry_wait = request_options.retry_wait if request_options.retry_wait is not None else self.settings.retry_wait
        if retry_wait < 0:
            raise DispatchValidationError("retry_wait must be non-negative")
        return float(retry_wait)

    def _build_request_timeout(self, request_options: RequestOptions) -> float | None:
        timeout = request_options.timeout if request_options.timeout is not None else self.settings.timeout
        if timeout is None:
            return None
        if timeout <= 0:
            raise DispatchValidationError("timeout must be greater than 0")
        return float(timeout)

    def _build_log_level(self, request_options: RequestOptions) -> LogLevel:
        if request_options.log_level is None:
            return self.settings.log_level
        return LogLevel.parse(request_options.log_level)

    def _build_log_transport(self, request_options: RequestOptions) -> bool:
        if request_options.log_transport is None:
            return self.settings.log_transport
        return bool(request_options.log_transport)

    def _headers(self, request_options: RequestOptions) -> dict[str, str]:
        merged = _normalize_headers(self.settings.headers)
        merged.update(_normalize_headers(request_options.headers))
        return merged

    def _prepare(self, ctx: Context, method: str, url: str, request_options: RequestOptions) -> httpx.Request:
        target = _merge_query(parse_target_url(url), request_options.query_params)
        request = httpx.Request(
            method.upper(),
            target,
            content=request_options.body,
            extensions={CONTEXT_EXTENSION: ctx},
        )
        for key, value in self._headers(request_options).items():
            request.headers[key] = value
        return request

    @staticmethod
    def _apply_attempt_timeout(request: httpx.Request, ctx: Context, timeout: float | None) -> None:
        remaining = ctx.remaining()
        if remaining is not None and (timeout is None or remaining < timeout):
            timeout = remaining
        if timeout is None:
            request.extensions.pop("timeout", None)
        else:
            request.extensions["timeout"] = httpx.Timeout(timeout).as_dict()

    @staticmethod
    def _cancelled(ctx: Context, request: httpx.Request, attempts: int) -> RequestCancelledError:
        cause = ctx.err() or RequestCancelledError("context canceled")
        logger.warning(f"{request.method} {request.url} canceled after {attempts} attempt(s): {cause}")
        return type(cause)(
            f"request canceled: {cause}",
            method=request.method,
            url=str(request.url),
            attempts=attempts,
            cause=cause,
        )


class Dispatcher(_BaseDispatcher):
    """Synchronous executor."""

    def __init__(
        self,
        *,
        transport: httpx.BaseTransport | None = None,
        settings: DispatchSettings | None = None,
        dump_stream: TextIO | None = None,
    ) -> None:
        super().__init__(settings=settings, dump_stream=dump_stream)
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else httpx.HTTPTransport()

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()

    def request(
        self,
        ctx: Context,
        method: str,
        url: str,
        options: RequestOptions | None = None,
    ) -> httpx.Response:
        """Send one logical call, retrying transport failures up to ``max_retries`` times.

        HTTP error statuses are returned like any other response. When every
        attempt fails, the last transport exception is re-raised unchanged.
        Retries resend the same request object, so a single-read body
        (a generator or file) is not replayed.

        ``timeout`` reaches the transport through the request's ``timeout``
        extension, which httpcore applies to each network operation. A transport
        that ignores the extension is bounded only by the context deadline checks.
        """
        request_options = self._request_options(options)
        max_retries = self._build_max_retries(request_options)
        retry_wait = self._build_retry_wait(request_options)
        timeout = self._build_request_timeout(request_options)
        request = self._prepare(ctx, method, url, request_options)
        sender = compose_transport(
            self._transport,
            request_options.middlewares,
            log_level=self._build_log_level(request_options),
            log_transport=self._build_log_transport(request_options),
            stream=self._dump_stream,
        )

        attempt = 0
        while True:
            if ctx.done():
                raise self._cancelled(ctx, request, attempt)
            attempt += 1
            self._apply_attempt_timeout(request, ctx, timeout)
            logger.debug(f"{request.method} {request.url} attempt {attempt}/{max_retries + 1}")
            try:
                return self._send(sender, request, stream=request_options.stream)
            except httpx.TransportError as exc:
                if ctx.done():
                    raise self._cancelled(ctx, request, attempt) from exc
                if attempt > max_retries:
                    raise
                logger.info(
                    f"{request.method} {request.url} failed ({exc!r}), "
                    f"retry {attempt}/{max_retries} in {retry_wait:.3f}s"
                )
                if ctx.wait(retry_wait):
                    raise self._cancelled(ctx, request, attempt) from exc

    @staticmethod
    def _send(sender: httpx.BaseTransport, request: httpx.Request, *, stream: bool) -> httpx.Response:
        response = sender.handle_request(request)
        response.request = request
        if not stream:
            try:
                response.read()
            except BaseException:
                response.close()
                raise
        return response

    def get(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "GET", url, options)

    def post(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "POST", url, options)

    def put(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "PUT", url, options)

    def delete(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "DELETE", url, options)

    def head(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "HEAD", url, options)

    def patch(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "PATCH", url, options)

    def options(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return self.request(ctx, "OPTIONS", url, options)


class AsyncDispatcher(_BaseDispatcher):
    """Asynchronous executor; an in-flight attempt is aborted as soon as the context is canceled."""

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: DispatchSettings | None = None,
        dump_stream: TextIO | None = None,
    ) -> None:
        super().__init__(settings=settings, dump_stream=dump_stream)
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else httpx.AsyncHTTPTransport()

    async def __aenter__(self) -> "AsyncDispatcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()

    async def request(
        self,
        ctx: Context,
        method: str,
        url: str,
        options: RequestOptions | None = None,
    ) -> httpx.Response:
        request_options = self._request_options(options)
        max_retries = self._build_max_retries(request_options)
        retry_wait = self._build_retry_wait(request_options)
        timeout = self._build_request_timeout(request_options)
        request = self._prepare(ctx, method, url, request_options)
        sender = compose_async_transport(
            self._transport,
            request_options.middlewares,
            log_level=self._build_log_level(request_options),
            log_transport=self._build_log_transport(request_options),
            stream=self._dump_stream,
        )

        attempt = 0
        while True:
            if ctx.done():
                raise self._cancelled(ctx, request, attempt)
            attempt += 1
            self._apply_attempt_timeout(request, ctx, timeout)
            logger.debug(f"{request.method} {request.url} attempt {attempt}/{max_retries + 1}")
            try:
                return await self._send_until_canceled(
                    ctx, sender, request, attempt, timeout=timeout, stream=request_options.stream
                )
            except httpx.TransportError as exc:
                if ctx.done():
                    raise self._cancelled(ctx, request, attempt) from exc
                if attempt > max_retries:
                    raise
                logger.info(
                    f"{request.method} {request.url} failed ({exc!r}), "
                    f"retry {attempt}/{max_retries} in {retry_wait:.3f}s"
                )
                if await ctx.wait_async(retry_wait):
                    raise self._cancelled(ctx, request, attempt) from exc

    async def _send_until_canceled(
        self,
        ctx: Context,
        sender: httpx.AsyncBaseTransport,
        request: httpx.Request,
        attempt: int,
        *,
        timeout: float | None,
        stream: bool,
    ) -> httpx.Response:
        """Run one attempt, aborting it on cancellation or once ``timeout`` seconds have passed.

        The context waiter enforces the deadline, so ``timeout`` is the uncapped
        per-attempt option and a deadline always surfaces as a cancellation.
        """
        sending = asyncio.ensure_future(self._send(sender, request, stream=stream))
        canceled = asyncio.ensure_future(ctx.wait_async())
        try:
            await asyncio.wait({sending, canceled}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            timed_out = not sending.done() and not canceled.done()
        finally:
            canceled.cancel()
            if not sending.done():
                sending.cancel()
                await asyncio.gather(sending, return_exceptions=True)
        if timed_out:
            raise httpx.TimeoutException(f"attempt timed out after {timeout:.3f}s", request=request)
        if sending.cancelled():
            raise self._cancelled(ctx, request, attempt)
        return sending.result()

    @staticmethod
    async def _send(sender: httpx.AsyncBaseTransport, request: httpx.Request, *, stream: bool) -> httpx.Response:
        response = await sender.handle_async_request(request)
        response.request = request
        if not stream:
            try:
                await response.aread()
            except BaseException:
                await response.aclose()
                raise
        return response

    async def get(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "GET", url, options)

    async def post(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "POST", url, options)

    async def put(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "PUT", url, options)

    async def delete(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "DELETE", url, options)

    async def head(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "HEAD", url, options)

    async def patch(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "PATCH", url, options)

    async def options(self, ctx: Context, url: str, options: RequestOptions | None = None) -> httpx.Response:
        return await self.request(ctx, "OPTIONS", url, options)
