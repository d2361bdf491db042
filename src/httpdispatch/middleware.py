"""Transport decorators and their composition into one effective sender.

A middleware is any callable that takes the inner transport and returns a new
transport delegating to it. Middlewares are applied in list order, so the
last one in the list is the outermost layer::

    def add_trace(request, call_next):
        request.headers["X-Trace-Id"] = new_trace_id()
        return call_next(request)

    options = RequestOptions(middlewares=[handler_middleware(add_trace)])
"""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence, TextIO

import httpx

from .dump import AsyncLoggingTransport, LoggingTransport
from .request_options import LogLevel

Middleware = Callable[[httpx.BaseTransport], httpx.BaseTransport]
AsyncMiddleware = Callable[[httpx.AsyncBaseTransport], httpx.AsyncBaseTransport]

CallNext = Callable[[httpx.Request], httpx.Response]
AsyncCallNext = Callable[[httpx.Request], Awaitable[httpx.Response]]
Handler = Callable[[httpx.Request, CallNext], httpx.Response]
AsyncHandler = Callable[[httpx.Request, AsyncCallNext], Awaitable[httpx.Response]]


class TransportDecorator(httpx.BaseTransport):
    """Base class for decorators; subclasses override ``handle_request`` and call ``self.inner``."""

    def __init__(self, inner: httpx.BaseTransport) -> None:
        self.inner = inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self.inner.handle_request(request)

    def close(self) -> None:
        self.inner.close()


class AsyncTransportDecorator(httpx.AsyncBaseTransport):
    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self.inner = inner

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self.inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self.inner.aclose()


class _HandlerTransport(TransportDecorator):
    def __init__(self, inner: httpx.BaseTransport, handler: Handler) -> None:
        super().__init__(inner)
        self._handler = handler

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._handler(request, self.inner.handle_request)


class _AsyncHandlerTransport(AsyncTransportDecorator):
    def __init__(self, inner: httpx.AsyncBaseTransport, handler: AsyncHandler) -> None:
        super().__init__(inner)
        self._handler = handler

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._handler(request, self.inner.handle_async_request)


def handler_middleware(handler: Handler) -> Middleware:
    """Build a middleware from ``handler(request, call_next) -> response``."""

    def wrap(inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return _HandlerTransport(inner, handler)

    return wrap


def async_handler_middleware(handler: AsyncHandler) -> AsyncMiddleware:
    """Build an async middleware from ``await handler(request, call_next)``."""

    def wrap(inner: httpx.AsyncBaseTransport) -> httpx.AsyncBaseTransport:
        return _AsyncHandlerTransport(inner, handler)

    return wrap


def compose_transport(
    base: httpx.BaseTransport,
    middlewares: Sequence[Middleware] = (),
    *,
    log_level: LogLevel = LogLevel.NONE,
    log_transport: bool = False,
    stream: TextIO | None = None,
) -> httpx.BaseTransport:
    """Apply ``middlewares`` left to right around ``base``, then the logging decorator outermost."""
    transport = base
    for wrap in middlewares:
        transport = wrap(transport)
    if log_transport and log_level > LogLevel.NONE:
        transport = LoggingTransport(transport, log_level, stream=stream)
    return transport


def compose_async_transport(
    base: httpx.AsyncBaseTransport,
    middlewares: Sequence[AsyncMiddleware] = (),
    *,
    log_level: LogLevel = LogLevel.NONE,
    log_transport: bool = False,
    stream: TextIO | None = None,
) -> httpx.AsyncBaseTransport:
    transport = base
    for wrap in middlewares:
        transport = wrap(transport)
    if log_transport and log_level > LogLevel.NONE:
        transport = AsyncLoggingTransport(transport, log_level, stream=stream)
    return transport
