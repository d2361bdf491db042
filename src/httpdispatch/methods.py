"""One-shot verb helpers.

Each helper builds a dispatcher for the single call, around ``transport`` when
one is given or a fresh default transport otherwise. A default transport is
closed after the call, or together with the response when ``options.stream``
leaves the body open for the caller.
"""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable, Iterator

import httpx

from .client import AsyncDispatcher, Dispatcher
from .context import Context
from .request_options import RequestOptions


class _ClosingByteStream(httpx.SyncByteStream):
    """Response stream that releases the helper's dispatcher when it is closed."""

    def __init__(self, stream: httpx.SyncByteStream, on_close: Callable[[], None]) -> None:
        self._stream = stream
        self._on_close = on_close

    def __iter__(self) -> Iterator[bytes]:
        yield from self._stream

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            self._on_close()


class _AsyncClosingByteStream(httpx.AsyncByteStream):
    def __init__(self, stream: httpx.AsyncByteStream, on_close: Callable[[], Awaitable[None]]) -> None:
        self._stream = stream
        self._on_close = on_close

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            yield chunk

    async def aclose(self) -> None:
        try:
            await self._stream.aclose()
        finally:
            await self._on_close()


def request(
    ctx: Context,
    method: str,
    url: str,
    options: RequestOptions | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Response:
    dispatcher = Dispatcher(transport=transport)
    try:
        response = dispatcher.request(ctx, method, url, options)
    except BaseException:
        dispatcher.close()
        raise
    if options is not None and options.stream:
        response.stream = _ClosingByteStream(response.stream, dispatcher.close)
    else:
        dispatcher.close()
    return response


async def arequest(
    ctx: Context,
    method: str,
    url: str,
    options: RequestOptions | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    dispatcher = AsyncDispatcher(transport=transport)
    try:
        response = await dispatcher.request(ctx, method, url, options)
    except BaseException:
        await dispatcher.aclose()
        raise
    if options is not None and options.stream:
        response.stream = _AsyncClosingByteStream(response.stream, dispatcher.aclose)
    else:
        await dispatcher.aclose()
    return response


def get(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "GET", url, options, transport=transport)


def post(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "POST", url, options, transport=transport)


def put(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "PUT", url, options, transport=transport)


def delete(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "DELETE", url, options, transport=transport)


def head(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "HEAD", url, options, transport=transport)


def patch(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "PATCH", url, options, transport=transport)


def options(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.BaseTransport | None = None) -> httpx.Response:
    return request(ctx, "OPTIONS", url, options, transport=transport)


async def aget(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "GET", url, options, transport=transport)


async def apost(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "POST", url, options, transport=transport)


async def aput(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "PUT", url, options, transport=transport)


async def adelete(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "DELETE", url, options, transport=transport)


async def ahead(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "HEAD", url, options, transport=transport)


async def apatch(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "PATCH", url, options, transport=transport)


async def aoptions(ctx: Context, url: str, options: RequestOptions | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.Response:
    return await arequest(ctx, "OPTIONS", url, options, transport=transport)
