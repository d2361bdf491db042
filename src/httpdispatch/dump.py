"""Transport decorator that dumps requests and responses to a diagnostic stream."""

from __future__ import annotations

import sys
import time
from typing import TextIO

import httpx
from loguru import logger

from .request_options import LogLevel
from .security import sanitize_headers


def _format_headers(headers: httpx.Headers) -> list[str]:
    return [f"{name}: {value}" for name, value in sanitize_headers(headers).items()]


def _decode(content: bytes, encoding: str | None) -> str:
    return content.decode(encoding or "utf-8", errors="replace")


def _body_indicator(request: httpx.Request) -> str | None:
    if isinstance(request.stream, httpx.ByteStream):
        size = len(request.content)
        return f"[body: {size} bytes]" if size else None
    return "[streaming body]"


def dump_request(request: httpx.Request, *, body: bool) -> str:
    target = request.url.raw_path.decode("ascii")
    lines = [f"{request.method} {target} HTTP/1.1", f"Host: {request.url.netloc.decode('ascii')}"]
    lines.extend(line for line in _format_headers(request.headers) if not line.lower().startswith("host:"))
    lines.append("")
    if body:
        content = request.read()
        if content:
            lines.append(_decode(content, None))
    else:
        indicator = _body_indicator(request)
        if indicator:
            lines.append(indicator)
    return "\r\n".join(lines)


def dump_response(response: httpx.Response, *, body: bool) -> str:
    reason = response.reason_phrase or ""
    lines = [f"{response.http_version} {response.status_code} {reason}".rstrip()]
    lines.extend(_format_headers(response.headers))
    lines.append("")
    if body:
        # Buffers the stream in place so the caller can still read the full body.
        content = response.read()
        if content:
            lines.append(_decode(content, response.encoding))
    return "\r\n".join(lines)


async def dump_response_async(response: httpx.Response, *, body: bool) -> str:
    if body:
        await response.aread()
    return dump_response(response, body=body)


async def dump_request_async(request: httpx.Request, *, body: bool) -> str:
    if body:
        await request.aread()
    return dump_request(request, body=body)


def _read_or_close(response: httpx.Response) -> None:
    try:
        response.read()
    except BaseException:
        response.close()
        raise


async def _aread_or_close(response: httpx.Response) -> None:
    try:
        await response.aread()
    except BaseException:
        await response.aclose()
        raise


class _DumpWriter:
    def __init__(self, level: LogLevel, stream: TextIO | None) -> None:
        self.level = level
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved per write so redirected sys.stderr (pytest capsys) is honored.
        return self._stream if self._stream is not None else sys.stderr

    @property
    def enabled(self) -> bool:
        return self.level >= LogLevel.BASIC

    @property
    def with_body(self) -> bool:
        return self.level >= LogLevel.BODY

    def write(self, text: str) -> None:
        try:
            self.stream.write(text if text.endswith("\n") else text + "\n")
            self.stream.flush()
        except Exception as exc:
            logger.warning(f"could not write transport dump: {exc!r}")

    def warn(self, what: str, exc: BaseException) -> None:
        self.write(f"warning: error dumping {what}: {exc}")

    def request(self, url: httpx.URL, dump: str) -> None:
        self.write(f"Request ({url}): \n{dump}")

    def response(self, dump: str, started: float) -> None:
        self.write(f"Response (in {_elapsed(started)}): \n{dump}")

    def failure(self, exc: BaseException, started: float) -> None:
        self.write(f"Request failed (in {_elapsed(started)}): {exc!r}")


def _elapsed(started: float) -> str:
    elapsed = time.perf_counter() - started
    if elapsed < 1:
        return f"{elapsed * 1000:.3f}ms"
    return f"{elapsed:.3f}s"


class LoggingTransport(httpx.BaseTransport):
    """Wraps a transport and dumps each exchange according to ``level``."""

    def __init__(self, inner: httpx.BaseTransport, level: LogLevel = LogLevel.BASIC, *, stream: TextIO | None = None) -> None:
        self.inner = inner
        self._writer = _DumpWriter(LogLevel.parse(level), stream)

    @property
    def level(self) -> LogLevel:
        return self._writer.level

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        writer = self._writer
        if not writer.enabled:
            return self.inner.handle_request(request)

        started = time.perf_counter()
        try:
            writer.request(request.url, dump_request(request, body=writer.with_body))
        except Exception as exc:
            writer.warn("request", exc)

        try:
            response = self.inner.handle_request(request)
            if writer.with_body:
                # A body that fails to read fails the attempt, not the dump.
                _read_or_close(response)
        except Exception as exc:
            writer.failure(exc, started)
            raise

        try:
            dump = dump_response(response, body=writer.with_body)
        except Exception as exc:
            writer.warn("response", exc)
        else:
            writer.response(dump, started)
        return response

    def close(self) -> None:
        self.inner.close()


class AsyncLoggingTransport(httpx.AsyncBaseTransport):
    """Async counterpart of :class:`LoggingTransport`."""

    def __init__(self, inner: httpx.AsyncBaseTransport, level: LogLevel = LogLevel.BASIC, *, stream: TextIO | None = None) -> None:
        self.inner = inner
        self._writer = _DumpWriter(LogLevel.parse(level), stream)

    @property
    def level(self) -> LogLevel:
        return self._writer.level

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        writer = self._writer
        if not writer.enabled:
            return await self.inner.handle_async_request(request)

        started = time.perf_counter()
        try:
            writer.request(request.url, await dump_request_async(request, body=writer.with_body))
        except Exception as exc:
            writer.warn("request", exc)

        try:
            response = await self.inner.handle_async_request(request)
            if writer.with_body:
                await _aread_or_close(response)
        except Exception as exc:
            writer.failure(exc, started)
            raise

        try:
            dump = await dump_response_async(response, body=writer.with_body)
        except Exception as exc:
            writer.warn("response", exc)
        else:
            writer.response(dump, started)
        return response

    async def aclose(self) -> None:
        await self.inner.aclose()
