from __future__ import annotations

import asyncio
import io

import httpx
import pytest

from httpdispatch import dump
from httpdispatch.client import AsyncDispatcher, Dispatcher
from httpdispatch.config import DispatchSettings
from httpdispatch.context import Context
from httpdispatch.dump import LoggingTransport, dump_request
from httpdispatch.request_options import LogLevel, RequestOptions


def _echo(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"Content-Type": "text/plain"}, content=b"response-body")


def _post(level: LogLevel, *, log_transport: bool = True, handler=_echo, **extra) -> tuple[str, httpx.Response]:
    stream = io.StringIO()
    dispatcher = Dispatcher(transport=httpx.MockTransport(handler), settings=DispatchSettings(), dump_stream=stream)
    response = dispatcher.post(
        Context.background(),
        "http://example.com/items?page=1",
        RequestOptions(
            body=b"secret-payload",
            headers={"Authorization": "Bearer token-123", "X-Client": "tests"},
            log_level=level,
            log_transport=log_transport,
            **extra,
        ),
    )
    return stream.getvalue(), response


def test_log_level_none_writes_nothing() -> None:
    output, response = _post(LogLevel.NONE)

    assert output == ""
    assert response.content == b"response-body"


def test_disabled_log_transport_writes_nothing() -> None:
    output, _ = _post(LogLevel.BODY, log_transport=False)

    assert output == ""


def test_log_level_basic_omits_bodies() -> None:
    output, response = _post(LogLevel.BASIC)

    assert "Request (http://example.com/items?page=1): " in output
    assert "POST /items?page=1 HTTP/1.1" in output
    assert "Host: example.com" in output
    assert "[body: 14 bytes]" in output
    assert "HTTP/1.1 200 OK" in output
    assert "Response (in " in output
    assert "x-client: tests" in output.lower()
    assert "secret-payload" not in output
    assert "response-body" not in output
    assert response.content == b"response-body"


def test_sensitive_headers_are_redacted() -> None:
    output, _ = _post(LogLevel.BASIC)

    assert "token-123" not in output
    assert "authorization: [REDACTED]" in output.lower()


def test_log_level_body_includes_payloads() -> None:
    output, _ = _post(LogLevel.BODY)

    assert "secret-payload" in output
    assert "response-body" in output
    assert "[body: 14 bytes]" not in output


def test_log_level_body_keeps_streamed_response_readable() -> None:
    def send_request(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=iter([b"chunk-1;", b"chunk-2"]))

    output, response = _post(LogLevel.BODY, handler=send_request, stream=True)

    assert "chunk-1;chunk-2" in output
    assert b"".join(response.iter_bytes()) == b"chunk-1;chunk-2"


def test_transport_failures_are_dumped_and_reraised() -> None:
    stream = io.StringIO()

    def send_request(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("conn refused", request=request)

    transport = LoggingTransport(httpx.MockTransport(send_request), LogLevel.BASIC, stream=stream)
    request = httpx.Request("GET", "http://example.com/")

    try:
        transport.handle_request(request)
    except httpx.ConnectError:
        pass
    else:  # pragma: no cover - defensive assertion
        raise AssertionError("ConnectError was not re-raised")

    output = stream.getvalue()
    assert "Request failed (in " in output
    assert "conn refused" in output


def test_dump_failures_are_reported_as_warnings(monkeypatch) -> None:
    def broken_dump(response: httpx.Response, *, body: bool) -> str:
        raise RuntimeError("cannot dump")

    monkeypatch.setattr(dump, "dump_response", broken_dump)
    stream = io.StringIO()
    original = httpx.Response(200, content=b"ok")
    transport = LoggingTransport(httpx.MockTransport(lambda request: original), LogLevel.BODY, stream=stream)

    response = transport.handle_request(httpx.Request("GET", "http://example.com/"))

    assert response is original
    assert response.status_code == 200
    assert "warning: error dumping response: cannot dump" in stream.getvalue()


def test_streaming_request_body_is_shown_as_indicator() -> None:
    def chunks():
        yield b"abc"

    request = httpx.Request("PUT", "http://example.com/upload", content=chunks())

    dumped = dump_request(request, body=False)

    assert "[streaming body]" in dumped
    assert "abc" not in dumped


def test_async_logging_at_body_level() -> None:
    stream = io.StringIO()

    async def send_request(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, content=b"created")

    async def run() -> httpx.Response:
        dispatcher = AsyncDispatcher(
            transport=httpx.MockTransport(send_request),
            settings=DispatchSettings(),
            dump_stream=stream,
        )
        return await dispatcher.put(
            Context.background(),
            "http://example.com/items/1",
            RequestOptions(body=b"update", log_level=LogLevel.BODY, log_transport=True),
        )

    response = asyncio.run(run())

    output = stream.getvalue()
    assert "PUT /items/1 HTTP/1.1" in output
    assert "update" in output
    assert "created" in output
    assert response.content == b"created"


def test_stderr_is_the_default_stream(capsys) -> None:
    dispatcher = Dispatcher(transport=httpx.MockTransport(_echo), settings=DispatchSettings())

    dispatcher.get(Context.background(), "http://example.com/", RequestOptions(log_level=LogLevel.BASIC, log_transport=True))

    captured = capsys.readouterr()
    assert "GET / HTTP/1.1" in captured.err
    assert captured.out == ""


class _DroppedConnectionStream(httpx.SyncByteStream):
    def __init__(self, request: httpx.Request) -> None:
        self._request = request

    def __iter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset", request=self._request)


class _AsyncDroppedConnectionStream(httpx.AsyncByteStream):
    def __init__(self, request: httpx.Request) -> None:
        self._request = request

    async def __aiter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset", request=self._request)


def test_body_read_failure_at_body_level_is_retried() -> None:
    calls: list[httpx.Request] = []

    def send_request(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(200, stream=_DroppedConnectionStream(request))
        return httpx.Response(200, content=b"complete")

    output, response = _post(LogLevel.BODY, handler=send_request, max_retries=2)

    assert len(calls) == 2
    assert response.content == b"complete"
    assert "Request failed (in " in output
    assert "connection reset" in output
    assert "warning:" not in output


def test_body_read_failure_propagates_from_logging_transport() -> None:
    stream = io.StringIO()
    transport = LoggingTransport(
        httpx.MockTransport(lambda request: httpx.Response(200, stream=_DroppedConnectionStream(request))),
        LogLevel.BODY,
        stream=stream,
    )

    with pytest.raises(httpx.ReadError):
        transport.handle_request(httpx.Request("GET", "http://example.com/"))

    assert "Request failed (in " in stream.getvalue()


def test_async_body_read_failure_at_body_level_is_retried() -> None:
    stream = io.StringIO()
    calls: list[httpx.Request] = []

    async def send_request(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(200, stream=_AsyncDroppedConnectionStream(request))
        return httpx.Response(200, content=b"complete")

    async def run() -> httpx.Response:
        dispatcher = AsyncDispatcher(transport=httpx.MockTransport(send_request), settings=DispatchSettings(), dump_stream=stream)
        return await dispatcher.get(
            Context.background(),
            "http://example.com/",
            RequestOptions(max_retries=2, log_level=LogLevel.BODY, log_transport=True),
        )

    response = asyncio.run(run())

    assert len(calls) == 2
    assert response.content == b"complete"


class _BrokenStream(io.StringIO):
    def write(self, text: str) -> int:
        raise OSError("stream closed")


def test_unwritable_dump_stream_does_not_fail_the_call() -> None:
    dispatcher = Dispatcher(transport=httpx.MockTransport(_echo), settings=DispatchSettings(), dump_stream=_BrokenStream())

    response = dispatcher.get(Context.background(), "http://example.com/", RequestOptions(log_level=LogLevel.BODY, log_transport=True))

    assert response.status_code == 200
    assert response.content == b"response-body"


def test_unwritable_dump_stream_keeps_the_transport_error() -> None:
    def send_request(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("conn refused", request=request)

    transport = LoggingTransport(httpx.MockTransport(send_request), LogLevel.BASIC, stream=_BrokenStream())

    with pytest.raises(httpx.ConnectError, match="conn refused"):
        transport.handle_request(httpx.Request("GET", "http://example.com/"))
