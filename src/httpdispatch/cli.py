"""Command-line entry point for one-off dispatch calls."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

import httpx

from .client import Dispatcher
from .config import DispatchSettings
from .context import Context
from .exceptions import DispatchError
from .request_options import LogLevel, RequestOptions


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def _parse_pairs(values: Sequence[str], separator: str, what: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(separator)
        if not sep or not name.strip():
            raise argparse.ArgumentTypeError(f"invalid {what} {raw!r}, expected NAME{separator}VALUE")
        pairs[name.strip()] = value.strip() if separator == ":" else value
    return pairs


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="httpdispatch", description="Send an HTTP request with retries.")
    parser.add_argument("method", type=str.upper, choices=HTTP_METHODS)
    parser.add_argument("url")
    parser.add_argument("-H", "--header", action="append", default=[], help="NAME:VALUE, repeatable")
    parser.add_argument("-q", "--query", action="append", default=[], help="KEY=VALUE, repeatable")
    parser.add_argument("-d", "--data", help="request body")
    parser.add_argument("--retries", type=int, default=None)
    parser.add_argument("--retry-wait", type=float, default=None, help="seconds between attempts")
    parser.add_argument("--timeout", type=float, default=None, help="per-attempt timeout in seconds")
    parser.add_argument("--deadline", type=float, default=None, help="overall deadline in seconds")
    parser.add_argument(
        "--log-level",
        type=LogLevel.parse,
        default=None,
        help="none, basic or body; dumps the exchange to stderr",
    )
    return parser


def _main(
    argv: Sequence[str] | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        headers = _parse_pairs(args.header, ":", "header")
        query = _parse_pairs(args.query, "=", "query parameter")
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    options = RequestOptions(
        headers=headers,
        body=args.data,
        max_retries=args.retries,
        retry_wait=args.retry_wait,
        timeout=args.timeout,
        query_params=query,
        log_level=args.log_level,
        log_transport=args.log_level is not None and args.log_level > LogLevel.NONE,
    )
    ctx = Context.with_timeout(args.deadline) if args.deadline is not None else Context.background()

    try:
        with Dispatcher(transport=transport, settings=DispatchSettings.from_env()) as dispatcher:
            response = dispatcher.request(ctx, args.method, args.url, options)
    except (DispatchError, httpx.TransportError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        ctx.cancel()

    print(f"{response.http_version} {response.status_code} {response.reason_phrase}".rstrip())
    if response.content:
        print(response.text)
    return 0


def main() -> None:
    raise SystemExit(_main())
