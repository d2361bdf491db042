"""Per-request options for dispatch calls."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence, Union

if TYPE_CHECKING:
    from .middleware import AsyncMiddleware, Middleware

RequestBody = Union[bytes, str, Iterable[bytes]]


class LogLevel(IntEnum):
    """How much the logging decorator writes; each level includes the previous one."""

    NONE = 0
    BASIC = 1
    BODY = 2

    @classmethod
    def parse(cls, value: str | int | LogLevel) -> LogLevel:
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        value = value.strip()
        if value.isdigit():
            return cls(int(value))
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


@dataclass(frozen=True)
class RequestOptions:
    headers: Mapping[str, str] | None = None
    body: RequestBody | None = None
    max_retries: int | None = None
    retry_wait: float | None = None
    middlewares: Sequence[Middleware | AsyncMiddleware] = ()
    timeout: float | None = None
    query_params: Mapping[str, object] | None = None
    log_level: LogLevel | None = None
    log_transport: bool | None = None
    stream: bool = False
