"""HTTP request dispatch with retries, per-attempt timeouts and composable transport decorators."""

from loguru import logger

from .client import AsyncDispatcher, Dispatcher
from .config import DispatchSettings
from .context import Context
from .dump import AsyncLoggingTransport, LoggingTransport
from .exceptions import (
    DeadlineExceededError,
    DispatchError,
    DispatchValidationError,
    InvalidURLError,
    QueryParamTypeError,
    RequestCancelledError,
)
from .methods import (
    adelete,
    aget,
    ahead,
    aoptions,
    apatch,
    apost,
    aput,
    arequest,
    delete,
    get,
    head,
    options,
    patch,
    post,
    put,
    request,
)
from .middleware import (
    AsyncMiddleware,
    AsyncTransportDecorator,
    Middleware,
    TransportDecorator,
    async_handler_middleware,
    compose_async_transport,
    compose_transport,
    handler_middleware,
)
from .request_options import LogLevel, RequestOptions

# Library logs stay silent until the application calls logger.enable("httpdispatch").
logger.disable("httpdispatch")

__all__ = [
    "AsyncDispatcher",
    "AsyncLoggingTransport",
    "AsyncMiddleware",
    "AsyncTransportDecorator",
    "Context",
    "DeadlineExceededError",
    "DispatchError",
    "DispatchSettings",
    "DispatchValidationError",
    "Dispatcher",
    "InvalidURLError",
    "LogLevel",
    "LoggingTransport",
    "Middleware",
    "QueryParamTypeError",
    "RequestCancelledError",
    "RequestOptions",
    "TransportDecorator",
    "adelete",
    "aget",
    "ahead",
    "aoptions",
    "apatch",
    "apost",
    "aput",
    "arequest",
    "async_handler_middleware",
    "compose_async_transport",
    "compose_transport",
    "delete",
    "get",
    "handler_middleware",
    "head",
    "options",
    "patch",
    "post",
    "put",
    "request",
]
