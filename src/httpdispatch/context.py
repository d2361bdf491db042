"""Cancellation contexts threaded through every dispatch call.

A :class:`Context` carries an optional deadline and a cancellation signal.
Dispatchers check it before every attempt, bound each attempt's timeout by its
remaining time and race the inter-retry wait against it::

    with Context.with_timeout(5.0) as ctx:
        response = get(ctx, "https://api.example.com/items")

Deadlines are evaluated lazily, so a context never starts a timer thread.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable

from .exceptions import DeadlineExceededError, RequestCancelledError

DoneCallback = Callable[["Context"], None]


class Context:
    """Cancellation signal with an optional monotonic deadline."""

    def __init__(self, *, deadline: float | None = None, parent: Context | None = None) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._err: RequestCancelledError | None = None
        self._callbacks: list[DoneCallback] = []
        if parent is not None:
            parent_deadline = parent.deadline
            if parent_deadline is not None and (deadline is None or parent_deadline < deadline):
                deadline = parent_deadline
        self.deadline = deadline
        self._parent = parent
        if parent is not None:
            parent.add_done_callback(self._on_parent_done)

    @classmethod
    def background(cls) -> Context:
        return cls()

    @classmethod
    def with_cancel(cls, parent: Context | None = None) -> Context:
        return cls(parent=parent)

    @classmethod
    def with_deadline(cls, deadline: float, parent: Context | None = None) -> Context:
        """Derive a context that expires at ``deadline`` on the ``time.monotonic`` clock."""
        return cls(deadline=deadline, parent=parent)

    @classmethod
    def with_timeout(cls, seconds: float, parent: Context | None = None) -> Context:
        return cls(deadline=time.monotonic() + seconds, parent=parent)

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "done" if self.done() else "active"
        return f"<Context {state} deadline={self.deadline!r}>"

    def cancel(self) -> None:
        self._finish(RequestCancelledError("context canceled"))

    def done(self) -> bool:
        self._check_deadline()
        return self._event.is_set()

    def err(self) -> RequestCancelledError | None:
        """Return the cancellation cause, or ``None`` while the context is active."""
        self._check_deadline()
        return self._err

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, timeout: float | None = None) -> bool:
        """Block for ``timeout`` seconds or until the context is done.

        Returns ``True`` when the context is done. A cancellation that lands
        together with the end of the wait is reported as done.
        """
        if self.done():
            return True
        limit, until_deadline = self._wait_limit(timeout)
        self._event.wait(limit)
        if until_deadline:
            self._expire()
        return self.done()

    async def wait_async(self, timeout: float | None = None) -> bool:
        """Awaitable counterpart of :meth:`wait` for the running event loop."""
        if self.done():
            return True
        loop = asyncio.get_running_loop()
        woken: asyncio.Future[None] = loop.create_future()

        def wake(_: Context) -> None:
            loop.call_soon_threadsafe(_resolve, woken)

        limit, until_deadline = self._wait_limit(timeout)
        self.add_done_callback(wake)
        try:
            await asyncio.wait_for(woken, limit)
        except asyncio.TimeoutError:
            if until_deadline:
                self._expire()
        finally:
            self.remove_done_callback(wake)
        return self.done()

    def add_done_callback(self, callback: DoneCallback) -> None:
        """Run ``callback(self)`` once the context is cancelled, or now if it already is."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback(self)

    def remove_done_callback(self, callback: DoneCallback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def _wait_limit(self, timeout: float | None) -> tuple[float | None, bool]:
        """Return the wait bound and whether it is the deadline rather than ``timeout``."""
        remaining = self.remaining()
        if remaining is None:
            return timeout, False
        if timeout is None or remaining <= timeout:
            return remaining, True
        return timeout, False

    def _check_deadline(self) -> None:
        if self.deadline is not None and not self._event.is_set() and time.monotonic() >= self.deadline:
            self._expire()

    def _expire(self) -> None:
        self._finish(DeadlineExceededError("context deadline exceeded"))

    def _on_parent_done(self, parent: Context) -> None:
        self._finish(parent.err() or RequestCancelledError("context canceled"))

    def _finish(self, err: RequestCancelledError) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._err = err
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        if self._parent is not None:
            self._parent.remove_done_callback(self._on_parent_done)
        for callback in callbacks:
            callback(self)


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)
