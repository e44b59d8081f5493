"""
Cancellation handles passed through a call chain.

A Context carries a one-shot "done" signal, the error that caused it and an
optional deadline. Derived contexts are cancelled together with their parent.
"""

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ContextError(Exception):
    """Base class for the reasons a context ends."""


class Canceled(ContextError):
    """The context was cancelled explicitly."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextError, TimeoutError):
    """The context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """Cancellation/deadline handle; create roots with Context.background()."""

    def __init__(self, parent: "Context | None" = None, deadline: float | None = None) -> None:
        self._parent = parent
        self._deadline = deadline
        self._done = asyncio.Event()
        self._err: BaseException | None = None
        self._children: set[Context] = set()
        self._timer: asyncio.TimerHandle | None = None

        if parent is None:
            return
        if parent._deadline is not None and (deadline is None or parent._deadline < deadline):
            self._deadline = parent._deadline
        if parent._err is not None:
            self._finish(parent._err)
        else:
            parent._children.add(self)

    @classmethod
    def background(cls) -> "Context":
        """Return a root context that is never cancelled on its own."""
        return cls()

    def with_cancel(self) -> "Context":
        return Context(self)

    def with_timeout(self, seconds: float) -> "Context":
        """Derive a child that cancels itself with DeadlineExceeded after ``seconds``."""
        loop = asyncio.get_running_loop()
        child = Context(self, loop.time() + seconds)
        if child._err is None:
            delay = max(child._deadline - loop.time(), 0.0)
            child._timer = loop.call_later(delay, child._expire)
        return child

    @property
    def deadline(self) -> float | None:
        """Event-loop time at which the context expires, if any."""
        return self._deadline

    @property
    def err(self) -> BaseException | None:
        """``None`` while the context is live, the cancellation cause afterwards."""
        return self._err

    def done(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> None:
        """Block until the context is cancelled or its deadline passes."""
        await self._done.wait()

    def cancel(self, cause: BaseException | None = None) -> None:
        """Cancel this context and every context derived from it."""
        self._finish(cause if cause is not None else Canceled())

    def _expire(self) -> None:
        self._timer = None
        logger.debug("Context deadline exceeded", extra={"deadline": self._deadline})
        self._finish(DeadlineExceeded())

    def _finish(self, err: BaseException) -> None:
        if self._err is not None:
            return
        self._err = err
        self._done.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._parent is not None:
            self._parent._children.discard(self)
        children, self._children = self._children, set()
        for child in children:
            child._finish(err)

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "live" if self._err is None else type(self._err).__name__
        return f"<Context {state} deadline={self._deadline}>"
