"""Cancellation and deadline tracking shared across worker threads.

A ``ConversionContext`` is cancelled either explicitly with ``cancel()`` or
implicitly when its deadline passes. Children inherit their parent's
cancellation but keep their own deadline, so a per-chapter timeout never
affects sibling chapters.
"""

import threading
import time
from typing import Optional

from .errors import ConversionCancelledError, ConversionTimeoutError

DEADLINE_EXCEEDED = "context deadline exceeded"


class ConversionContext:
    def __init__(self, timeout: Optional[float] = None, parent: "ConversionContext" = None):
        self.parent = parent
        self.timeout = timeout if timeout and timeout > 0 else None
        self.deadline = time.monotonic() + self.timeout if self.timeout else None
        self._cancelled = threading.Event()

    def child(self, timeout: Optional[float] = None) -> "ConversionContext":
        return ConversionContext(timeout=timeout, parent=self)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def expired(self) -> bool:
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return True
        return self.parent is not None and self.parent.expired

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.parent is not None and self.parent.cancelled

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def check(self) -> None:
        """Raise if the context has been cancelled or its deadline has passed"""
        if self.cancelled:
            raise ConversionCancelledError("context cancelled")
        if self.expired:
            raise ConversionTimeoutError(f"{DEADLINE_EXCEEDED}{self._timeout_suffix()}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` seconds pass; returns ``done``"""
        end = time.monotonic() + timeout if timeout is not None else None
        while not self.done:
            remaining = None if end is None else end - time.monotonic()
            if remaining is not None and remaining <= 0:
                break
            # Poll so parent cancellation and deadlines are noticed.
            slice_ = 0.1 if remaining is None else min(0.1, remaining)
            self._cancelled.wait(slice_)
        return self.done

    def _timeout_suffix(self) -> str:
        ctx = self
        while ctx is not None:
            if ctx.deadline is not None and time.monotonic() >= ctx.deadline:
                return f" (timeout {ctx.timeout:g}s)"
            ctx = ctx.parent
        return ""

    def __repr__(self):
        return f"ConversionContext(timeout={self.timeout}, done={self.done})"
