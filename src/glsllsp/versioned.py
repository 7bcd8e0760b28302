"""
Versioned computation cache.

A :class:`VersionedExecutor` memoises the result of an async production
function against a version token.  Callers ask for "a result at least as new
as *version*":

* a completed result whose version covers the request is returned as is;
* an in-flight computation whose version covers the request is shared;
* otherwise a new computation is started and becomes the in-flight one.

Only one computation is tracked as in flight.  A newer uncovered request
displaces it, but the displaced computation still finishes and may still fill
the completed slot, as long as nothing newer got there first.
"""
from __future__ import annotations

import asyncio
import logging
import operator
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')
V = TypeVar('V')


class VersionedExecutor(Generic[T, V]):
    """Memoise ``await produce(version)`` per version frontier.

    *covers(a, b)* answers "is a result at version *a* good enough for a
    request at version *b*".  It defaults to ``a >= b``.
    """

    def __init__(
        self,
        produce: Callable[[V], Awaitable[T]],
        covers: Callable[[V, V], bool] = operator.ge,
    ):
        self._produce = produce
        self._covers = covers
        self._result: tuple[V, T] | None = None
        self._pending: tuple[V, asyncio.Future] | None = None

    @property
    def version(self) -> V | None:
        """Version of the completed result, or ``None`` before the first one."""
        return self._result[0] if self._result is not None else None

    @property
    def pending_version(self) -> V | None:
        return self._pending[0] if self._pending is not None else None

    async def get_result(self, version: V) -> T:
        if self._result is not None and self._covers(self._result[0], version):
            return self._result[1]
        if self._pending is not None and self._covers(self._pending[0], version):
            future = self._pending[1]
        else:
            future = self._start(version)
        # A cancelled caller must not cancel the computation other callers share.
        return await asyncio.shield(future)

    def _start(self, version: V) -> asyncio.Future:
        future = asyncio.ensure_future(self._produce(version))
        self._pending = (version, future)
        future.add_done_callback(lambda f: self._finished(version, f))
        return future

    def _finished(self, version: V, future: asyncio.Future) -> None:
        if self._pending is not None and self._pending[1] is future:
            self._pending = None
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.debug('computation for version %r failed: %r', version, exc)
            return
        if self._result is None or not self._covers(self._result[0], version):
            self._result = (version, future.result())
        else:
            logger.debug('dropping stale result for version %r (have %r)',
                         version, self._result[0])
