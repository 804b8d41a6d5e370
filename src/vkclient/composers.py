"""Named middleware pipelines (composers) and the stack that owns them.

This module provides three components:

* :class:`RequestContext` -- A mutable dataclass threaded through the
  ``request`` composer before every API call.
* :class:`Composer` -- An append-only, ordered list of middleware run
  against a context object.
* :class:`ComposerStack` -- Maps composer identifiers to at most one
  :class:`Composer` each.

Middleware follow the ``(context, next) -> result`` contract. Calling
``next()`` (and awaiting or returning its result) continues the chain;
returning without calling it short-circuits::

    async def add_token(ctx, next):
        ctx.params.setdefault("access_token", token)
        return await next()

    def block_writes(ctx, next):
        if ctx.http_method == "post":
            return {"blocked": True}
        return next()
"""

from __future__ import annotations

import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from vkclient.exceptions import UnknownComposerError

logger = logging.getLogger(__name__)

Next = Callable[[], Awaitable[Any]]
Middleware = Callable[[Any, Next], Any]

REQUEST_COMPOSER = "request"
"""Composer run by :class:`~vkclient.api.API` before each query is sent."""


@dataclass
class RequestContext:
    """Mutable context passed through the ``request`` composer.

    Attributes:
        url: Fully resolved request URL.
        http_method: ``"get"`` or ``"post"``.
        params: Query parameters (defaults already merged in).
        method_name: The API method or path postfix (e.g. ``"users.get"``).
    """

    url: str = ""
    http_method: str = "get"
    params: dict[str, Any] = field(default_factory=dict)
    method_name: str = ""


class Composer:
    """An ordered, append-only middleware chain.

    Args:
        middlewares: Initial middleware, in execution order.
    """

    def __init__(self, middlewares: Optional[list[Middleware]] = None) -> None:
        self._middlewares: list[Middleware] = list(middlewares or [])
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._middlewares)

    @property
    def middlewares(self) -> tuple[Middleware, ...]:
        """Snapshot of the chain in execution order."""
        return tuple(self._middlewares)

    def use(self, middleware: Middleware) -> Composer:
        """Append *middleware* to the end of the chain."""
        with self._lock:
            self._middlewares.append(middleware)
        return self

    async def run(self, context: Any) -> Any:
        """Execute the chain against *context*.

        Middleware run one at a time in registration order. Execution stops
        at the first middleware that does not call ``next``.

        Returns:
            The result of the middleware that stopped the chain, or
            *context* itself when every middleware called ``next``.

        Raises:
            RuntimeError: If a middleware calls ``next`` twice, or calls it
                without awaiting or returning the result.
        """
        stack = self.middlewares
        stopped: list[Any] = []

        async def dispatch(index: int) -> Any:
            if index == len(stack):
                return context

            called = False
            downstream: list[Any] = []

            def call_next() -> Awaitable[Any]:
                nonlocal called
                if called:
                    raise RuntimeError("next() called multiple times")
                called = True
                downstream.append(dispatch(index + 1))
                return downstream[0]

            result = stack[index](context, call_next)
            if inspect.isawaitable(result):
                result = await result
            if downstream and inspect.getcoroutinestate(downstream[0]) == inspect.CORO_CREATED:
                downstream[0].close()
                raise RuntimeError("next() was called but never awaited")
            if not called:
                stopped.append(result)
            return result

        await dispatch(0)
        return stopped[0] if stopped else context


class ComposerStack:
    """Registry of named composers.

    Identifiers map to at most one :class:`Composer`; once created a composer
    only ever grows. Creation and appends are serialized; :meth:`run` works
    on a snapshot and does not block other runs.
    """

    def __init__(self) -> None:
        self._composers: dict[str, Composer] = {}
        self._lock = threading.Lock()

    def has(self, composer_id: str) -> bool:
        return composer_id in self._composers

    def get(self, composer_id: str) -> Optional[Composer]:
        return self._composers.get(composer_id)

    @property
    def names(self) -> list[str]:
        return list(self._composers)

    def ensure(self, composer_id: str) -> Composer:
        """Create an empty composer for *composer_id* unless one exists.

        Returns:
            The (possibly pre-existing) composer.
        """
        with self._lock:
            composer = self._composers.get(composer_id)
            if composer is None:
                composer = Composer()
                self._composers[composer_id] = composer
                logger.debug("Created composer '%s'", composer_id)
            return composer

    def append(self, composer_id: str, middleware: Middleware) -> Composer:
        """Ensure *composer_id* exists, then append *middleware* to it."""
        return self.ensure(composer_id).use(middleware)

    async def run(self, composer_id: str, context: Any) -> Any:
        """Run the composer registered under *composer_id*.

        Raises:
            UnknownComposerError: If no composer was ever created for
                *composer_id*.
        """
        composer = self._composers.get(composer_id)
        if composer is None:
            raise UnknownComposerError(
                f"Composer '{composer_id}' was never created"
            )
        return await composer.run(context)
