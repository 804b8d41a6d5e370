"""Exception handler registry -- typed recovery for failed API calls.

Handlers are registered per :class:`~vkclient.exceptions.ErrorCategory` and
run in registration order. A handler receives ``(error, category)`` and
either returns the same error instance (meaning "not mine, keep going") or
anything else, which ends resolution and becomes the value of the call::

    async def solve_captcha(error, category):
        key = await ask_user(error.image_url)
        return await vk.api.call("users.get", {"captcha_sid": error.sid, "captcha_key": key})

    vk.handle(ErrorCategory.CAPTCHA, solve_captcha)

Matching walks the declared category ancestry, so a handler for ``API``
also sees ``CAPTCHA`` and ``TWO_FACTOR`` failures.
"""

from __future__ import annotations

import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Union

from vkclient.exceptions import CategoryLike, ErrorCategory, category_of, is_subcategory

logger = logging.getLogger(__name__)

ExceptionHandler = Callable[[BaseException, ErrorCategory], Union[Any, Awaitable[Any]]]


class HandlerHandle(NamedTuple):
    """Position of a registered handler, returned by :meth:`ExceptionHandlerRegistry.handle`.

    Removing a handler shifts the indices of the handlers after it, so a
    handle must not be reused once any handler of the same category has been
    removed.
    """

    category: ErrorCategory
    index: int


class ExceptionHandlerRegistry:
    """Ordered recovery handlers keyed by error category."""

    def __init__(self) -> None:
        self._handlers: dict[ErrorCategory, list[ExceptionHandler]] = {}
        # Insertion-ordered set of every category ever registered.
        self._known: dict[ErrorCategory, None] = {}
        self._lock = threading.Lock()

    @property
    def known_categories(self) -> list[ErrorCategory]:
        return list(self._known)

    def handlers_for(self, category: CategoryLike) -> list[ExceptionHandler]:
        """Return a copy of the handlers registered for *category*."""
        return list(self._handlers.get(category_of(category), []))

    def handle(
        self,
        category: CategoryLike,
        handler: ExceptionHandler,
        at_front: bool = False,
    ) -> HandlerHandle:
        """Register *handler* for *category*.

        Args:
            category: An :class:`ErrorCategory` or a vkclient exception class.
            handler: Sync or async callable ``(error, category) -> Any``.
            at_front: Prepend instead of append.

        Returns:
            A :class:`HandlerHandle` usable with :meth:`unregister`.
        """
        tag = category_of(category)
        with self._lock:
            self._known[tag] = None
            handlers = list(self._handlers.get(tag, []))
            if at_front:
                handlers.insert(0, handler)
                index = 0
            else:
                handlers.append(handler)
                index = len(handlers) - 1
            self._handlers[tag] = handlers
        return HandlerHandle(tag, index)

    def handle_first(self, category: CategoryLike, handler: ExceptionHandler) -> HandlerHandle:
        """Register *handler* ahead of every existing handler for *category*."""
        return self.handle(category, handler, at_front=True)

    def unregister(self, handle: HandlerHandle) -> None:
        """Remove the handler at *handle*; the remaining handlers keep their order."""
        with self._lock:
            handlers = self._handlers.get(handle.category, [])
            self._handlers[handle.category] = [
                h for i, h in enumerate(handlers) if i != handle.index
            ]

    async def resolve(self, error: BaseException, category: Optional[CategoryLike] = None) -> Any:
        """Offer *error* to every handler whose category matches it.

        Args:
            error: The failure to recover from.
            category: Static category of *error*. Defaults to the category
                of its class.

        Returns:
            The value returned by the first handler that did not hand back
            *error* itself.

        Raises:
            BaseException: *error*, unchanged, when no handler altered it.
        """
        if category is None:
            category = category_of(type(error))
        static = category_of(category)

        for known in list(self._known):
            if not is_subcategory(static, known):
                continue
            for handler in self.handlers_for(known):
                returned = handler(error, static)
                if inspect.isawaitable(returned):
                    returned = await returned
                if returned is not error:
                    logger.debug(
                        "%s handled by a '%s' handler", type(error).__name__, known.value
                    )
                    return returned

        raise error
