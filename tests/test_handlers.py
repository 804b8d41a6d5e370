"""Tests for the exception handler registry and error categories."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from vkclient.exceptions import (
    APIError,
    BannedError,
    CaptchaError,
    ErrorCategory,
    TransportError,
    TwoFactorError,
    VKClientError,
    category_ancestry,
    category_of,
    is_subcategory,
)
from vkclient.handlers import ExceptionHandlerRegistry


def _passthrough(log: list[str], tag: str):
    def handler(error: BaseException, category: ErrorCategory) -> Any:
        log.append(tag)
        return error

    return handler


# ---------------------------------------------------------------------------
# Category tree
# ---------------------------------------------------------------------------


class TestCategories:
    def test_ancestry_starts_with_self(self) -> None:
        assert category_ancestry(ErrorCategory.BANNED) == [
            ErrorCategory.BANNED,
            ErrorCategory.NEED_VALIDATION,
            ErrorCategory.API,
            ErrorCategory.ERROR,
        ]

    def test_is_subcategory(self) -> None:
        assert is_subcategory(ErrorCategory.TWO_FACTOR, ErrorCategory.API)
        assert is_subcategory(ErrorCategory.API, ErrorCategory.API)
        assert not is_subcategory(ErrorCategory.API, ErrorCategory.CAPTCHA)
        assert not is_subcategory(ErrorCategory.TRANSPORT, ErrorCategory.API)

    def test_every_category_reaches_the_root(self) -> None:
        for category in ErrorCategory:
            assert category_ancestry(category)[-1] is ErrorCategory.ERROR

    def test_category_of_class(self) -> None:
        assert category_of(CaptchaError) is ErrorCategory.CAPTCHA
        assert category_of(VKClientError) is ErrorCategory.ERROR
        assert category_of(ErrorCategory.REDIRECT) is ErrorCategory.REDIRECT

    def test_category_of_rejects_foreign_types(self) -> None:
        with pytest.raises(TypeError):
            category_of(ValueError)  # type: ignore[arg-type]

    def test_exit_codes_follow_the_class_tree(self) -> None:
        assert TwoFactorError("x").exit_code == BannedError("x").exit_code
        assert APIError("").message == "API request failed"


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_handle_appends(self) -> None:
        registry = ExceptionHandlerRegistry()
        h1, h2 = _passthrough([], "1"), _passthrough([], "2")
        registry.handle(APIError, h1)
        handle = registry.handle(APIError, h2)

        assert registry.handlers_for(ErrorCategory.API) == [h1, h2]
        assert handle.index == 1
        assert handle.category is ErrorCategory.API

    def test_handle_first_prepends(self) -> None:
        registry = ExceptionHandlerRegistry()
        h1, h2 = _passthrough([], "1"), _passthrough([], "2")
        registry.handle(ErrorCategory.API, h1)
        handle = registry.handle_first(ErrorCategory.API, h2)

        assert registry.handlers_for(ErrorCategory.API) == [h2, h1]
        assert handle.index == 0

    def test_unregister_keeps_order(self) -> None:
        registry = ExceptionHandlerRegistry()
        h1, h2, h3 = (_passthrough([], tag) for tag in "123")
        registry.handle(ErrorCategory.API, h1)
        handle = registry.handle(ErrorCategory.API, h2)
        registry.handle(ErrorCategory.API, h3)

        registry.unregister(handle)

        assert registry.handlers_for(ErrorCategory.API) == [h1, h3]

    def test_handlers_for_returns_copy(self) -> None:
        registry = ExceptionHandlerRegistry()
        registry.handle(ErrorCategory.API, _passthrough([], "1"))
        registry.handlers_for(ErrorCategory.API).clear()
        assert len(registry.handlers_for(ErrorCategory.API)) == 1

    def test_known_categories_in_registration_order(self) -> None:
        registry = ExceptionHandlerRegistry()
        registry.handle(ErrorCategory.CAPTCHA, _passthrough([], "c"))
        registry.handle(ErrorCategory.API, _passthrough([], "a"))
        registry.handle(ErrorCategory.CAPTCHA, _passthrough([], "c2"))

        assert registry.known_categories == [ErrorCategory.CAPTCHA, ErrorCategory.API]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class TestResolve:
    def test_base_handler_sees_derived_error(self) -> None:
        registry = ExceptionHandlerRegistry()
        seen: list[ErrorCategory] = []

        def recover(error: BaseException, category: ErrorCategory) -> Any:
            seen.append(category)
            return {"recovered": True}

        registry.handle(ErrorCategory.API, recover)
        result = asyncio.run(registry.resolve(TwoFactorError("2fa", validation_type="2fa_sms")))

        assert result == {"recovered": True}
        assert seen == [ErrorCategory.TWO_FACTOR]

    def test_derived_handler_ignores_base_error(self) -> None:
        registry = ExceptionHandlerRegistry()
        log: list[str] = []
        registry.handle(ErrorCategory.CAPTCHA, lambda e, c: log.append("captcha") or "x")

        error = APIError("generic")
        with pytest.raises(APIError) as exc_info:
            asyncio.run(registry.resolve(error))

        assert exc_info.value is error
        assert log == []

    def test_reraises_when_every_handler_passes(self) -> None:
        registry = ExceptionHandlerRegistry()
        log: list[str] = []
        registry.handle(ErrorCategory.API, _passthrough(log, "1"))
        registry.handle(ErrorCategory.API, _passthrough(log, "2"))

        error = CaptchaError("captcha", sid="1")
        with pytest.raises(CaptchaError) as exc_info:
            asyncio.run(registry.resolve(error))

        assert exc_info.value is error
        assert log == ["1", "2"]

    def test_first_altering_handler_wins(self) -> None:
        registry = ExceptionHandlerRegistry()
        log: list[str] = []
        registry.handle(ErrorCategory.API, _passthrough(log, "pass"))
        registry.handle(ErrorCategory.API, lambda e, c: "first")
        registry.handle(ErrorCategory.API, lambda e, c: "second")

        assert asyncio.run(registry.resolve(APIError("x"))) == "first"
        assert log == ["pass"]

    def test_falsy_return_value_is_a_recovery(self) -> None:
        registry = ExceptionHandlerRegistry()
        registry.handle(ErrorCategory.API, lambda e, c: None)
        assert asyncio.run(registry.resolve(APIError("x"))) is None

    def test_async_handler(self) -> None:
        registry = ExceptionHandlerRegistry()

        async def recover(error: BaseException, category: ErrorCategory) -> Any:
            await asyncio.sleep(0)
            return [1, 2]

        registry.handle(ErrorCategory.TRANSPORT, recover)
        assert asyncio.run(registry.resolve(TransportError("down"))) == [1, 2]

    def test_categories_are_tried_in_registration_order(self) -> None:
        registry = ExceptionHandlerRegistry()
        registry.handle(ErrorCategory.API, lambda e, c: "api")
        registry.handle(ErrorCategory.CAPTCHA, lambda e, c: "captcha")

        assert asyncio.run(registry.resolve(CaptchaError("c"))) == "api"

    def test_explicit_category_overrides_class(self) -> None:
        registry = ExceptionHandlerRegistry()
        registry.handle(ErrorCategory.REDIRECT, lambda e, c: c)

        result = asyncio.run(registry.resolve(APIError("x"), ErrorCategory.REDIRECT))
        assert result is ErrorCategory.REDIRECT

    def test_no_handlers_reraises(self) -> None:
        with pytest.raises(TransportError):
            asyncio.run(ExceptionHandlerRegistry().resolve(TransportError("down")))
