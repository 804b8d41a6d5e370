"""Exception hierarchy for vkclient.

All exceptions inherit from :class:`VKClientError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`vkclient.exit_codes`
and a ``category`` tag from :class:`ErrorCategory`.

Exception handlers are keyed by category tags rather than by classes. The
parent of every tag is declared in :data:`CATEGORY_PARENTS`, so a handler
registered for a broad category (``API``) also sees narrower failures
(``TWO_FACTOR``) without inspecting class hierarchies at runtime.

Category tree::

    ERROR                       VKClientError            (exit 1)
    +-- REGISTRATION            RegistrationError        (exit 10)
    |   +-- DUPLICATE_NAME      DuplicateNameError
    |   +-- MISSING_DEPENDENCY  MissingDependencyError
    +-- CAPABILITY              CapabilityError          (exit 10)
    +-- UNKNOWN_COMPOSER        UnknownComposerError     (exit 10)
    +-- CONFIG                  ConfigError              (exit 1)
    +-- TRANSPORT               TransportError           (exit 8)
    +-- API                     APIError                 (exit 3)
        +-- MALFORMED_RESPONSE  MalformedResponseError   (exit 4)
        +-- CAPTCHA             CaptchaError             (exit 5)
        +-- REDIRECT            RedirectError            (exit 7)
        +-- NEED_VALIDATION     NeedValidationError      (exit 6)
            +-- TWO_FACTOR      TwoFactorError
            +-- BANNED          BannedError
"""

from __future__ import annotations

import enum
from typing import Any, ClassVar, Optional, Union

import httpx

from vkclient.exit_codes import (
    EXIT_API_ERROR,
    EXIT_CAPTCHA_REQUIRED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_MALFORMED_RESPONSE,
    EXIT_PLUGIN_ERROR,
    EXIT_REDIRECT_REQUIRED,
    EXIT_VALIDATION_REQUIRED,
)


class ErrorCategory(str, enum.Enum):
    """Closed set of failure categories used as exception-handler keys."""

    ERROR = "error"
    REGISTRATION = "registration"
    DUPLICATE_NAME = "duplicate_name"
    MISSING_DEPENDENCY = "missing_dependency"
    CAPABILITY = "capability"
    UNKNOWN_COMPOSER = "unknown_composer"
    CONFIG = "config"
    TRANSPORT = "transport"
    API = "api"
    MALFORMED_RESPONSE = "malformed_response"
    CAPTCHA = "captcha"
    REDIRECT = "redirect"
    NEED_VALIDATION = "need_validation"
    TWO_FACTOR = "two_factor"
    BANNED = "banned"


CATEGORY_PARENTS: dict[ErrorCategory, Optional[ErrorCategory]] = {
    ErrorCategory.ERROR: None,
    ErrorCategory.REGISTRATION: ErrorCategory.ERROR,
    ErrorCategory.DUPLICATE_NAME: ErrorCategory.REGISTRATION,
    ErrorCategory.MISSING_DEPENDENCY: ErrorCategory.REGISTRATION,
    ErrorCategory.CAPABILITY: ErrorCategory.ERROR,
    ErrorCategory.UNKNOWN_COMPOSER: ErrorCategory.ERROR,
    ErrorCategory.CONFIG: ErrorCategory.ERROR,
    ErrorCategory.TRANSPORT: ErrorCategory.ERROR,
    ErrorCategory.API: ErrorCategory.ERROR,
    ErrorCategory.MALFORMED_RESPONSE: ErrorCategory.API,
    ErrorCategory.CAPTCHA: ErrorCategory.API,
    ErrorCategory.REDIRECT: ErrorCategory.API,
    ErrorCategory.NEED_VALIDATION: ErrorCategory.API,
    ErrorCategory.TWO_FACTOR: ErrorCategory.NEED_VALIDATION,
    ErrorCategory.BANNED: ErrorCategory.NEED_VALIDATION,
}
"""Declared parent of every category. ``ERROR`` is the only root."""


def category_ancestry(category: ErrorCategory) -> list[ErrorCategory]:
    """Return *category* followed by each of its declared ancestors.

    Example::

        >>> category_ancestry(ErrorCategory.BANNED)
        [BANNED, NEED_VALIDATION, API, ERROR]
    """
    chain: list[ErrorCategory] = []
    current: Optional[ErrorCategory] = category
    while current is not None:
        chain.append(current)
        current = CATEGORY_PARENTS[current]
    return chain


def is_subcategory(category: ErrorCategory, ancestor: ErrorCategory) -> bool:
    """Return ``True`` if *category* is *ancestor* or declared beneath it."""
    return ancestor in category_ancestry(category)


class VKClientError(Exception):
    """Base exception for all vkclient errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    category: ClassVar[ErrorCategory] = ErrorCategory.ERROR

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


CategoryLike = Union[ErrorCategory, type[VKClientError]]
"""Anything accepted where a handler category is expected."""


def category_of(value: CategoryLike) -> ErrorCategory:
    """Normalise an :class:`ErrorCategory` or exception class to a category tag.

    Raises:
        TypeError: If *value* is neither a category nor a
            :class:`VKClientError` subclass.
    """
    if isinstance(value, ErrorCategory):
        return value
    if isinstance(value, type) and issubclass(value, VKClientError):
        return value.category
    raise TypeError(f"Expected an ErrorCategory or VKClientError subclass, got {value!r}")


# --- Registration / dispatch errors ---


class RegistrationError(VKClientError):
    """Raised when a plugin cannot be registered or committed."""

    exit_code = EXIT_PLUGIN_ERROR
    category = ErrorCategory.REGISTRATION


class DuplicateNameError(RegistrationError):
    """Raised for an empty, reserved, or already registered plugin name."""

    category = ErrorCategory.DUPLICATE_NAME


class MissingDependencyError(RegistrationError):
    """Raised when a plugin requires another plugin that is neither installed nor queued."""

    category = ErrorCategory.MISSING_DEPENDENCY

    def __init__(self, plugin_name: str, missing: str):
        super().__init__(
            f"Plugin '{plugin_name}' requires the '{missing}' plugin. "
            f"Install '{missing}' first."
        )
        self.plugin_name = plugin_name
        self.missing = missing


class CapabilityError(VKClientError):
    """Raised when a plugin links a capability name that is already taken."""

    exit_code = EXIT_PLUGIN_ERROR
    category = ErrorCategory.CAPABILITY


class UnknownComposerError(VKClientError):
    """Raised when running a composer that was never created."""

    exit_code = EXIT_PLUGIN_ERROR
    category = ErrorCategory.UNKNOWN_COMPOSER


class ConfigError(VKClientError):
    """Raised for configuration problems (invalid JSON, bad option values)."""

    category = ErrorCategory.CONFIG


class TransportError(VKClientError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR
    category = ErrorCategory.TRANSPORT

    def __init__(self, message: str, request: Optional[httpx.Request] = None):
        super().__init__(message)
        self.request = request


# --- Structured API failures ---


class APIError(VKClientError):
    """The API answered with an error object that matched no narrower category.

    Every structured failure carries the error code, the human message, the
    error subtype tag, and the original request/response for diagnostics.

    Args:
        message: Error message taken from the response.
        code: Error code (numeric code or the top-level error marker).
        error_type: Error subtype tag reported by the server (may be ``""``).
        request: The request that produced the failure.
        response: The raw response.
    """

    exit_code = EXIT_API_ERROR
    category = ErrorCategory.API

    def __init__(
        self,
        message: str,
        code: Any = None,
        error_type: str = "",
        request: Optional[httpx.Request] = None,
        response: Optional[httpx.Response] = None,
    ):
        super().__init__(message or "API request failed")
        self.code = code
        self.error_type = error_type
        self.request = request
        self.response = response

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class MalformedResponseError(APIError):
    """The server responded with a body that is not JSON structured data."""

    exit_code = EXIT_MALFORMED_RESPONSE
    category = ErrorCategory.MALFORMED_RESPONSE

    def __init__(self, message: str, raw_body: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.raw_body = raw_body


class CaptchaError(APIError):
    """The server requires a captcha; resend the call with ``captcha_sid`` and ``captcha_key``."""

    exit_code = EXIT_CAPTCHA_REQUIRED
    category = ErrorCategory.CAPTCHA

    def __init__(
        self,
        message: str,
        sid: Any = None,
        image_url: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.sid = sid
        self.image_url = image_url


class RedirectError(APIError):
    """The user has to open ``redirect_uri`` to continue."""

    exit_code = EXIT_REDIRECT_REQUIRED
    category = ErrorCategory.REDIRECT

    def __init__(self, message: str, redirect_uri: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.redirect_uri = redirect_uri


class NeedValidationError(APIError):
    """The account needs validation and the server gave no further detail."""

    exit_code = EXIT_VALIDATION_REQUIRED
    category = ErrorCategory.NEED_VALIDATION


class TwoFactorError(NeedValidationError):
    """The account needs a second factor (SMS or app code)."""

    category = ErrorCategory.TWO_FACTOR

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        phone_mask: str = "",
        redirect_uri: str = "",
        validation_sid: str = "",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.validation_type = validation_type
        self.phone_mask = phone_mask
        self.redirect_uri = redirect_uri
        self.validation_sid = validation_sid


class BannedError(NeedValidationError):
    """The account is banned; ``ban_info`` holds the server's explanation."""

    category = ErrorCategory.BANNED

    def __init__(
        self,
        message: str,
        ban_info: Any = None,
        redirect_uri: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.ban_info = ban_info
        self.redirect_uri = redirect_uri
