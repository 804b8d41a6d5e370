"""Response classification -- turns an API response into a payload or a typed failure.

:class:`ResponseClassifier` inspects a completed request/response pair.
Bodies that are not JSON raise
:class:`~vkclient.exceptions.MalformedResponseError`. Bodies without an
``error`` marker yield their payload (the ``response`` field when present).
Everything else is discriminated in a fixed priority order -- captcha,
validation (ban / two-factor / bare), redirect, generic -- and raised as
exactly one :class:`~vkclient.exceptions.APIError` subclass.

The sentinels and codes come from :class:`~vkclient.models.ErrorsOptions`.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from vkclient.exceptions import (
    APIError,
    BannedError,
    CaptchaError,
    MalformedResponseError,
    NeedValidationError,
    RedirectError,
    TwoFactorError,
)
from vkclient.models import ErrorsOptions


def decode_body(response: httpx.Response) -> Any:
    """Return the parsed JSON body of *response*, or its text if it is not JSON."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def extract_error_details(body: dict[str, Any]) -> tuple[Any, str, str]:
    """Pull ``(code, message, error_type)`` out of an error body.

    A nested error object's ``message`` wins over its ``error_msg``; either
    wins over a top-level ``error_description``. When the body has both an
    ``error`` marker and a top-level ``error_description``, the top-level
    fields overwrite the nested ones and the marker itself becomes the code.
    """
    code: Any = None
    message = ""
    error_type = ""
    nested = body.get("error")

    if isinstance(nested, dict) and nested.get("message"):
        code = nested.get("error_code")
        message = nested["message"]
        error_type = nested.get("error_type") or ""
    elif isinstance(nested, dict) and nested.get("error_msg"):
        code = nested.get("error_code")
        message = nested["error_msg"]
        error_type = nested.get("error_type") or ""
    elif body.get("error_description"):
        code = body.get("error_code")
        message = body["error_description"]
        error_type = body.get("error_type") or ""

    # A top-level description overrides a nested error object.
    if nested and body.get("error_description"):
        code = nested
        message = body["error_description"]
        error_type = body.get("error_type") or ""

    return code, message, error_type


class ResponseClassifier:
    """Classifies API responses into payloads or structured failures.

    Args:
        errors: Sentinels and codes to discriminate on. Defaults to
            :class:`~vkclient.models.ErrorsOptions`.

    Example::

        classifier = ResponseClassifier()
        payload = classifier.classify(response, response.request)
    """

    def __init__(self, errors: Optional[ErrorsOptions] = None) -> None:
        self.errors = errors or ErrorsOptions()

    def classify(self, response: httpx.Response, request: Optional[httpx.Request] = None) -> Any:
        """Return the payload of *response* or raise its failure.

        Raises:
            MalformedResponseError: The body is not a JSON object or array.
            CaptchaError: A captcha must be solved.
            BannedError: The account is banned.
            TwoFactorError: The account needs a second factor.
            NeedValidationError: The account needs validation (no details).
            RedirectError: The user must follow a redirect URI.
            APIError: Any other error body.
        """
        body = decode_body(response)

        if not isinstance(body, (dict, list)):
            raise MalformedResponseError(
                "Server responded with bad data (not a json)",
                raw_body=body,
                request=request,
                response=response,
            )

        if isinstance(body, list) or not body.get("error"):
            return self.unwrap(body)

        self._raise_for_error(body, request, response)

    @staticmethod
    def unwrap(body: Any) -> Any:
        """Return ``body["response"]`` when present, otherwise *body*."""
        if isinstance(body, dict) and body.get("response") is not None:
            return body["response"]
        return body

    def _raise_for_error(
        self,
        body: dict[str, Any],
        request: Optional[httpx.Request],
        response: httpx.Response,
    ) -> None:
        code, message, error_type = extract_error_details(body)
        marker = body["error"]
        nested: dict[str, Any] = marker if isinstance(marker, dict) else {}
        common: dict[str, Any] = {
            "code": code,
            "error_type": error_type,
            "request": request,
            "response": response,
        }

        if marker == self.errors.captcha_error or (
            nested.get("error_code") == self.errors.captcha_error_code
        ):
            raise CaptchaError(
                message,
                sid=nested.get("captcha_sid", body.get("captcha_sid")),
                image_url=nested.get("captcha_img", body.get("captcha_img")),
                **common,
            )

        if marker == self.errors.validation_error:
            if body.get("ban_info"):
                raise BannedError(
                    message,
                    ban_info=body["ban_info"],
                    redirect_uri=body.get("redirect_uri"),
                    **common,
                )
            if body.get("validation_type"):
                raise TwoFactorError(
                    message,
                    validation_type=body["validation_type"],
                    phone_mask=body.get("phone_mask") or "",
                    redirect_uri=body.get("redirect_uri") or "",
                    validation_sid=body.get("validation_sid") or "",
                    **common,
                )
            raise NeedValidationError(message, **common)

        if nested.get("error_code") == self.errors.redirect_error_code:
            raise RedirectError(
                message,
                redirect_uri=nested.get("redirect_uri", body.get("redirect_uri")),
                **common,
            )

        raise APIError(message, **common)
