"""vkclient -- an extensible asynchronous client for the VK API.

The :class:`VK` facade issues method calls, classifies error responses into
typed failures and lets plugins hook into every step: middleware pipelines
(composers), typed error recovery (exception handlers) and capabilities
exposed on the client.

Typical usage::

    from vkclient import VK, ErrorCategory

    async with VK() as vk:
        await vk.setup({"auth": {"access_token": token}})
        vk.handle(ErrorCategory.CAPTCHA, solve_captcha)
        users = await vk.api.call("users.get", {"user_ids": "1"})

Modules:
    client: The :class:`VK` facade.
    api: URL building, the ``request`` composer and response handling.
    classifier: Response classification into structured failures.
    composers: Named middleware pipelines.
    handlers: Exception handler registry.
    plugins: Plugin base class, registry and built-in plugins.
    exceptions: Exception hierarchy with categories and exit codes.
    models: Pydantic option and session models.
    config: XDG-aware configuration loading.
    app: Typer CLI entry point.
"""

__version__ = "0.4.0"

from vkclient.client import VK  # noqa: E402
from vkclient.exceptions import (  # noqa: E402
    APIError,
    BannedError,
    CaptchaError,
    ErrorCategory,
    MalformedResponseError,
    NeedValidationError,
    RedirectError,
    TwoFactorError,
    VKClientError,
)
from vkclient.models import ClientOptions  # noqa: E402

__all__ = [
    "VK",
    "ClientOptions",
    "ErrorCategory",
    "VKClientError",
    "APIError",
    "MalformedResponseError",
    "CaptchaError",
    "RedirectError",
    "NeedValidationError",
    "TwoFactorError",
    "BannedError",
]
