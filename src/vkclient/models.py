"""Canonical Pydantic models shared across all vkclient modules.

**Option models** -- the option tree held by the :class:`~vkclient.client.VK`
facade and persisted in the user's ``config.json``:
    :class:`APIOptions`, :class:`AuthOptions`, :class:`ErrorsOptions`,
    :class:`RequestOptions`, and :class:`ClientOptions`.

**Session model** -- :class:`Session`, the record stored by
:class:`~vkclient.session.SessionStore` once a token owner is resolved.

Models that plugins may extend use ``extra="allow"`` so unknown keys are
preserved in ``model_extra``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_API_VERSION = "5.101"
DEFAULT_LANG = "ru"


class APIOptions(BaseModel):
    """Where API and OAuth requests are sent.

    Method URLs are built as
    ``{protocol}://{api_subdomain}.{domain}/{method_path}{method}``.
    """

    domain: str = "vk.com"
    protocol: str = "https"
    api_subdomain: str = "api"
    oauth_subdomain: str = "oauth"
    method_path: str = "method/"


class AuthOptions(BaseModel):
    """Method names used by the ``auth`` plugin to resolve a token owner."""

    groups_method: str = "groups.getById"
    users_method: str = "users.get"
    apps_method: str = "apps.get"
    password_grant_type: str = "password"
    device_id: str = ""


class ErrorsOptions(BaseModel):
    """Sentinels and codes the response classifier discriminates on."""

    captcha_error: str = Field(
        default="need_captcha", description="Top-level error marker for captcha"
    )
    captcha_error_code: int = Field(
        default=14, description="Nested error code for captcha"
    )
    validation_error: str = Field(
        default="need_validation", description="Top-level error marker for validation"
    )
    redirect_error_code: int = Field(
        default=17, description="Nested error code that requires a redirect"
    )


class RequestOptions(BaseModel):
    """HTTP settings applied by the transport to every call."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=0, description="Retries on connection errors (transport only)"
    )


class DiscoveryOptions(BaseModel):
    """Allow/deny lists for plugins discovered through entry points."""

    enabled: list[str] = Field(default_factory=list)
    disabled: list[str] = Field(default_factory=list)


class ClientOptions(BaseModel):
    """Complete option tree of a :class:`~vkclient.client.VK` instance.

    ``defaults`` are merged into the parameters of every API query. Plugins
    may keep their own options as extra top-level keys.

    Example::

        ClientOptions(defaults={"v": "5.131"}, errors=ErrorsOptions(captcha_error_code=14))
    """

    model_config = ConfigDict(extra="allow")

    mode: str = "default"
    defaults: dict[str, Any] = Field(
        default_factory=lambda: {"v": DEFAULT_API_VERSION, "lang": DEFAULT_LANG}
    )
    api: APIOptions = Field(default_factory=APIOptions)
    auth: AuthOptions = Field(default_factory=AuthOptions)
    errors: ErrorsOptions = Field(default_factory=ErrorsOptions)
    request: RequestOptions = Field(default_factory=RequestOptions)
    plugins: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Per-plugin options passed to setup()"
    )
    discovery: DiscoveryOptions = Field(default_factory=DiscoveryOptions)


class Session(BaseModel):
    """A resolved session: the access token and who it belongs to.

    Either the user fields or the group fields are populated, depending on
    whether the token is a user token or a community token.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    user_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    group_id: Optional[int] = None
    group_name: Optional[str] = None
    group_screen: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        """Whether the token owner (user or group) is known."""
        return self.user_id is not None or self.group_id is not None
