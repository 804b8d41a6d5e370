"""API call surface of the :class:`~vkclient.client.VK` facade.

:class:`API` builds method URLs from :class:`~vkclient.models.APIOptions`,
merges the client's default parameters, runs the ``request`` composer,
sends the query through the transport and classifies the answer. Failures
(structured API errors and transport errors) are offered to the client's
exception handlers before they reach the caller.

Example::

    users = await vk.api.call("users.get", {"user_ids": "1"})
    post = await vk.api.post("wall.post", {"message": "hello"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from vkclient.composers import REQUEST_COMPOSER, RequestContext
from vkclient.exceptions import APIError, TransportError

if TYPE_CHECKING:
    from vkclient.client import VK

logger = logging.getLogger(__name__)


class API:
    """Issues method calls for a :class:`~vkclient.client.VK` client."""

    def __init__(self, vk: VK) -> None:
        self.vk = vk

    async def call(
        self,
        method_name: str,
        params: Optional[dict[str, Any]] = None,
        http_method: str = "get",
    ) -> Any:
        """Call API method *method_name* (e.g. ``"messages.send"``).

        Returns:
            The unwrapped payload, or whatever an exception handler
            substituted for a failure.

        Raises:
            APIError: (or a subclass) when no handler recovered the failure.
            TransportError: When the network round trip failed and no
                handler recovered it.
        """
        return await self.extended_query(None, method_name, params, http_method)

    async def post(self, method_name: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Call *method_name* with a POST request."""
        return await self.call(method_name, params, "post")

    async def oauth_query(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        http_method: str = "get",
    ) -> Any:
        """Query the OAuth host (``oauth.<domain>/<path>``) instead of the method host."""
        overrides = {"subdomain": self.vk.options.api.oauth_subdomain, "method_path": ""}
        return await self.extended_query(overrides, path, params, http_method)

    def build_url(self, postfix_path: str = "", overrides: Optional[dict[str, str]] = None) -> str:
        """Build ``{protocol}://{subdomain}.{domain}/{method_path}{postfix_path}``.

        Args:
            postfix_path: Method name or path appended after ``method_path``.
            overrides: Any of ``protocol``, ``subdomain``, ``domain`` and
                ``method_path``; missing keys come from the client options.
        """
        api = self.vk.options.api
        parts = {
            "protocol": api.protocol,
            "subdomain": api.api_subdomain,
            "domain": api.domain,
            "method_path": api.method_path,
            **(overrides or {}),
        }
        return (
            f"{parts['protocol']}://{parts['subdomain']}.{parts['domain']}/"
            f"{parts['method_path']}{postfix_path}"
        )

    async def extended_query(
        self,
        overrides: Optional[dict[str, str]] = None,
        postfix_path: str = "",
        params: Optional[dict[str, Any]] = None,
        http_method: str = "get",
    ) -> Any:
        """Send a fully customisable query.

        The ``request`` composer (if any plugin created one) sees a
        :class:`~vkclient.composers.RequestContext` first. A middleware that
        returns without calling ``next`` answers the call itself and no
        request is sent.
        """
        ctx = RequestContext(
            url=self.build_url(postfix_path, overrides),
            http_method=http_method,
            params={**self.vk.default_params, **(params or {})},
            method_name=postfix_path,
        )

        if self.vk.has_composer(REQUEST_COMPOSER):
            result = await self.vk.compose(REQUEST_COMPOSER, ctx)
            if result is not ctx:
                logger.debug("Request for '%s' answered by middleware", postfix_path)
                return result

        return await self.send(ctx)

    async def send(self, ctx: RequestContext) -> Any:
        """Send *ctx* through the transport and classify the response."""
        logger.debug("%s %s", ctx.http_method.upper(), ctx.url)
        try:
            response, request = await self.vk.transport.send(ctx.url, ctx.http_method, ctx.params)
            return self.vk.classifier.classify(response, request)
        except (APIError, TransportError) as exc:
            logger.debug("Call to '%s' failed: %r", ctx.method_name, exc)
            return await self.vk.process_handlers(exc)
