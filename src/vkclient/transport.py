"""HTTP transport -- the network round trip behind every API call.

:class:`HttpxTransport` wraps :class:`httpx.AsyncClient`. It sends one
request and hands back the ``(response, request)`` pair whatever the HTTP
status, because the API reports most failures inside the body and the
:class:`~vkclient.classifier.ResponseClassifier` decides what they mean.
Network-level failures are retried with exponential backoff up to
``max_retries`` times and then raised as
:class:`~vkclient.exceptions.TransportError`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from vkclient.exceptions import TransportError
from vkclient.models import RequestOptions

logger = logging.getLogger(__name__)


class HttpxTransport:
    """Asynchronous transport backed by :class:`httpx.AsyncClient`.

    Args:
        options: Timeout, SSL and retry settings.
        transport: Optional custom :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        async with HttpxTransport() as transport:
            response, request = await transport.send(url, "get", {"v": "5.101"})
    """

    def __init__(
        self,
        options: Optional[RequestOptions] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._options = options or RequestOptions()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> HttpxTransport:
        self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._options.timeout,
                verify=self._options.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    async def send(
        self,
        url: str,
        http_method: str = "get",
        params: Optional[dict[str, Any]] = None,
    ) -> tuple[httpx.Response, httpx.Request]:
        """Send one request and return ``(response, request)``.

        Parameters travel in the query string for GET and as a form body
        for POST.

        Raises:
            TransportError: On connection, timeout or network errors after
                all retries.
        """
        if self._client is None:
            self.open()
        assert self._client is not None

        method = http_method.upper()
        params = {k: v for k, v in (params or {}).items() if v is not None}
        kwargs: dict[str, Any] = {"method": method, "url": url}
        if method == "POST":
            kwargs["data"] = params
        else:
            kwargs["params"] = params

        max_retries = self._options.max_retries
        for attempt in range(max_retries + 1):
            try:
                response = await self._client.request(**kwargs)
                return response, response.request
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise TransportError(
                    f"Connection failed after {max_retries + 1} attempts: {exc}",
                    request=_request_of(exc),
                ) from exc

        raise TransportError("Request failed after all retries")  # pragma: no cover


def _request_of(exc: httpx.RequestError) -> Optional[httpx.Request]:
    try:
        return exc.request
    except RuntimeError:
        return None
