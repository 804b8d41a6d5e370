"""Built-in ``auth`` plugin -- token sessions.

The plugin takes an access token (or reuses the one in the stored session),
works out who owns it and injects it into every query through the
``request`` composer.

Options:
    access_token: Token to use. Without a token and without a stored
        session the client stays anonymous.
    save_session: Persist the resolved session (default ``True``).
    reauth: Ignore the stored session (default ``False``).

Owner resolution follows the API: ``users.get`` answers with the token's
user, or with an empty list for a community token, in which case
``groups.getById`` names the community.

Requires the ``storage`` plugin, which is always dispatched first and makes
``vk.session_store`` available before this plugin starts enabling.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from vkclient.composers import REQUEST_COMPOSER, Next, RequestContext
from vkclient.exceptions import APIError
from vkclient.models import Session
from vkclient.plugins.base import Plugin

logger = logging.getLogger(__name__)


class AuthPlugin(Plugin):
    """Resolves and injects the access token."""

    session: Optional[Session] = None

    @property
    def name(self) -> str:
        return "auth"

    @property
    def description(self) -> str:
        return "Access-token sessions"

    @property
    def requirements(self) -> frozenset[str]:
        return frozenset({"storage"})

    @property
    def default_options(self) -> dict[str, Any]:
        return {"access_token": None, "save_session": True, "reauth": False}

    async def on_enable(self, options: dict[str, Any]) -> None:
        self.vk.use(REQUEST_COMPOSER, self.inject_token)

        store = self.vk.capability("session_store")
        token = options.get("access_token")

        session: Optional[Session] = None
        if not options.get("reauth"):
            stored = store.load()
            if stored is not None and (not token or stored.access_token == token):
                session = stored
        if session is None and token:
            session = Session(access_token=token)
        if session is None:
            logger.info("No access token configured, calls are sent anonymously")
            return

        self.session = session
        if not session.is_resolved:
            self.session = await self.resolve_owner(session)
            if options.get("save_session"):
                store.save(self.session)

    async def resolve_owner(self, session: Session) -> Session:
        """Fill in the user or group that owns ``session.access_token``.

        Raises:
            APIError: If the token belongs to neither a user nor a group.
        """
        auth = self.vk.options.auth
        params = {"access_token": session.access_token}

        users = await self.vk.api.call(auth.users_method, params)
        if isinstance(users, list) and users:
            user = users[0]
            logger.debug("Token belongs to user %s", user.get("id"))
            return session.model_copy(
                update={
                    "user_id": user.get("id"),
                    "first_name": user.get("first_name"),
                    "last_name": user.get("last_name"),
                }
            )

        groups = await self.vk.api.call(auth.groups_method, params)
        if isinstance(groups, dict):
            groups = groups.get("groups", [])
        if isinstance(groups, list) and groups:
            group = groups[0]
            logger.debug("Token belongs to group %s", group.get("id"))
            return session.model_copy(
                update={
                    "group_id": group.get("id"),
                    "group_name": group.get("name"),
                    "group_screen": group.get("screen_name"),
                }
            )

        raise APIError("access_token is not valid")

    async def inject_token(self, ctx: RequestContext, next: Next) -> Any:
        if self.session is not None:
            ctx.params.setdefault("access_token", self.session.access_token)
        return await next()

    def capabilities(self) -> dict[str, Any]:
        return {"auth": self}
