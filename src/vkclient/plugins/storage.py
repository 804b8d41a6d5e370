"""Built-in ``storage`` plugin -- exposes the session store on the client.

Options:
    session_file: Path of the session file. Defaults to
        ``<data_dir>/session.json``.

Once enabled, ``vk.session_store`` is a :class:`~vkclient.session.SessionStore`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from vkclient.plugins.base import Plugin
from vkclient.session import SessionStore

logger = logging.getLogger(__name__)


class StoragePlugin(Plugin):
    """Provides session persistence to other plugins."""

    store: Optional[SessionStore] = None

    @property
    def name(self) -> str:
        return "storage"

    @property
    def description(self) -> str:
        return "Session persistence"

    @property
    def default_options(self) -> dict[str, Any]:
        return {"session_file": None}

    async def on_enable(self, options: dict[str, Any]) -> None:
        self.store = SessionStore(options.get("session_file"))
        logger.debug("Session store at %s", self.store.path)

    def capabilities(self) -> dict[str, Any]:
        return {"session_store": self.store}
