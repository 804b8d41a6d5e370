"""Persistent session store.

Stores the resolved :class:`~vkclient.models.Session` in
``~/.local/share/vkclient/session.json`` (XDG) or any path the ``storage``
plugin is configured with.  Files are written atomically with ``0o600``
permissions so that access tokens are never world-readable, even
momentarily.

See Also:
    :mod:`vkclient.plugins.storage` -- the plugin that exposes this store.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from vkclient.config import atomic_write, default_session_file
from vkclient.models import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """Read/write one session record on disk.

    Args:
        path: Session file location. Defaults to
            :func:`~vkclient.config.default_session_file`.

    Example::

        store = SessionStore("/tmp/session.json")
        store.save(Session(access_token="tok", user_id=1))
        assert store.load().user_id == 1
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self._path = Path(path) if path is not None else default_session_file()

    @property
    def path(self) -> Path:
        """The filesystem path of the session file."""
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def save(self, session: Session) -> None:
        """Persist *session* atomically with ``0o600`` permissions.

        Raises:
            OSError: If the file cannot be written.
        """
        data = session.model_dump(mode="json", exclude_none=True)
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)
        logger.debug("Saved session to %s", self._path)

    def load(self) -> Optional[Session]:
        """Load the stored session.

        Returns:
            The deserialised :class:`~vkclient.models.Session`, or ``None``
            if the file does not exist or cannot be parsed.
        """
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return Session.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return None

    def clear(self) -> None:
        """Delete the session file if it exists."""
        if self._path.is_file():
            self._path.unlink()
