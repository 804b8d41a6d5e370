"""Plugin registry -- two-phase install (queue, then commit).

:class:`PluginRegistry` is the central coordinator for the plugin system.
Plugins are usually *queued* first and enabled together by :meth:`commit`;
queuing lets a plugin declared later place itself in front of one that is
already queued (``setup_after``), which an eager install cannot do.

Registration-time rules:

* A name may be registered once. Empty and reserved names are rejected.
* Every requirement must already be installed or queued.
* ``setup_after`` naming a queued plugin splices the newcomer in at that
  plugin's position; otherwise the newcomer is appended.

At commit time the queue is checked once as a dependency graph: plugins are
dispatched in queue order, except that a plugin never starts before a
queued plugin it requires.
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from vkclient.exceptions import DuplicateNameError, MissingDependencyError, RegistrationError
from vkclient.plugins.base import RESERVED_PLUGIN_NAMES, Plugin, PluginDescriptor

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "vkclient.plugins"
"""Entry-point group scanned by :func:`discover_plugin_classes`."""


@dataclass
class _QueueEntry:
    descriptor: PluginDescriptor
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.descriptor.name


class PluginRegistry:
    """Queues, orders and enables plugin descriptors.

    Example:
        Typical usage::

            registry = PluginRegistry()
            registry.register(storage_descriptor)
            registry.register(auth_descriptor, {"access_token": token})
            await registry.commit({"auth": {"save_session": False}})
    """

    def __init__(self) -> None:
        self._queue: list[_QueueEntry] = []
        self._installed: list[str] = []
        self._pending: list[asyncio.Future[Any]] = []
        self._tasks: dict[str, asyncio.Future[Any]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def is_installed(self, name: str) -> bool:
        return name in self._installed

    def is_queued(self, name: str) -> bool:
        return any(entry.name == name for entry in self._queue)

    @property
    def queued_names(self) -> list[str]:
        """Names of queued plugins in queue order."""
        return [entry.name for entry in self._queue]

    @property
    def installed_names(self) -> list[str]:
        """Names of installed plugins in the order they were marked installed."""
        return list(self._installed)

    async def wait_enabled(self, name: str) -> None:
        """Wait until the enable of plugin *name* has settled.

        Returns at once for a plugin that is not being enabled. A failed
        enable is not re-raised here; :meth:`commit` reports it.
        """
        task = self._tasks.get(name)
        if task is not None and not task.done():
            await asyncio.wait([task])

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        descriptor: PluginDescriptor,
        install_options: Optional[dict[str, Any]] = None,
        deferred: bool = True,
    ) -> Any:
        """Queue *descriptor*, or install it right away.

        Args:
            descriptor: The plugin to register.
            install_options: Options merged over ``descriptor.defaults``.
            deferred: When ``True`` (the default) the plugin is queued and
                nothing runs until :meth:`commit`. When ``False`` it is
                marked installed and ``enable_fn`` is started immediately;
                this requires a running event loop.

        Returns:
            ``None`` for a queued plugin. For an immediate install, the
            scheduled :class:`asyncio.Task` running ``enable_fn``, whether
            that function is synchronous or not. :meth:`commit` also waits
            for it.

        Raises:
            DuplicateNameError: If the name is empty, reserved, installed or
                queued.
            MissingDependencyError: If a requirement is neither installed
                nor queued.
            RegistrationError: If an immediate install is attempted outside
                a running event loop.
        """
        options = dict(install_options or {})
        name = descriptor.name

        with self._lock:
            if not name or name in RESERVED_PLUGIN_NAMES:
                raise DuplicateNameError("Plugin must have a unique, non-reserved name")
            if self.is_installed(name):
                raise DuplicateNameError(f"Plugin '{name}' is already installed")
            if self.is_queued(name):
                raise DuplicateNameError(f"Plugin '{name}' is already queued")

            for required in sorted(descriptor.requirements):
                if self.is_installed(required) or self.is_queued(required):
                    continue
                raise MissingDependencyError(name, required)

            if deferred:
                entry = _QueueEntry(descriptor, options)
                position = self._position_of(descriptor.setup_after)
                if position is None:
                    self._queue.append(entry)
                else:
                    self._queue.insert(position, entry)
                logger.debug("Queued plugin '%s' (%d queued)", name, len(self._queue))
                return None

            try:
                asyncio.get_running_loop()
            except RuntimeError:
                raise RegistrationError(
                    f"Plugin '{name}' cannot be installed immediately outside a running event loop"
                ) from None
            self._installed.append(name)

        logger.info("Installing plugin '%s' immediately", name)
        task = self._dispatch(descriptor, {**descriptor.defaults, **options})
        self._pending.append(task)
        return task

    def _position_of(self, name: Optional[str]) -> Optional[int]:
        if name is None:
            return None
        for index, entry in enumerate(self._queue):
            if entry.name == name:
                return index
        return None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def commit(self, overrides: Optional[dict[str, dict[str, Any]]] = None) -> None:
        """Enable every queued plugin and wait for all pending enables.

        Each queued plugin is marked installed and its ``enable_fn`` started
        with ``{**defaults, **install_options, **overrides[name]}``. All
        enables are started before any is awaited, and every started enable
        runs to completion even when a sibling fails. The queue is drained.

        Args:
            overrides: Per-plugin options keyed by plugin name.

        Raises:
            RegistrationError: If the queued plugins' requirements form a
                cycle (nothing is enabled in that case).
            Exception: The first exception, in dispatch order, raised by
                any ``enable_fn``. It is raised once every enable has
                settled. Plugins of the batch stay installed.
        """
        overrides = overrides or {}

        with self._lock:
            batch = self._ordered_queue()
            self._queue.clear()
            pending = self._pending
            self._pending = []
            self._installed.extend(entry.name for entry in batch)

        dispatched: list[asyncio.Future[Any]] = []
        for entry in batch:
            options = {
                **entry.descriptor.defaults,
                **entry.options,
                **overrides.get(entry.name, {}),
            }
            logger.debug("Enabling plugin '%s'", entry.name)
            dispatched.append(self._dispatch(entry.descriptor, options))

        tasks = [*dispatched, *pending]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        if batch:
            logger.info("Enabled plugins: %s", ", ".join(entry.name for entry in batch))

    def _ordered_queue(self) -> list[_QueueEntry]:
        """Return the queue reordered so requirements come before dependents.

        Among plugins whose queued requirements are satisfied, the one
        earliest in the queue goes first, so the queue order is kept
        wherever the dependency graph allows it.
        """
        names = {entry.name for entry in self._queue}
        remaining = list(self._queue)
        ordered: list[_QueueEntry] = []
        placed: set[str] = set()

        while remaining:
            for entry in remaining:
                if (entry.descriptor.requirements & names) <= placed:
                    ordered.append(entry)
                    placed.add(entry.name)
                    remaining.remove(entry)
                    break
            else:
                stuck = ", ".join(entry.name for entry in remaining)
                raise RegistrationError(f"Plugin requirements form a cycle: {stuck}")

        return ordered

    def _dispatch(
        self, descriptor: PluginDescriptor, options: dict[str, Any]
    ) -> asyncio.Future[Any]:
        """Start ``enable_fn`` as a task so a synchronous raise fails the task."""

        async def run() -> Any:
            result = descriptor.enable_fn(options)
            if inspect.isawaitable(result):
                result = await result
            return result

        task = asyncio.ensure_future(run())
        self._tasks[descriptor.name] = task
        return task


def discover_plugin_classes(
    enabled: Iterable[str] = (),
    disabled: Iterable[str] = (),
) -> list[type[Plugin]]:
    """Load plugin classes registered under the ``vkclient.plugins`` entry-point group.

    Third-party packages register plugins in their ``pyproject.toml``::

        [project.entry-points."vkclient.plugins"]
        my-plugin = "my_package.plugin:MyPlugin"

    Args:
        enabled: When non-empty, only these entry-point names are loaded.
        disabled: Entry-point names that are never loaded.

    Returns:
        The loaded classes, in entry-point order. Entry points that fail to
        import or do not name a :class:`Plugin` subclass are logged as
        warnings and skipped.
    """
    enabled_set = set(enabled)
    disabled_set = set(disabled)
    classes: list[type[Plugin]] = []

    for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
        if enabled_set and ep.name not in enabled_set:
            logger.debug("Plugin '%s' not in enabled list, skipping", ep.name)
            continue
        if ep.name in disabled_set:
            logger.debug("Plugin '%s' is disabled, skipping", ep.name)
            continue

        try:
            plugin_cls = ep.load()
        except Exception as exc:
            logger.warning("Failed to load plugin '%s': %s", ep.name, exc)
            continue
        if not (isinstance(plugin_cls, type) and issubclass(plugin_cls, Plugin)):
            logger.warning("Entry point '%s' is not a Plugin subclass, skipping", ep.name)
            continue
        classes.append(plugin_cls)

    return classes
