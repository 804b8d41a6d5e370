"""The :class:`VK` client facade.

:class:`VK` owns the option tree, the default query parameters, the plugin
registry, the composer stack, the exception handler registry, the transport
and the :class:`~vkclient.api.API` call surface. It is the only object
plugins and call sites talk to.

Example::

    async with VK(ClientOptions(defaults={"v": "5.131"})) as vk:
        await vk.setup({"auth": {"access_token": token}})
        me = await vk.api.call("users.get")

Plugins expose values on the client through a capability table rather than
by setting attributes: everything a plugin returns from
:meth:`~vkclient.plugins.base.Plugin.capabilities` is linked with
:meth:`VK.link` and then readable as ``vk.<name>``.
"""

from __future__ import annotations

import inspect
import logging
from functools import partial
from typing import Any, Optional, Union

from vkclient.api import API
from vkclient.classifier import ResponseClassifier
from vkclient.composers import Composer, ComposerStack, Middleware
from vkclient.exceptions import CapabilityError, CategoryLike, RegistrationError
from vkclient.handlers import ExceptionHandler, ExceptionHandlerRegistry, HandlerHandle
from vkclient.models import ClientOptions
from vkclient.plugins.auth import AuthPlugin
from vkclient.plugins.base import Plugin, PluginDescriptor
from vkclient.plugins.registry import PluginRegistry, discover_plugin_classes
from vkclient.plugins.storage import StoragePlugin
from vkclient.transport import HttpxTransport

logger = logging.getLogger(__name__)

DEFAULT_PLUGINS: tuple[type[Plugin], ...] = (StoragePlugin, AuthPlugin)
"""Plugins queued by every client unless ``install_defaults=False``."""


class VK:
    """Client facade for the API.

    Args:
        options: Client options (a model or a plain mapping).
        transport: Custom transport; defaults to an :class:`HttpxTransport`
            built from ``options.request``.
        install_defaults: Queue the built-in ``storage`` and ``auth``
            plugins.
    """

    def __init__(
        self,
        options: Optional[Union[ClientOptions, dict[str, Any]]] = None,
        transport: Optional[HttpxTransport] = None,
        install_defaults: bool = True,
    ) -> None:
        self._capabilities: dict[str, Any] = {}
        self.options = ClientOptions()
        if options is not None:
            self.set_options(options)
        self.default_params: dict[str, Any] = {}
        self.defaults(self.options.defaults)

        self.plugins = PluginRegistry()
        self.composers = ComposerStack()
        self.handlers = ExceptionHandlerRegistry()
        self.transport = transport or HttpxTransport(self.options.request)
        self.api = API(self)

        if install_defaults:
            for plugin_cls in DEFAULT_PLUGINS:
                self.extend(plugin_cls)

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> VK:
        self.transport.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying transport."""
        await self.transport.aclose()

    # ------------------------------------------------------------------ #
    # Options
    # ------------------------------------------------------------------ #

    def set_options(self, options: Union[ClientOptions, dict[str, Any]]) -> VK:
        """Overlay *options* on the current options (top-level keys replace)."""
        if isinstance(options, ClientOptions):
            changes = options.model_dump(exclude_unset=True)
        else:
            changes = dict(options)
        merged = {**self.options.model_dump(), **changes}
        self.options = ClientOptions.model_validate(merged)
        return self

    def defaults(self, params: dict[str, Any]) -> VK:
        """Overlay *params* on the parameters sent with every query."""
        self.default_params = {**self.default_params, **params}
        return self

    @property
    def classifier(self) -> ResponseClassifier:
        return ResponseClassifier(self.options.errors)

    # ------------------------------------------------------------------ #
    # Plugins
    # ------------------------------------------------------------------ #

    def extend(
        self,
        plugin_cls: type[Plugin],
        options: Optional[dict[str, Any]] = None,
        deferred: bool = True,
    ) -> Any:
        """Register a plugin class.

        Args:
            plugin_cls: The :class:`~vkclient.plugins.base.Plugin` subclass.
            options: Install options for the plugin.
            deferred: Queue the plugin until :meth:`setup` (default) or
                enable it right away (inside a running event loop).

        Returns:
            ``None`` when queued; the pending enable task otherwise.

        Raises:
            RegistrationError: See
                :meth:`~vkclient.plugins.registry.PluginRegistry.register`.
        """
        return self._register(plugin_cls(self, options), options, deferred)

    def _register(self, plugin: Plugin, options: Optional[dict[str, Any]], deferred: bool) -> Any:
        descriptor = PluginDescriptor(
            name=plugin.name,
            enable_fn=partial(self._enable_plugin, plugin),
            requirements=frozenset(plugin.requirements),
            setup_after=plugin.setup_after,
            defaults=dict(plugin.default_options),
        )
        return self.plugins.register(descriptor, options, deferred)

    async def _enable_plugin(self, plugin: Plugin, options: dict[str, Any]) -> Any:
        # Capabilities of required plugins are linked once their enable settles.
        for required in sorted(plugin.requirements):
            await self.plugins.wait_enabled(required)
        result = plugin.on_enable(options)
        if inspect.isawaitable(result):
            result = await result
        for name, value in plugin.capabilities().items():
            self.link(name, value)
        logger.info("Enabled plugin '%s' v%s", plugin.name, plugin.version)
        return result

    def extend_discovered(self) -> list[str]:
        """Queue every plugin found in the ``vkclient.plugins`` entry-point group.

        ``options.discovery`` filters what is loaded. Plugins that cannot be
        registered are logged as warnings and skipped.

        Returns:
            Names of the plugins that were queued.
        """
        queued: list[str] = []
        discovery = self.options.discovery
        for plugin_cls in discover_plugin_classes(discovery.enabled, discovery.disabled):
            plugin = plugin_cls(self)
            try:
                self._register(plugin, None, deferred=True)
            except RegistrationError as exc:
                logger.warning("Skipping plugin '%s': %s", plugin.name, exc)
                continue
            queued.append(plugin.name)
        return queued

    def has_plugin(self, name: str) -> bool:
        return self.plugins.is_installed(name)

    def plugin_in_queue(self, name: str) -> bool:
        return self.plugins.is_queued(name)

    async def setup(self, overrides: Optional[dict[str, dict[str, Any]]] = None) -> VK:
        """Enable all queued plugins.

        Per-plugin options come from ``options.plugins`` overlaid with
        *overrides*.

        Returns:
            The client itself, once every plugin has been enabled.
        """
        per_plugin = {name: dict(opts) for name, opts in self.options.plugins.items()}
        for name, opts in (overrides or {}).items():
            per_plugin[name] = {**per_plugin.get(name, {}), **opts}
        await self.plugins.commit(per_plugin)
        return self

    # ------------------------------------------------------------------ #
    # Capabilities
    # ------------------------------------------------------------------ #

    def link(self, name: str, value: Any) -> VK:
        """Expose *value* as ``vk.<name>``.

        Raises:
            CapabilityError: If *name* is already linked or is a client
                attribute.
        """
        if self.linked(name):
            raise CapabilityError(f"Capability '{name}' already exists")
        self._capabilities[name] = value
        return self

    def linked(self, name: str) -> bool:
        return (
            name in self._capabilities
            or name in self.__dict__
            or hasattr(type(self), name)
        )

    def capability(self, name: str) -> Any:
        """Return the value linked under *name*.

        Raises:
            CapabilityError: If nothing is linked under *name*.
        """
        try:
            return self._capabilities[name]
        except KeyError:
            raise CapabilityError(f"Capability '{name}' is not linked") from None

    def __getattr__(self, name: str) -> Any:
        capabilities = self.__dict__.get("_capabilities", {})
        if name in capabilities:
            return capabilities[name]
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # ------------------------------------------------------------------ #
    # Exception handlers
    # ------------------------------------------------------------------ #

    def handle(self, category: CategoryLike, handler: ExceptionHandler) -> HandlerHandle:
        """Append *handler* for *category* (and every category beneath it)."""
        return self.handlers.handle(category, handler)

    def handle_first(self, category: CategoryLike, handler: ExceptionHandler) -> HandlerHandle:
        """Prepend *handler* for *category*."""
        return self.handlers.handle_first(category, handler)

    def remove_handler(self, handle: HandlerHandle) -> None:
        self.handlers.unregister(handle)

    def exception_handlers(self, category: CategoryLike) -> list[ExceptionHandler]:
        return self.handlers.handlers_for(category)

    async def process_handlers(self, error: BaseException, category: Optional[CategoryLike] = None) -> Any:
        """Offer *error* to the exception handlers; re-raise it if none recovers it."""
        return await self.handlers.resolve(error, category)

    # ------------------------------------------------------------------ #
    # Composers
    # ------------------------------------------------------------------ #

    def has_composer(self, composer_id: str) -> bool:
        return self.composers.has(composer_id)

    def get_composer(self, composer_id: str) -> Optional[Composer]:
        return self.composers.get(composer_id)

    def add_composer(self, composer_id: str, stack: Optional[list[Middleware]] = None) -> VK:
        """Create *composer_id* with *stack*; no-op if the composer already exists."""
        if not self.composers.has(composer_id):
            composer = self.composers.ensure(composer_id)
            for middleware in stack or []:
                composer.use(middleware)
        return self

    def use(self, composer_id: str, middleware: Middleware) -> VK:
        """Append *middleware* to *composer_id*, creating the composer if needed."""
        self.composers.append(composer_id, middleware)
        return self

    async def compose(self, composer_id: str, context: Any) -> Any:
        """Run composer *composer_id* against *context*.

        Raises:
            UnknownComposerError: If the composer was never created.
        """
        return await self.composers.run(composer_id, context)
