"""Base class and descriptor for vkclient plugins.

Every plugin must subclass :class:`Plugin` and implement the :attr:`name`
property. The remaining members (``requirements``, ``setup_after``,
``default_options``, ``on_enable``, ``capabilities``) are optional.

Plugins are handed to :meth:`VK.extend <vkclient.client.VK.extend>`, which
instantiates them with the client and their install options and registers a
:class:`PluginDescriptor` with the :class:`~vkclient.plugins.registry.PluginRegistry`.

Example:
    Minimal plugin implementation::

        class Greeter(Plugin):
            @property
            def name(self) -> str:
                return "greeter"

            async def on_enable(self, options):
                self.vk.use("request", self.tag_request)

            async def tag_request(self, ctx, next):
                ctx.params["greeting"] = "hi"
                return await next()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

if TYPE_CHECKING:
    from vkclient.client import VK

RESERVED_PLUGIN_NAMES = frozenset({"default", "defaultPlugin"})
"""Names a plugin may not register under."""

EnableFn = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class PluginDescriptor:
    """What the registry needs to queue and enable one plugin.

    Attributes:
        name: Unique plugin name.
        enable_fn: Async callable invoked with the merged options.
        requirements: Names of plugins that must be installed or queued first.
        setup_after: Name of a queued plugin to be spliced in front of.
        defaults: Options merged under the install and commit-time options.
    """

    name: str
    enable_fn: EnableFn
    requirements: frozenset[str] = field(default_factory=frozenset)
    setup_after: Optional[str] = None
    defaults: dict[str, Any] = field(default_factory=dict)


class Plugin(ABC):
    """Base class for all vkclient plugins.

    The plugin lifecycle is:

    1. Instantiation -- :meth:`VK.extend` calls ``plugin_cls(vk, options)``.
    2. Queued -- the descriptor waits in the registry.
    3. :meth:`on_enable` -- awaited during :meth:`VK.setup` (or right away
       for an immediate install) with the merged options.
    4. :meth:`capabilities` -- every returned entry is linked on the client.

    Args:
        vk: The owning client.
        options: Install options given to :meth:`VK.extend`.
    """

    def __init__(self, vk: VK, options: Optional[dict[str, Any]] = None) -> None:
        self.vk = vk
        self.options: dict[str, Any] = dict(options or {})

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the unique plugin name, e.g. ``"storage"``."""
        ...

    @property
    def version(self) -> str:
        return "0.1.0"

    @property
    def description(self) -> str:
        return ""

    @property
    def requirements(self) -> frozenset[str]:
        """Names of plugins this plugin depends on."""
        return frozenset()

    @property
    def setup_after(self) -> Optional[str]:
        """Name of a queued plugin this one must be placed in front of."""
        return None

    @property
    def default_options(self) -> dict[str, Any]:
        """Options used when neither install nor commit options set a key."""
        return {}

    async def on_enable(self, options: dict[str, Any]) -> Any:
        """Called once when the plugin is enabled.

        Register composers and exception handlers here.

        Args:
            options: ``default_options`` overlaid with the install options
                and any per-plugin options given to :meth:`VK.setup`.
        """

    def capabilities(self) -> dict[str, Any]:
        """Named values to expose on the client once enabled.

        Each entry is linked with :meth:`VK.link`, so ``vk.<name>`` resolves
        to it. Names must not clash with other plugins' capabilities.
        """
        return {}
