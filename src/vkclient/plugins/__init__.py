"""Plugin system for vkclient -- registration, ordering and enabling.

Key classes:

* :class:`Plugin` -- Abstract base class that all plugins must extend.
* :class:`PluginDescriptor` -- What the registry queues for each plugin.
* :class:`PluginRegistry` -- Two-phase install (queue, then commit) with
  uniqueness, requirement and ``setup_after`` ordering rules.
* :class:`StoragePlugin`, :class:`AuthPlugin` -- built-in plugins queued by
  every :class:`~vkclient.client.VK` client.

Example:
    Installing a third-party plugin::

        vk = VK()
        vk.extend(MyPlugin, {"verbose": True})
        await vk.setup()
"""

from vkclient.plugins.auth import AuthPlugin
from vkclient.plugins.base import Plugin, PluginDescriptor
from vkclient.plugins.registry import PluginRegistry
from vkclient.plugins.storage import StoragePlugin

__all__ = ["Plugin", "PluginDescriptor", "PluginRegistry", "StoragePlugin", "AuthPlugin"]
