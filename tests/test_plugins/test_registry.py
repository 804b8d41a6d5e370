"""Tests for the plugin registry (queue, commit, immediate installs, discovery)."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from vkclient.exceptions import DuplicateNameError, MissingDependencyError, RegistrationError
from vkclient.plugins.base import Plugin, PluginDescriptor
from vkclient.plugins.registry import (
    ENTRY_POINT_GROUP,
    PluginRegistry,
    _QueueEntry,
    discover_plugin_classes,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class Recorder:
    """Builds descriptors whose enable_fn records (name, options)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def descriptor(self, name: str, **kwargs: Any) -> PluginDescriptor:
        async def enable(options: dict[str, Any]) -> str:
            self.calls.append((name, options))
            return name

        return PluginDescriptor(name=name, enable_fn=enable, **kwargs)

    @property
    def order(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def registry() -> PluginRegistry:
    return PluginRegistry()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_deferred_register_queues(self, registry: PluginRegistry, recorder: Recorder) -> None:
        assert registry.register(recorder.descriptor("x")) is None
        assert registry.queued_names == ["x"]
        assert registry.is_queued("x")
        assert not registry.is_installed("x")
        assert recorder.calls == []

    def test_duplicate_queued_name_leaves_state_unchanged(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        registry.register(recorder.descriptor("x"))
        registry.register(recorder.descriptor("y"))

        with pytest.raises(DuplicateNameError, match="already queued"):
            registry.register(recorder.descriptor("x"))

        assert registry.queued_names == ["x", "y"]
        assert registry.installed_names == []

    def test_duplicate_installed_name(self, registry: PluginRegistry, recorder: Recorder) -> None:
        registry.register(recorder.descriptor("x"))
        asyncio.run(registry.commit())

        with pytest.raises(DuplicateNameError, match="already installed"):
            registry.register(recorder.descriptor("x"))

    @pytest.mark.parametrize("name", ["", "default", "defaultPlugin"])
    def test_empty_and_reserved_names(
        self, registry: PluginRegistry, recorder: Recorder, name: str
    ) -> None:
        with pytest.raises(DuplicateNameError, match="non-reserved"):
            registry.register(recorder.descriptor(name))
        assert registry.queued_names == []

    def test_missing_dependency(self, registry: PluginRegistry, recorder: Recorder) -> None:
        with pytest.raises(MissingDependencyError) as exc_info:
            registry.register(recorder.descriptor("auth", requirements=frozenset({"storage"})))

        assert exc_info.value.plugin_name == "auth"
        assert exc_info.value.missing == "storage"
        assert registry.queued_names == []

    def test_queued_requirement_is_enough(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        registry.register(recorder.descriptor("storage"))
        registry.register(recorder.descriptor("auth", requirements=frozenset({"storage"})))
        assert registry.queued_names == ["storage", "auth"]

    def test_installed_requirement_is_enough(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        registry.register(recorder.descriptor("storage"))
        asyncio.run(registry.commit())

        registry.register(recorder.descriptor("auth", requirements=frozenset({"storage"})))
        assert registry.queued_names == ["auth"]

    def test_setup_after_splices_in_front(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        registry.register(recorder.descriptor("a"))
        registry.register(recorder.descriptor("x"))
        registry.register(recorder.descriptor("b"))

        registry.register(recorder.descriptor("p", setup_after="x"))

        assert registry.queued_names == ["a", "p", "x", "b"]

    def test_setup_after_unknown_name_appends(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        registry.register(recorder.descriptor("a"))
        registry.register(recorder.descriptor("p", setup_after="nowhere"))
        assert registry.queued_names == ["a", "p"]

    def test_immediate_install_outside_loop_fails(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        with pytest.raises(RegistrationError, match="running event loop"):
            registry.register(recorder.descriptor("x"), deferred=False)
        assert not registry.is_installed("x")

    def test_immediate_install_is_tracked(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        async def scenario() -> Any:
            task = registry.register(
                recorder.descriptor("x", defaults={"a": 1}), {"b": 2}, deferred=False
            )
            assert registry.is_installed("x")
            await registry.commit()
            return task

        task = asyncio.run(scenario())

        assert task.done()
        assert task.result() == "x"
        assert recorder.calls == [("x", {"a": 1, "b": 2})]


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------


class TestCommit:
    def test_commit_enables_in_queue_order(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        for name in ["a", "b", "c"]:
            registry.register(recorder.descriptor(name))

        asyncio.run(registry.commit())

        assert recorder.order == ["a", "b", "c"]
        assert registry.installed_names == ["a", "b", "c"]
        assert registry.queued_names == []

    def test_option_merge_precedence(self, registry: PluginRegistry, recorder: Recorder) -> None:
        registry.register(
            recorder.descriptor("x", defaults={"a": 1, "b": 1, "c": 1}),
            {"b": 2, "c": 2},
        )

        asyncio.run(registry.commit({"x": {"c": 3}, "other": {"z": 0}}))

        assert recorder.calls == [("x", {"a": 1, "b": 2, "c": 3})]

    def test_commit_twice_is_a_noop(self, registry: PluginRegistry, recorder: Recorder) -> None:
        registry.register(recorder.descriptor("x"))
        asyncio.run(registry.commit())
        asyncio.run(registry.commit())
        assert recorder.order == ["x"]

    def test_requirement_is_enabled_before_dependent(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        registry.register(recorder.descriptor("storage"))
        registry.register(
            recorder.descriptor(
                "auth", requirements=frozenset({"storage"}), setup_after="storage"
            )
        )
        assert registry.queued_names == ["auth", "storage"]

        asyncio.run(registry.commit())

        assert recorder.order == ["storage", "auth"]

    def test_cycle_is_rejected(self, registry: PluginRegistry, recorder: Recorder) -> None:
        registry._queue = [
            _QueueEntry(recorder.descriptor("a", requirements=frozenset({"b"}))),
            _QueueEntry(recorder.descriptor("b", requirements=frozenset({"a"}))),
        ]

        with pytest.raises(RegistrationError, match="cycle"):
            asyncio.run(registry.commit())

        assert recorder.calls == []
        assert registry.installed_names == []
        assert registry.queued_names == ["a", "b"]

    def test_failure_keeps_plugins_installed(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        async def explode(options: dict[str, Any]) -> None:
            raise ValueError("boom")

        registry.register(recorder.descriptor("a"))
        registry.register(PluginDescriptor(name="bad", enable_fn=explode))

        with pytest.raises(ValueError, match="boom"):
            asyncio.run(registry.commit())

        assert registry.installed_names == ["a", "bad"]
        assert recorder.order == ["a"]

    def test_sync_enable_fn(self, registry: PluginRegistry) -> None:
        calls: list[dict[str, Any]] = []
        registry.register(PluginDescriptor(name="sync", enable_fn=calls.append))
        asyncio.run(registry.commit())
        assert calls == [{}]

    def test_sync_raise_does_not_stop_later_enables(
        self, registry: PluginRegistry, recorder: Recorder
    ) -> None:
        def explode(options: dict[str, Any]) -> None:
            raise ValueError("boom")

        async def scenario() -> None:
            registry.register(recorder.descriptor("early"), deferred=False)
            registry.register(PluginDescriptor(name="a", enable_fn=explode))
            registry.register(recorder.descriptor("c"))
            await registry.commit()

        with pytest.raises(ValueError, match="boom"):
            asyncio.run(scenario())

        assert registry.installed_names == ["early", "a", "c"]
        assert sorted(recorder.order) == ["c", "early"]

    def test_enables_run_concurrently(self, registry: PluginRegistry) -> None:
        order: list[str] = []

        async def scenario() -> None:
            ready = asyncio.Event()

            async def waits(options: dict[str, Any]) -> None:
                await ready.wait()
                order.append("a")

            async def signals(options: dict[str, Any]) -> None:
                order.append("b")
                ready.set()

            registry.register(PluginDescriptor(name="a", enable_fn=waits))
            registry.register(PluginDescriptor(name="b", enable_fn=signals))
            await asyncio.wait_for(registry.commit(), timeout=1)

        asyncio.run(scenario())

        assert order == ["b", "a"]

    def test_suspended_sibling_finishes_after_failure(self, registry: PluginRegistry) -> None:
        finished: list[str] = []

        async def slow(options: dict[str, Any]) -> None:
            for _ in range(3):
                await asyncio.sleep(0)
            finished.append("slow")

        async def explode(options: dict[str, Any]) -> None:
            raise ValueError("boom")

        registry.register(PluginDescriptor(name="slow", enable_fn=slow))
        registry.register(PluginDescriptor(name="bad", enable_fn=explode))

        with pytest.raises(ValueError, match="boom"):
            asyncio.run(registry.commit())

        assert finished == ["slow"]

    def test_wait_enabled(self, registry: PluginRegistry) -> None:
        seen: list[bool] = []

        async def slow(options: dict[str, Any]) -> None:
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        async def dependent(options: dict[str, Any]) -> None:
            await registry.wait_enabled("slow")
            await registry.wait_enabled("unknown")
            seen.append(registry._tasks["slow"].done())

        registry.register(PluginDescriptor(name="slow", enable_fn=slow))
        registry.register(
            PluginDescriptor(name="dep", enable_fn=dependent, requirements=frozenset({"slow"}))
        )
        asyncio.run(registry.commit())

        assert seen == [True]


# ---------------------------------------------------------------------------
# Entry-point discovery
# ---------------------------------------------------------------------------


class DiscoveredPlugin(Plugin):
    @property
    def name(self) -> str:
        return "discovered"


def _entry_point(name: str, loaded: Any = None, error: Exception | None = None) -> MagicMock:
    ep = MagicMock()
    ep.name = name
    if error is not None:
        ep.load.side_effect = error
    else:
        ep.load.return_value = loaded
    return ep


class TestDiscovery:
    def test_loads_plugin_classes(self) -> None:
        eps = [_entry_point("discovered", DiscoveredPlugin)]
        with patch("importlib.metadata.entry_points", return_value=eps) as mock_eps:
            classes = discover_plugin_classes()

        mock_eps.assert_called_once_with(group=ENTRY_POINT_GROUP)
        assert classes == [DiscoveredPlugin]

    def test_skips_broken_entry_points(self) -> None:
        eps = [
            _entry_point("broken", error=ImportError("no module")),
            _entry_point("not-a-plugin", object),
            _entry_point("discovered", DiscoveredPlugin),
        ]
        with patch("importlib.metadata.entry_points", return_value=eps):
            assert discover_plugin_classes() == [DiscoveredPlugin]

    def test_enabled_and_disabled_lists(self) -> None:
        eps = [
            _entry_point("one", DiscoveredPlugin),
            _entry_point("two", DiscoveredPlugin),
        ]
        with patch("importlib.metadata.entry_points", return_value=eps):
            assert len(discover_plugin_classes(enabled=["one"])) == 1
            assert len(discover_plugin_classes(disabled=["one", "two"])) == 0

        eps[1].load.assert_not_called()
