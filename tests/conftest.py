"""Shared test fixtures for vkclient.

Provides isolated config environments, output state resets, a mock
API server built on :class:`httpx.MockTransport`, and a CLI runner.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
import pytest

from vkclient.output import reset_output
from vkclient.transport import HttpxTransport


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time, which go stale once Typer's CliRunner restores them.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and session files to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME under tmp_path, clears all
    VKCLIENT_* environment variables and changes into tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("vkclient.config._is_xdg_platform", lambda: True)

    for var in [
        "VKCLIENT_ACCESS_TOKEN",
        "VKCLIENT_API_VERSION",
        "VKCLIENT_LANG",
        "VKCLIENT_SESSION_FILE",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Mock API server
# ---------------------------------------------------------------------------


class FakeAPI:
    """Answers requests from a table of ``method name -> body``.

    Bodies may be dicts (sent as JSON), strings (sent as text) or callables
    taking the :class:`httpx.Request`. Every request is recorded in
    :attr:`requests`.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method_name: str, body: Any) -> None:
        self.routes[method_name] = body

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method_name = request.url.path.rsplit("/", 1)[-1]
        body = self.routes.get(method_name, {"response": None})
        if callable(body):
            body = body(request)
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, str):
            return httpx.Response(200, text=body)
        return httpx.Response(200, json=body)

    def transport(self) -> HttpxTransport:
        return HttpxTransport(transport=httpx.MockTransport(self.handler))

    def params_of(self, index: int = -1) -> dict[str, str]:
        """Query or form parameters of a recorded request."""
        request = self.requests[index]
        if request.method == "POST":
            return dict(httpx.QueryParams(request.content.decode()))
        return dict(request.url.params)


@pytest.fixture
def fake_api() -> FakeAPI:
    return FakeAPI()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
