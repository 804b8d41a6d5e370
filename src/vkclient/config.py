"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for vkclient:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.vkclient/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Client options** -- a single :class:`~vkclient.models.ClientOptions`
  JSON file (``config.json``). See :func:`load_options` and
  :func:`save_options`.
* **Precedence resolution** -- :func:`resolve_options` layers environment
  variables over the config file over built-in defaults.

All file writes go through :func:`atomic_write` (temp file then rename).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from vkclient.exceptions import ConfigError
from vkclient.models import ClientOptions

_APP_NAME = "vkclient"
_CONFIG_FILENAME = "config.json"
_SESSION_FILENAME = "session.json"

ENV_ACCESS_TOKEN = "VKCLIENT_ACCESS_TOKEN"
ENV_API_VERSION = "VKCLIENT_API_VERSION"
ENV_LANG = "VKCLIENT_LANG"
ENV_SESSION_FILE = "VKCLIENT_SESSION_FILE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from *env_var*, or ``$HOME/<segments>``."""
    value = os.environ.get(env_var)
    if value:
        return Path(value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/vkclient/`` (default ``~/.config/vkclient/``).
    On macOS/Windows: ``~/.vkclient/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (sessions, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/vkclient/`` (default ``~/.local/share/vkclient/``).
    On macOS/Windows: ``~/.vkclient/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_session_file() -> Path:
    """Return the default session file path (``<data_dir>/session.json``)."""
    return get_data_dir() / _SESSION_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is
    given, permissions are applied to the temp file before any content is
    written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Client options ---


def _options_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_options(path: Optional[Path] = None) -> ClientOptions:
    """Load client options from *path* (default ``<config_dir>/config.json``).

    Returns:
        The deserialised :class:`~vkclient.models.ClientOptions`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = path or _options_path()
    if not path.is_file():
        return ClientOptions()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClientOptions.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_options(options: ClientOptions, path: Optional[Path] = None) -> None:
    """Persist client options atomically to disk."""
    data = options.model_dump(mode="json")
    atomic_write(path or _options_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_options(
    cli_token: Optional[str] = None,
    cli_api_version: Optional[str] = None,
    config_path: Optional[Path] = None,
) -> ClientOptions:
    """Resolve client options with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_token``, ``cli_api_version``)
        2. Environment variables (``VKCLIENT_ACCESS_TOKEN``,
           ``VKCLIENT_API_VERSION``, ``VKCLIENT_LANG``,
           ``VKCLIENT_SESSION_FILE``)
        3. Config file (``~/.config/vkclient/config.json``)
        4. Defaults

    The access token and session file land in ``plugins["auth"]`` and
    ``plugins["storage"]`` respectively, which :meth:`VK.setup
    <vkclient.client.VK.setup>` passes to those plugins.
    """
    options = load_options(config_path)

    defaults: dict[str, Any] = dict(options.defaults)
    env_version = os.environ.get(ENV_API_VERSION)
    if env_version:
        defaults["v"] = env_version
    env_lang = os.environ.get(ENV_LANG)
    if env_lang:
        defaults["lang"] = env_lang
    if cli_api_version is not None:
        defaults["v"] = cli_api_version
    options.defaults = defaults

    plugins = {name: dict(opts) for name, opts in options.plugins.items()}

    token = cli_token or os.environ.get(ENV_ACCESS_TOKEN)
    if token:
        plugins.setdefault("auth", {})["access_token"] = token

    env_session = os.environ.get(ENV_SESSION_FILE)
    if env_session:
        plugins.setdefault("storage", {})["session_file"] = env_session

    options.plugins = plugins
    return options
