"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles the persistent configuration for cachedfetch:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachedfetch/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Config file** -- a single :class:`~cachedfetch.models.ClientConfig`
  JSON file, read by :func:`load_config` and written by :func:`save_config`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, the config file and defaults into the effective
  configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from cachedfetch.exceptions import ConfigError
from cachedfetch.models import ClientConfig

_APP_NAME = "cachedfetch"
_CONFIG_FILENAME = "config.json"

# Environment variable -> (section, field, parser)
_ENV_OVERRIDES: dict[str, tuple[Optional[str], str, Callable[[str], Any]]] = {
    "CACHEDFETCH_BASE_URL": (None, "base_url", str),
    "CACHEDFETCH_TIMEOUT": ("request", "timeout", float),
    "CACHEDFETCH_MAX_ATTEMPTS": ("request", "max_attempts", int),
    "CACHEDFETCH_CACHE_TTL": ("cache", "ttl_seconds", float),
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachedfetch/`` (default ``~/.config/cachedfetch/``).
    On macOS/Windows: ``~/.cachedfetch/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cachedfetch/`` (default ``~/.local/share/cachedfetch/``).
    On macOS/Windows: ``~/.cachedfetch/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created next to *path* so that ``os.replace`` is
    an atomic rename on POSIX systems.  On any failure the temp file is
    removed.
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


# --- Config file ---


def load_config(path: Optional[Path] = None) -> ClientConfig:
    """Load the configuration file.

    Args:
        path: Explicit file path.  Defaults to :func:`default_config_path`.

    Returns:
        The deserialised :class:`~cachedfetch.models.ClientConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = path or default_config_path()
    if not path.is_file():
        return ClientConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClientConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ClientConfig, path: Optional[Path] = None) -> Path:
    """Persist *config* atomically and return the path written."""
    path = path or default_config_path()
    data = config.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Precedence resolution ---


def resolve_config(
    path: Optional[Path] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    ttl_seconds: Optional[float] = None,
) -> ClientConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. Explicit arguments (CLI flags)
        2. Environment variables (``CACHEDFETCH_BASE_URL``,
           ``CACHEDFETCH_TIMEOUT``, ``CACHEDFETCH_MAX_ATTEMPTS``,
           ``CACHEDFETCH_CACHE_TTL``)
        3. Config file
        4. Defaults

    Raises:
        ConfigError: If the file is invalid or an environment variable
            cannot be parsed.
    """
    data = load_config(path).model_dump()

    for env_var, (section, field, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_var)
        if not raw:
            continue
        try:
            value = parse(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {env_var}: {raw!r}") from exc
        target = data if section is None else data[section]
        target[field] = value

    if base_url is not None:
        data["base_url"] = base_url
    if timeout is not None:
        data["request"]["timeout"] = timeout
    if max_attempts is not None:
        data["request"]["max_attempts"] = max_attempts
    if ttl_seconds is not None:
        data["cache"]["ttl_seconds"] = ttl_seconds

    try:
        return ClientConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
