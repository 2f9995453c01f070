"""Utility functions for the asset registry server."""

import os
from pathlib import Path
from typing import Any

from asset_server.watchers.file_watcher import DEFAULT_PORT, WatcherConfig


def parse_boolean_env(env_var: str, default: str = "false") -> bool:
    """
    Parse a boolean environment variable with consistent behavior.

    Args:
        env_var: Environment variable name
        default: Default value if env var is not set

    Returns:
        Boolean value
    """
    value = os.getenv(env_var, default).lower()
    return value in ("true", "1", "yes", "on")


def parse_directories(value: str) -> dict[str, Path]:
    """
    Parse a space-separated list of directory specs.

    Each spec is either ``label:directory`` or a bare ``directory``, in which
    case the label is the directory's base name.

    Args:
        value: Raw directory list, e.g. ``"site:/srv/assets /tmp/icons"``

    Returns:
        Mapping of label to directory path
    """
    directories: dict[str, Path] = {}
    for spec in value.split():
        label, sep, directory = spec.partition(":")
        if not sep:
            directory = label
            label = Path(directory.rstrip("/\\")).name or directory
        directories[label] = Path(directory)
    return directories


def parse_extensions(value: str) -> frozenset[str]:
    """
    Parse a comma-separated extension list.

    Leading dots and empty items are ignored, so ``"png, .jpg,,"`` gives
    ``{"png", "jpg"}``.
    """
    return frozenset(item.strip().lstrip(".") for item in value.split(",") if item.strip().lstrip("."))


def get_environment_config() -> dict[str, Any]:
    """
    Get the watcher configuration values from the environment.

    Returns:
        Dictionary of configuration values
    """
    return {
        "directories": parse_directories(os.getenv("WATCH_DIRECTORIES", "")),
        "extensions": parse_extensions(os.getenv("WATCH_EXTENSIONS", "")),
        "public_host": os.getenv("PUBLIC_HOST", "localhost"),
        "live_updates": parse_boolean_env("LIVE_UPDATES"),
        "watch_log_level": os.getenv("WATCH_LOG_LEVEL", "INFO"),
    }


def get_server_config() -> dict[str, Any]:
    """
    Get server configuration values for uvicorn.

    Returns:
        Dictionary of server configuration values
    """
    return {
        "host": os.getenv("HOST", "127.0.0.1"),
        "port": int(os.getenv("PORT", str(DEFAULT_PORT))),
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
    }


def print_startup_info(watcher_config: WatcherConfig, server_config: dict[str, Any]) -> None:
    """
    Print the effective configuration before the server starts.

    Args:
        watcher_config: Directories, extensions and URL settings
        server_config: Bind host, port and log level
    """
    from asset_server.main import APP_TITLE, APP_VERSION

    print(f"Starting {APP_TITLE} v{APP_VERSION}...")
    print(f"Server will be available at: http://{server_config['host']}:{server_config['port']}")
    print(f"File URLs are built from: {watcher_config.base_url}")
    print()

    if not watcher_config.directories:
        print("⚠️  Warning: No directories configured, the registry will be empty")
    else:
        print("Directories:")
        for label, root in watcher_config.directories.items():
            marker = "" if root.is_dir() else "  (⚠️  not found)"
            print(f"  {label} -> {root}{marker}")

    extensions = ", ".join(sorted(watcher_config.extensions)) or "(none)"
    print(f"Extensions: {extensions}")
    print()

    print("Configuration:")
    print(f"  HOST={server_config['host']}")
    print(f"  PORT={server_config['port']}")
    print(f"  LOG_LEVEL={server_config['log_level']}")
    print(f"  LIVE_UPDATES={watcher_config.live_updates}")
    print()
