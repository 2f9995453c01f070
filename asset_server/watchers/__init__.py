"""
File watching utilities for the asset registry server.

This module walks the configured directories into the file registry and
monitors them for changes.
"""

from asset_server.watchers.file_watcher import FileWatcher, WatcherConfig

__all__ = ["FileWatcher", "WatcherConfig"]
