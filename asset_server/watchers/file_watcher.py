"""
File Watcher for the Asset Registry Server

This module walks each configured directory to populate the file registry and
subscribes the same directories to watchdog change notifications. Change events
are consumed by a background task; they are logged, and applied to the registry
only when live updates are enabled.
"""

import asyncio
import logging
import os
import posixpath
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from asset_server.errors import NotificationError, WalkError
from asset_server.registry.file_registry import FileEntry, FileRegistry

DEFAULT_PORT = 9191


@dataclass(frozen=True)
class WatcherConfig:
    """Configuration for the registrar, the watcher and URL synthesis."""

    # Label -> root directory
    directories: dict[str, Path] = field(default_factory=dict)
    # Accepted extensions without the leading dot, matched case-sensitively
    extensions: frozenset[str] = field(default_factory=frozenset)

    # Host and port used when synthesizing file URLs
    host: str = "localhost"
    port: int = DEFAULT_PORT

    # Apply change events to the registry instead of only logging them
    live_updates: bool = False

    log_level: str = "INFO"
    max_recent_events: int = 100

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "directories", {label: Path(os.path.abspath(root)) for label, root in self.directories.items()}
        )
        object.__setattr__(self, "extensions", frozenset(ext.lstrip(".") for ext in self.extensions if ext.strip(".")))

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass
class FileEvent:
    """A filesystem change reported by watchdog."""

    file_path: Path
    event_type: str
    timestamp: float
    is_directory: bool = False
    dest_path: Path | None = None

    def __post_init__(self) -> None:
        self.file_path = Path(self.file_path)
        if self.dest_path is not None:
            self.dest_path = Path(self.dest_path)

        if self.timestamp <= 0:
            raise ValueError("Timestamp must be positive")


def is_watched_extension(file_path: Path | str, extensions: Iterable[str]) -> str | None:
    """
    Return the configured extension a file name ends with.

    Args:
        file_path: File path or name to check
        extensions: Accepted extensions without the leading dot

    Returns:
        The longest matching extension, or None when nothing matches
    """
    name = Path(file_path).name
    matches = [ext for ext in extensions if ext and name.endswith(f".{ext}")]
    if not matches:
        return None
    return max(matches, key=len)


def build_entry(config: WatcherConfig, label: str, root: Path | str, file_path: Path | str, extension: str) -> FileEntry:
    """
    Build the registry entry for a file found under a configured root.

    Args:
        config: Watcher configuration providing the URL host and port
        label: Configured label of the root
        root: Root directory the file was found under
        file_path: Absolute path of the file
        extension: Matched extension without the leading dot

    Returns:
        FileEntry with label, type, url and absolute path filled in
    """
    relative = Path(file_path).relative_to(root).as_posix()
    stem = relative[: -(len(extension) + 1)]

    return FileEntry(
        label=posixpath.join(label, stem),
        type=extension,
        url=f"{config.base_url}/files/{posixpath.join(label, relative)}",
        absolute_path=str(file_path),
    )


def _reraise(error: OSError) -> None:
    raise error


class FileWatchEventHandler(FileSystemEventHandler):  # type: ignore[misc]
    """Forwards watchdog events from the observer thread to the watcher's event loop."""

    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self.watcher = watcher
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        if not event.is_directory:
            self._handle_file_event(event, "modified")

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file and directory creation events."""
        self._handle_file_event(event, "created")

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file and directory move events."""
        self._handle_file_event(event, "moved")

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file and directory deletion events."""
        self._handle_file_event(event, "deleted")

    def _handle_file_event(self, event: FileSystemEvent, event_type: str) -> None:
        """Queue a file event on the watcher's loop."""
        try:
            dest_path = getattr(event, "dest_path", None)
            file_event = FileEvent(
                file_path=Path(os.fsdecode(event.src_path)),
                event_type=event_type,
                timestamp=time.time(),
                is_directory=bool(event.is_directory),
                dest_path=Path(os.fsdecode(dest_path)) if dest_path else None,
            )

            loop = self.watcher.loop
            if loop is None:
                self.logger.debug(f"Dropping {event_type} event for {file_event.file_path}: watcher not started")
                return

            loop.call_soon_threadsafe(self.watcher.event_queue.put_nowait, file_event)

        except Exception as e:
            self.logger.error(f"Error handling file event: {e}")


class FileWatcher:
    """
    Registrar and change watcher for the configured directories.

    Owns the FileRegistry for its lifetime. The initial walk populates the
    registry; the watchdog observer then reports changes, which a background
    task consumes until the event channel is closed.
    """

    def __init__(self, config: WatcherConfig | None = None, registry: FileRegistry | None = None) -> None:
        """
        Initialize the file watcher.

        Args:
            config: Watcher configuration, defaults to WatcherConfig()
            registry: Registry to populate, a new one is created when omitted

        Raises:
            ValueError: If configuration parameters are invalid
        """
        self.config = config or WatcherConfig()
        self._validate_config()

        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.registry = registry if registry is not None else FileRegistry()

        # Watchdog components, the observer is rebuilt on every start
        self.observer: BaseObserver | None = None
        self.event_handler = FileWatchEventHandler(self)

        # None closes the channel
        self.event_queue: asyncio.Queue[FileEvent | None] = asyncio.Queue()
        self._processing_task: asyncio.Task[None] | None = None
        self.loop: asyncio.AbstractEventLoop | None = None

        # Status tracking
        self.is_watching = False
        self.start_time: float | None = None
        self.watched_roots: list[Path] = []
        self.walk_errors: list[str] = []
        self.notification_errors: list[str] = []
        self.stats = {
            "total_events": 0,
            "failed_events": 0,
            "entries_added": 0,
            "entries_removed": 0,
        }
        self.recent_events: deque[FileEvent] = deque(maxlen=self.config.max_recent_events)

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if not 0 < self.config.port < 65536:
            raise ValueError(f"Port must be between 1 and 65535, got {self.config.port}")

        if not self.config.host:
            raise ValueError("URL host must not be empty")

        if any(not label for label in self.config.directories):
            raise ValueError("Directory labels must not be empty")

        if self.config.max_recent_events <= 0:
            raise ValueError("Max recent events must be positive")

    def walk_directory(self, label: str, root: Path | str, start: Path | str | None = None) -> int:
        """
        Register every matching file under a configured root.

        Args:
            label: Configured label of the root
            root: Root directory; relative paths and URLs are computed from it
            start: Sub-directory of root to walk instead of the whole root

        Returns:
            Number of entries inserted

        Raises:
            WalkError: If any directory under the walk cannot be read
        """
        root_path = os.path.abspath(root)
        start_path = os.path.abspath(start) if start is not None else root_path

        if not os.path.isdir(start_path):
            raise WalkError(label, start_path, "not a directory")

        added = 0
        try:
            for dirpath, _dirnames, filenames in os.walk(start_path, onerror=_reraise):
                for name in filenames:
                    extension = is_watched_extension(name, self.config.extensions)
                    if extension is None:
                        continue

                    file_path = os.path.join(dirpath, name)
                    if not os.path.isfile(file_path):
                        continue

                    entry = build_entry(self.config, label, root_path, file_path, extension)
                    self.registry.insert(file_path, entry)
                    added += 1
        except OSError as e:
            raise WalkError(label, start_path, str(e)) from e

        self.stats["entries_added"] += added
        return added

    def register_all(self) -> dict[str, int]:
        """
        Walk every configured directory independently.

        A directory that fails to walk is logged and recorded in walk_errors;
        the remaining directories are still walked.

        Returns:
            Number of entries inserted per label
        """
        counts: dict[str, int] = {}
        self.walk_errors.clear()

        for label, root in self.config.directories.items():
            try:
                counts[label] = self.walk_directory(label, root)
                self.logger.info(f"Registered {counts[label]} file(s) for '{label}' from {root}")
            except WalkError as e:
                self.logger.error(str(e))
                self.walk_errors.append(str(e))

        self.logger.info(f"Registry contains {len(self.registry)} file(s)")
        return counts

    def _find_root(self, file_path: Path) -> tuple[str, Path] | None:
        """Return the (label, root) a path belongs to; later roots win on overlap."""
        owner = None
        for label, root in self.config.directories.items():
            if file_path == root or file_path.is_relative_to(root):
                owner = (label, root)
        return owner

    def _register_path(self, file_path: Path, is_directory: bool) -> None:
        owner = self._find_root(file_path)
        if owner is None:
            return

        label, root = owner
        if is_directory:
            added = self.walk_directory(label, root, start=file_path)
            self.logger.info(f"Registered {added} file(s) from new directory {file_path}")
            return

        extension = is_watched_extension(file_path, self.config.extensions)
        if extension is None or not file_path.is_file():
            return

        self.registry.insert(str(file_path), build_entry(self.config, label, root, file_path, extension))
        self.stats["entries_added"] += 1
        self.logger.info(f"Registered {file_path}")

    def _forget_path(self, file_path: Path) -> None:
        # Deleted paths can no longer be stat'ed, so drop both the file and any subtree
        removed = self.registry.remove_tree(str(file_path))
        entry = self.registry.remove(str(file_path))
        if entry is not None:
            removed.append(entry)

        if removed:
            self.stats["entries_removed"] += len(removed)
            self.logger.info(f"Removed {len(removed)} entry(ies) for {file_path}")

    def _apply_event(self, event: FileEvent) -> None:
        """Bring the registry in line with one change event."""
        if event.event_type == "deleted":
            self._forget_path(event.file_path)
        elif event.event_type == "moved":
            self._forget_path(event.file_path)
            if event.dest_path is not None:
                self._register_path(event.dest_path, event.is_directory)
        elif event.event_type in ("created", "modified"):
            self._register_path(event.file_path, event.is_directory)

    def _process_single_event(self, event: FileEvent) -> None:
        """
        Log one change event and, with live updates enabled, apply it.

        Raises:
            NotificationError: If the event could not be applied
        """
        self.recent_events.append(event)
        self.stats["total_events"] += 1

        if event.event_type == "modified":
            self.logger.info(f"modified file: {event.file_path}")
        else:
            self.logger.debug(f"{event.event_type}: {event.file_path}")

        if not self.config.live_updates:
            return

        try:
            self._apply_event(event)
        except Exception as e:
            raise NotificationError(event.file_path, str(e)) from e

    async def _process_events(self) -> None:
        """
        Consume change events until the channel is closed.

        Each event is handled on a worker thread, one at a time, so walks of
        new directories run off the event loop.
        """
        while True:
            try:
                event = await self.event_queue.get()
            except asyncio.CancelledError:
                break

            try:
                if event is None:
                    break
                await asyncio.to_thread(self._process_single_event, event)
            except NotificationError as e:
                self.stats["failed_events"] += 1
                self.logger.error(str(e))
            finally:
                self.event_queue.task_done()

    async def start_watching(self) -> None:
        """Subscribe configured directories to change notifications and start the consumer."""
        if self.is_watching:
            self.logger.warning("File watcher is already running")
            return

        try:
            # Watchdog threads cannot be restarted and queues bind to one loop
            self.observer = Observer()
            self.event_queue = asyncio.Queue()

            # Record the running loop for cross-thread scheduling
            self.loop = asyncio.get_running_loop()
            self._processing_task = asyncio.create_task(self._process_events())

            # Roots scheduled on a running observer start their emitters immediately
            self.observer.start()

            self.watched_roots.clear()
            self.notification_errors.clear()
            for label, root in self.config.directories.items():
                try:
                    if not root.is_dir():
                        raise FileNotFoundError(f"directory not found: {root}")
                    self.observer.schedule(self.event_handler, str(root), recursive=True)
                    self.watched_roots.append(root)
                except OSError as e:
                    error = NotificationError(root, f"cannot watch '{label}': {e}")
                    self.logger.error(str(error))
                    self.notification_errors.append(str(error))

            self.is_watching = True
            self.start_time = time.time()

            self.logger.info(
                f"File watcher started. Watching {len(self.watched_roots)} of "
                f"{len(self.config.directories)} configured directories."
            )

        except Exception as e:
            self.logger.error(f"Failed to start file watcher: {e}")
            if self.observer is not None and self.observer.is_alive():
                self.observer.stop()
            if self._processing_task and not self._processing_task.done():
                self._processing_task.cancel()
            self.loop = None
            raise

    async def stop_watching(self) -> None:
        """Stop the observer and close the event channel."""
        if not self.is_watching:
            return

        self.logger.info("Stopping file watcher...")

        try:
            if self.observer is not None and self.observer.is_alive():
                self.observer.stop()
                self.observer.join(timeout=5.0)

            if self._processing_task and not self._processing_task.done():
                self.event_queue.put_nowait(None)
                await self._processing_task

            uptime = time.time() - self.start_time if self.start_time else 0
            self.logger.info(f"File watcher stopped. Uptime: {uptime:.1f}s")

        except Exception as e:
            self.logger.error(f"Error stopping file watcher: {e}")

        finally:
            self.is_watching = False
            self.loop = None

    def get_status(self) -> dict[str, Any]:
        """Get current watcher status and statistics."""
        uptime = time.time() - self.start_time if self.start_time else 0

        return {
            "is_watching": self.is_watching,
            "start_time": self.start_time,
            "uptime_seconds": uptime,
            "config": {
                "directories": {label: str(root) for label, root in self.config.directories.items()},
                "extensions": sorted(self.config.extensions),
                "base_url": self.config.base_url,
                "live_updates": self.config.live_updates,
            },
            "watched_roots": [str(root) for root in self.watched_roots],
            "registered_files": len(self.registry),
            "statistics": self.stats.copy(),
            "recent_events_count": len(self.recent_events),
            "pending_events": self.event_queue.qsize(),
            "walk_errors": list(self.walk_errors),
            "notification_errors": list(self.notification_errors),
        }

    def get_recent_events(self, limit: int = 10) -> list[dict[str, Any]]:
        """Get recent change events."""
        recent = list(self.recent_events)[-limit:]
        return [
            {
                "file_path": str(event.file_path),
                "event_type": event.event_type,
                "timestamp": event.timestamp,
                "is_directory": event.is_directory,
                "dest_path": str(event.dest_path) if event.dest_path else None,
            }
            for event in recent
        ]

    async def __aenter__(self) -> "FileWatcher":
        """Async context manager entry."""
        await self.start_watching()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.stop_watching()
