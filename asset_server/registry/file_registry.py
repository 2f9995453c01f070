"""Thread-safe in-memory registry of tracked files."""

import os
import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FileEntry:
    """One tracked file and the URL it is served under."""

    label: str
    type: str
    url: str
    absolute_path: str

    def to_dict(self) -> dict[str, str]:
        """Return the JSON shape used by the listing endpoint."""
        return {
            "label": self.label,
            "type": self.type,
            "url": self.url,
            "absolutePath": self.absolute_path,
        }


class FileRegistry:
    """
    Mapping from absolute file path to FileEntry.

    A single lock guards the path map and the secondary URL index. The lock
    is only held for one insert, one removal, one snapshot copy or one lookup,
    never across file I/O.
    """

    def __init__(self) -> None:
        self._files: dict[str, FileEntry] = {}
        self._url_index: dict[str, str] = {}
        self._lock = threading.Lock()

    def insert(self, absolute_path: str, entry: FileEntry) -> None:
        """
        Store an entry keyed by its absolute path, replacing any previous one.

        Args:
            absolute_path: Filesystem path used as the registry key
            entry: Entry to store
        """
        with self._lock:
            previous = self._files.get(absolute_path)
            if previous is not None and self._url_index.get(previous.url) == absolute_path:
                del self._url_index[previous.url]

            # Another path claiming the same URL loses its entry
            owner = self._url_index.get(entry.url)
            if owner is not None and owner != absolute_path:
                self._files.pop(owner, None)

            self._files[absolute_path] = entry
            self._url_index[entry.url] = absolute_path

    def remove(self, absolute_path: str) -> FileEntry | None:
        """Drop the entry for a path. Returns the removed entry, if any."""
        with self._lock:
            return self._pop_locked(absolute_path)

    def remove_tree(self, directory: str) -> list[FileEntry]:
        """
        Drop every entry whose path lies under a directory.

        Args:
            directory: Directory whose registered descendants are removed

        Returns:
            The removed entries
        """
        prefix = directory.rstrip(os.sep) + os.sep
        with self._lock:
            doomed = [path for path in self._files if path.startswith(prefix)]
            return [entry for entry in (self._pop_locked(path) for path in doomed) if entry is not None]

    def _pop_locked(self, absolute_path: str) -> FileEntry | None:
        entry = self._files.pop(absolute_path, None)
        if entry is not None and self._url_index.get(entry.url) == absolute_path:
            del self._url_index[entry.url]
        return entry

    def snapshot(self) -> list[FileEntry]:
        """Return a consistent copy of all current entries, in no particular order."""
        with self._lock:
            return list(self._files.values())

    def find_by_url(self, url: str) -> FileEntry | None:
        """Return the entry whose URL equals the given string exactly, or None."""
        with self._lock:
            absolute_path = self._url_index.get(url)
            if absolute_path is None:
                return None
            return self._files.get(absolute_path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def __contains__(self, absolute_path: object) -> bool:
        if isinstance(absolute_path, Path):
            absolute_path = str(absolute_path)
        with self._lock:
            return absolute_path in self._files
