"""
In-memory file registry for the asset server.

Maps each tracked file's absolute path to the entry describing how to fetch it.
"""

from asset_server.registry.file_registry import FileEntry, FileRegistry

__all__ = ["FileEntry", "FileRegistry"]
