"""
Error types for the asset registry server.

All errors inherit from AssetServerError so callers can catch them together.
"""

from pathlib import Path


class AssetServerError(Exception):
    """Base exception for asset server failures."""


class WalkError(AssetServerError):
    """Raised when a configured directory cannot be fully walked."""

    def __init__(self, label: str, root: Path | str, reason: str) -> None:
        self.label = label
        self.root = Path(root)
        self.reason = reason
        super().__init__(f"Failed to walk '{label}' at {self.root}: {reason}")


class SerializationError(AssetServerError):
    """Raised when the registry listing cannot be encoded to JSON."""


class NotificationError(AssetServerError):
    """Raised when a filesystem change event cannot be handled."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Change notification failed for {self.path}: {reason}")
