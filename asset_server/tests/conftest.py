"""Pytest configuration and fixtures for asset registry server tests."""

from pathlib import Path

import pytest

from asset_server.watchers.file_watcher import WatcherConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


@pytest.fixture
def assets_dir(tmp_path) -> Path:
    """Create an asset tree with img/a.png and doc/b.txt."""
    root = tmp_path / "assets"
    (root / "img").mkdir(parents=True)
    (root / "doc").mkdir()

    (root / "img" / "a.png").write_bytes(PNG_BYTES)
    (root / "doc" / "b.txt").write_text("not an image")

    return root


@pytest.fixture
def site_config(assets_dir) -> WatcherConfig:
    """Watch the asset tree under label 'site' for png files."""
    return WatcherConfig(directories={"site": assets_dir}, extensions=frozenset({"png"}))
