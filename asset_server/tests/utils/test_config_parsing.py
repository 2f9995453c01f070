"""Tests for directory/extension parsing, environment config and CLI flags."""

from pathlib import Path

from asset_server.main import build_watcher_config, parse_args
from asset_server.utils.utils import (
    get_environment_config,
    get_server_config,
    parse_boolean_env,
    parse_directories,
    parse_extensions,
    print_startup_info,
)
from asset_server.watchers.file_watcher import WatcherConfig


def test_parse_boolean_env_truthy_and_falsey(monkeypatch):
    for val in ["true", "1", "yes", "on", "TrUe"]:
        monkeypatch.setenv("FLAG_T", val)
        assert parse_boolean_env("FLAG_T") is True

    for val in ["false", "0", "no", "off", ""]:
        monkeypatch.setenv("FLAG_F", val)
        assert parse_boolean_env("FLAG_F", default="true") is False

    monkeypatch.delenv("MISSING_X", raising=False)
    assert parse_boolean_env("MISSING_X", default="true") is True


class TestParseDirectories:
    def test_labeled_and_bare_specs(self):
        directories = parse_directories("site:/srv/assets /tmp/icons")

        assert directories == {"site": Path("/srv/assets"), "icons": Path("/tmp/icons")}

    def test_only_first_colon_splits(self):
        assert parse_directories("data:/mnt/a:b") == {"data": Path("/mnt/a:b")}

    def test_trailing_slash_on_bare_directory(self):
        assert parse_directories("/tmp/icons/") == {"icons": Path("/tmp/icons/")}

    def test_empty_and_extra_whitespace(self):
        assert parse_directories("") == {}
        assert parse_directories("  a:/x   b:/y ") == {"a": Path("/x"), "b": Path("/y")}

    def test_later_spec_wins_for_same_label(self):
        assert parse_directories("a:/x a:/y") == {"a": Path("/y")}


class TestParseExtensions:
    def test_comma_separated(self):
        assert parse_extensions("png,jpg,svg") == frozenset({"png", "jpg", "svg"})

    def test_dots_blanks_and_spaces_ignored(self):
        assert parse_extensions(" png, .jpg,,") == frozenset({"png", "jpg"})
        assert parse_extensions("") == frozenset()


def test_environment_config(monkeypatch):
    monkeypatch.setenv("WATCH_DIRECTORIES", "site:/srv/site")
    monkeypatch.setenv("WATCH_EXTENSIONS", "js,css")
    monkeypatch.setenv("PUBLIC_HOST", "assets.local")
    monkeypatch.setenv("LIVE_UPDATES", "yes")

    config = get_environment_config()

    assert config["directories"] == {"site": Path("/srv/site")}
    assert config["extensions"] == frozenset({"js", "css"})
    assert config["public_host"] == "assets.local"
    assert config["live_updates"] is True


def test_server_config_defaults(monkeypatch):
    for name in ("HOST", "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    assert get_server_config() == {"host": "127.0.0.1", "port": 9191, "log_level": "info"}


class TestCommandLine:
    def test_flags_build_watcher_config(self, monkeypatch):
        monkeypatch.delenv("LIVE_UPDATES", raising=False)
        args = parse_args(["--directory", "site:/srv/site /srv/icons", "--extensions", "png,svg", "--port", "8000"])

        config = build_watcher_config(args)

        assert config.directories == {"site": Path("/srv/site"), "icons": Path("/srv/icons")}
        assert config.extensions == frozenset({"png", "svg"})
        assert config.port == 8000
        assert config.base_url == "http://localhost:8000"
        assert config.live_updates is False

    def test_flags_default_to_environment(self, monkeypatch):
        monkeypatch.setenv("WATCH_DIRECTORIES", "lib:/srv/lib")
        monkeypatch.setenv("WATCH_EXTENSIONS", "js")
        monkeypatch.setenv("PORT", "9300")

        args = parse_args([])
        config = build_watcher_config(args)

        assert config.directories == {"lib": Path("/srv/lib")}
        assert config.extensions == frozenset({"js"})
        assert config.port == 9300

    def test_live_updates_flag(self):
        args = parse_args(["--live-updates", "--public-host", "assets.local"])

        config = build_watcher_config(args)

        assert config.live_updates is True
        assert config.host == "assets.local"


def test_print_startup_info(tmp_path, capsys):
    config = WatcherConfig(directories={"site": tmp_path, "gone": tmp_path / "gone"}, extensions=frozenset({"png"}))

    print_startup_info(config, {"host": "127.0.0.1", "port": 9191, "log_level": "info"})

    out = capsys.readouterr().out
    assert "Starting" in out
    assert f"site -> {tmp_path}" in out
    assert "not found" in out
    assert "Extensions: png" in out
