"""Tests for exthost.settings and exthost.logging_config."""

import logging
from pathlib import Path

import pytest
import yaml

from exthost.logging_config import setup_logging
from exthost.settings import (
    apply_env_overrides,
    extensions_root,
    get_default_settings,
    get_setting,
    load_settings,
    reload_settings,
)


@pytest.fixture(autouse=True)
def _fresh_cache():
    reload_settings()
    yield
    reload_settings()


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    """Without settings.yaml the defaults are returned."""
    settings = load_settings(tmp_path)
    assert get_setting(settings, "host.version") == "0.0.82"
    assert get_setting(settings, "extensions.install_concurrency") == 3
    assert get_setting(settings, "extensions.missing.key", "fallback") == "fallback"


def test_yaml_merged_over_defaults(tmp_path: Path) -> None:
    """Nested keys from settings.yaml override defaults; siblings survive."""
    (tmp_path / "settings.yaml").write_text(
        yaml.safe_dump({"extensions": {"update_check": "daily", "global_extensions": ["coc-json"]}})
    )
    settings = load_settings(tmp_path)
    assert settings["extensions"]["update_check"] == "daily"
    assert settings["extensions"]["global_extensions"] == ["coc-json"]
    assert settings["extensions"]["modules_dir"] == "node_modules"


def test_null_in_yaml_keeps_default(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text("extensions:\n  npm_bin_path:\n  update_check: weekly\n")
    settings = load_settings(tmp_path)
    assert settings["extensions"]["npm_bin_path"] == "npm"
    assert settings["extensions"]["update_check"] == "weekly"
    assert get_setting(settings, "extensions.update_check.deeper", "fallback") == "fallback"


def test_cached_until_reload(tmp_path: Path) -> None:
    """load_settings() is cached; reload_settings() re-reads the file."""
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({"download": {"timeout": 5}}))
    assert load_settings(tmp_path)["download"]["timeout"] == 5
    path.write_text(yaml.safe_dump({"download": {"timeout": 30}}))
    assert load_settings(tmp_path)["download"]["timeout"] == 5
    reload_settings()
    assert load_settings(tmp_path)["download"]["timeout"] == 30


def test_invalid_yaml_falls_back(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text("extensions: [unclosed")
    assert load_settings(tmp_path)["extensions"]["npm_bin_path"] == "npm"


def test_defaults_are_copies() -> None:
    first = get_default_settings()
    first["extensions"]["global_extensions"].append("x")
    assert get_default_settings()["extensions"]["global_extensions"] == []


def test_env_overrides(tmp_path: Path) -> None:
    """EXTHOST_* variables map onto extension settings."""
    settings = apply_env_overrides(
        get_default_settings(),
        {
            "EXTHOST_NO_PLUGINS": "1",
            "EXTHOST_SINGLE_FILE_DIR": str(tmp_path / "single"),
            "EXTHOST_DATA_HOME": str(tmp_path / "data"),
        },
    )
    assert settings["extensions"]["no_plugins"] is True
    assert settings["extensions"]["single_file_dir"] == str(tmp_path / "single")
    assert extensions_root(settings) == tmp_path / "data" / "extensions"


def test_env_overrides_ignore_falsy() -> None:
    settings = apply_env_overrides(get_default_settings(), {"EXTHOST_NO_PLUGINS": "false"})
    assert settings["extensions"]["no_plugins"] is False


def test_setup_logging_writes_file(tmp_path: Path) -> None:
    """Root logger gets a rotating file handler under base_dir."""
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        setup_logging(tmp_path, {"logging": {"file": "logs/test.log", "level": "DEBUG"}})
        logging.getLogger("exthost.test").debug("hello file")
        for handler in root.handlers:
            handler.flush()
        assert "hello file" in (tmp_path / "logs" / "test.log").read_text(encoding="utf-8")
    finally:
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)
        for handler in saved[0]:
            root.addHandler(handler)
        root.setLevel(saved[1])
