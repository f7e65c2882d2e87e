"""Tests for reqtrack.lib.config module."""

import pytest
import yaml

from reqtrack.lib.config import (
    Config,
    ConfigError,
    config_exists,
    get_config_path,
    load_config,
    parse_config,
    save_config,
)
from reqtrack.lib.constants import DEFAULT_MAX_WORKERS, DEFAULT_TEST_GLOB, DEFAULT_TEST_NAMES


class TestParseConfig:
    """Per-key validation with fallback to defaults."""

    def test_empty_is_defaults(self):
        assert parse_config(None) == Config()
        assert parse_config({}) == Config()

    def test_valid_values(self):
        config = parse_config({
            "testGlob": "spec/**/*.spec.ts",
            "testRunner": "npx vitest run",
            "testNames": ["it", "test", "scenario"],
            "hashScope": "callback",
            "maxWorkers": 2,
        })
        assert config.test_glob == "spec/**/*.spec.ts"
        assert config.test_runner == "npx vitest run"
        assert config.test_names == ("it", "test", "scenario")
        assert config.hash_scope == "callback"
        assert config.max_workers == 2

    def test_invalid_value_falls_back_with_warning(self, caplog):
        config = parse_config({"maxWorkers": 0, "testGlob": "*.test.ts"})
        assert config.max_workers == DEFAULT_MAX_WORKERS
        assert config.test_glob == "*.test.ts"
        assert "Invalid maxWorkers 0 in config" in caplog.text

    def test_invalid_hash_scope(self, caplog):
        config = parse_config({"hashScope": "file"})
        assert config.hash_scope == "call"
        assert "Invalid hashScope 'file'" in caplog.text

    def test_invalid_test_names(self, caplog):
        config = parse_config({"testNames": ["it(", "test"]})
        assert config.test_names == DEFAULT_TEST_NAMES

    def test_not_a_mapping(self, caplog):
        assert parse_config(["testGlob"]) == Config()
        assert "not a mapping" in caplog.text

    def test_unknown_keys_are_kept(self):
        config = parse_config({"mode": "local"})
        assert config.extra == {"mode": "local"}
        assert config.to_dict()["mode"] == "local"


class TestLoadConfig:
    def test_not_initialized(self, tmp_path):
        assert not config_exists(tmp_path)
        with pytest.raises(ConfigError, match="Run 'req init' first"):
            load_config(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        path = get_config_path(tmp_path)
        path.parent.mkdir()
        path.write_text("testGlob: [")
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(tmp_path)

    def test_save_and_load(self, tmp_path):
        config = Config(test_glob="**/*.spec.js", max_workers=3)
        save_config(tmp_path, config)
        assert config_exists(tmp_path)
        assert load_config(tmp_path) == config

        data = yaml.safe_load(get_config_path(tmp_path).read_text())
        assert data["testGlob"] == "**/*.spec.js"
        assert data["testNames"] == list(DEFAULT_TEST_NAMES)

    def test_partial_file_uses_defaults(self, tmp_path):
        path = get_config_path(tmp_path)
        path.parent.mkdir()
        path.write_text("testRunner: jest\n")
        config = load_config(tmp_path)
        assert config.test_runner == "jest"
        assert config.test_glob == DEFAULT_TEST_GLOB
