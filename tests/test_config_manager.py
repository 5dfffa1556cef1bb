"""
Unit tests for configuration loading.
"""

import pytest
import yaml

from config_manager import DEFAULT_CONFIG, get_section, load_config, save_config
from exceptions import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_user_values_merged_over_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"notifications": {"dedup_window_hours": 12}, "user": {"monthly_budget": 500}}))

        config = load_config(path)

        assert config["notifications"]["dedup_window_hours"] == 12
        assert config["notifications"]["approaching_threshold"] == 80
        assert config["user"]["monthly_budget"] == 500
        assert config["database"]["path"] == "expenses.db"

    def test_defaults_are_not_mutated(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("{}")

        config = load_config(path)
        config["logging"]["level"] = "DEBUG"

        assert DEFAULT_CONFIG["logging"]["level"] == "INFO"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("database: [unclosed")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            load_config(path)


class TestSaveConfig:
    """Tests for save_config."""

    def test_save_preserves_existing_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"custom": {"keep": True}}))

        assert save_config({"user": {"monthly_budget": 750}}, path) is True

        saved = yaml.safe_load(path.read_text())
        assert saved == {"custom": {"keep": True}, "user": {"monthly_budget": 750}}

    def test_save_failure_returns_false(self, tmp_path):
        assert save_config({"user": {}}, tmp_path / "missing" / "config.yaml") is False


def test_get_section_falls_back_to_defaults():
    assert get_section({}, "ocr") == DEFAULT_CONFIG["ocr"]
    assert get_section({"ocr": {"timeout_seconds": 1}}, "ocr") == {"timeout_seconds": 1}
