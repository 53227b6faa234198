"""
Tests for configuration loading, environment overrides and serialization.
"""

import json

import pytest
import yaml

from scml.core.config import SCMLConfig, load_config


class TestDefaults:
    def test_defaults_loaded_from_yaml(self):
        config = SCMLConfig()

        assert config.connection.port == 445
        assert config.retry.max_attempts == 2
        assert config.retry.base_delay == 2.0
        assert config.session.keepalive_seconds == 30.0
        assert config.inventory.sidecar_suffix == ".INI"
        assert config.download.output_dir == "CMLootOut"
        assert config.download.parallel == 1
        assert config.analysis.max_content_bytes == 10 * 1024 * 1024
        assert "*.part" in config.analysis.ignore_patterns

    def test_instances_do_not_share_lists(self):
        first = SCMLConfig()
        first.analysis.ignore_patterns.append("extra")
        assert "extra" not in SCMLConfig().analysis.ignore_patterns


class TestFileLoading:
    def test_yaml_sections_override_defaults(self, tmp_path):
        path = tmp_path / "scml.yaml"
        path.write_text("download:\n  parallel: 6\n  output_dir: loot\n", encoding="utf-8")

        config = SCMLConfig.from_file(path)

        assert config.download.parallel == 6
        assert config.download.output_dir == "loot"
        assert config.retry.max_attempts == 2

    def test_json(self, tmp_path):
        path = tmp_path / "scml.json"
        path.write_text(json.dumps({"retry": {"max_attempts": 3}}), encoding="utf-8")

        assert SCMLConfig.from_file(path).retry.max_attempts == 3

    def test_empty_file(self, tmp_path):
        path = tmp_path / "scml.yaml"
        path.write_text("", encoding="utf-8")

        assert SCMLConfig.from_file(path).connection.port == 445

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SCMLConfig.from_file(tmp_path / "nope.yaml")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "scml.toml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError):
            SCMLConfig.from_file(path)


class TestEnvOverrides:
    def test_typed_overrides(self, monkeypatch):
        monkeypatch.setenv("SCML_DOWNLOAD_PARALLEL", "8")
        monkeypatch.setenv("SCML_RETRY_BASE_DELAY", "0.5")
        monkeypatch.setenv("SCML_DOWNLOAD_PRESERVE_FILENAMES", "yes")
        monkeypatch.setenv("SCML_CONNECTION_DOMAIN", "CORP")

        config = load_config()

        assert config.download.parallel == 8
        assert config.retry.base_delay == 0.5
        assert config.download.preserve_filenames is True
        assert config.connection.domain == "CORP"

    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        path = tmp_path / "scml.yaml"
        path.write_text("logging:\n  level: WARNING\n", encoding="utf-8")
        monkeypatch.setenv("SCML_LOGGING_LEVEL", "DEBUG")

        assert load_config(path).logging.level == "DEBUG"

    def test_overrides_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("SCML_DOWNLOAD_PARALLEL", "8")
        assert load_config(apply_env=False).download.parallel == 1


class TestSave:
    def test_yaml_round_trip(self, tmp_path):
        config = SCMLConfig()
        config.download.parallel = 5
        path = tmp_path / "nested" / "scml.yaml"

        config.save(path)

        assert yaml.safe_load(path.read_text(encoding="utf-8"))["download"]["parallel"] == 5
        assert SCMLConfig.from_file(path).download.parallel == 5

    def test_json_output(self, tmp_path):
        path = tmp_path / "scml.json"
        SCMLConfig().save(path)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) == {
            "connection", "retry", "session", "inventory", "download", "analysis", "logging",
        }

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError):
            SCMLConfig().save(tmp_path / "scml.ini")
