"""Tests for configuration loading."""

import json

import pytest

from pypushsync.config import PASSWORD_ENV_VAR, load_config
from pypushsync.exceptions import ConfigError


def _write_config(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def config_data(tmp_path):
    return {
        "connections": {
            "prod": {
                "host": "example.org",
                "port": 2222,
                "user": "deploy",
                "password": "secret",
                "worker": 4,
                "sync": {
                    "localRoot": str(tmp_path / "public"),
                    "remoteRoot": "/var/www/html",
                },
                "sidecar": {"uploadList": ["data/*, config.json"]},
            }
        },
        "exclude": ["**/.DS_Store"],
        "logFile": str(tmp_path / "sync.{target}.log"),
    }


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file(self, tmp_path):
        """Test that a missing file is a configuration error."""
        with pytest.raises(ConfigError, match="missing"):
            load_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        """Test that unparsable JSON is a configuration error."""
        path = tmp_path / "sync.config.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_missing_connections(self, tmp_path):
        """Test that a file without connections is rejected."""
        path = _write_config(tmp_path / "sync.config.json", {"exclude": []})
        with pytest.raises(ConfigError, match="connections"):
            load_config(path)

    def test_targets(self, tmp_path, config_data):
        """Test listing the configured connections."""
        path = _write_config(tmp_path / "sync.config.json", config_data)
        assert load_config(path).targets == ["prod"]


class TestGetTarget:
    """Tests for SyncConfig.get_target."""

    def test_full_target(self, tmp_path, config_data):
        """Test that all fields are read."""
        path = _write_config(tmp_path / "sync.config.json", config_data)

        target = load_config(path).get_target("prod")

        assert target.host == "example.org"
        assert target.port == 2222
        assert target.user == "deploy"
        assert target.password == "secret"
        assert target.workers == 4
        assert target.local_root == (tmp_path / "public").resolve()
        assert target.remote_root == "/var/www/html"
        assert target.exclude == ["**/.DS_Store"]
        assert target.upload_list == ["data/*", "config.json"]
        assert target.download_list == []
        assert target.sidecar_local_root == target.local_root
        assert target.sidecar_remote_root == "/var/www/html"
        assert target.log_file == (tmp_path / "sync.prod.log").resolve()
        assert target.cache_path.name == ".sync-cache.prod.json"
        assert target.cleanup_empty_dirs is True
        assert target.cleanup_empty_roots is False
        assert target.fail_on_item_errors is False

    def test_unknown_target(self, tmp_path, config_data):
        """Test that an unknown connection name is rejected."""
        path = _write_config(tmp_path / "sync.config.json", config_data)
        with pytest.raises(ConfigError, match="not found") as exc_info:
            load_config(path).get_target("staging")
        assert "known: prod" in str(exc_info.value)

    @pytest.mark.parametrize(
        "section, value",
        [("sync", "./public"), ("sidecar", ["data/*"]), ("progress", 10)],
    )
    def test_non_object_sections(self, tmp_path, config_data, section, value):
        """Test that sections holding a non-object are configuration errors."""
        if section == "progress":
            config_data["progress"] = value
        else:
            config_data["connections"]["prod"][section] = value
        path = _write_config(tmp_path / "sync.config.json", config_data)

        with pytest.raises(ConfigError, match=f"{section}' must be an object"):
            load_config(path).get_target("prod")

    def test_missing_roots(self, tmp_path, config_data):
        """Test that localRoot and remoteRoot are required."""
        del config_data["connections"]["prod"]["sync"]["remoteRoot"]
        path = _write_config(tmp_path / "sync.config.json", config_data)
        with pytest.raises(ConfigError, match="remoteRoot"):
            load_config(path).get_target("prod")

    def test_legacy_flat_form(self, tmp_path):
        """Test sync keys placed directly on the connection."""
        data = {
            "connections": {
                "old": {
                    "host": "h",
                    "localRoot": str(tmp_path),
                    "remoteRoot": "/srv",
                }
            }
        }
        path = _write_config(tmp_path / "sync.config.json", data)

        target = load_config(path).get_target("old")

        assert target.remote_root == "/srv"
        assert target.port == 22

    def test_password_from_environment(self, tmp_path, config_data, monkeypatch):
        """Test that the password falls back to the environment."""
        del config_data["connections"]["prod"]["password"]
        monkeypatch.setenv(PASSWORD_ENV_VAR, "from-env")
        path = _write_config(tmp_path / "sync.config.json", config_data)

        assert load_config(path).get_target("prod").password == "from-env"

    def test_verbose_uses_small_chunks(self, tmp_path, config_data):
        """Test that verbose logging reports every item unless configured."""
        config_data["logLevel"] = "verbose"
        path = _write_config(tmp_path / "sync.config.json", config_data)

        target = load_config(path).get_target("prod")

        assert target.is_verbose
        assert target.scan_chunk == 1
        assert target.analyze_chunk == 1

    def test_log_level_override(self, tmp_path, config_data):
        """Test that the log level argument wins over the file."""
        config_data["logLevel"] = "verbose"
        path = _write_config(tmp_path / "sync.config.json", config_data)

        target = load_config(path).get_target("prod", log_level="laconic")

        assert target.is_laconic
        assert target.scan_chunk == 100

    def test_invalid_log_level(self, tmp_path, config_data):
        """Test that unknown log levels are rejected."""
        config_data["logLevel"] = "chatty"
        path = _write_config(tmp_path / "sync.config.json", config_data)
        with pytest.raises(ConfigError, match="logLevel"):
            load_config(path).get_target("prod")

    def test_invalid_port(self, tmp_path, config_data):
        """Test that a non-numeric port is a configuration error."""
        config_data["connections"]["prod"]["port"] = "ssh"
        path = _write_config(tmp_path / "sync.config.json", config_data)
        with pytest.raises(ConfigError, match="Invalid value"):
            load_config(path).get_target("prod")

    def test_path_filter_excludes_sidecar(self, tmp_path, config_data):
        """Test that the path filter excludes sidecar patterns."""
        path = _write_config(tmp_path / "sync.config.json", config_data)
        path_filter = load_config(path).get_target("prod").build_path_filter()

        assert not path_filter.is_included("data/users.json")
        assert not path_filter.is_included("config.json")
        assert not path_filter.is_included("img/.DS_Store")
        assert path_filter.is_included("index.html")
