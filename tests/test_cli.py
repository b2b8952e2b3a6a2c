"""Unit tests for the pypushsync CLI commands."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from conftest import FakeSession, write_file

from pypushsync.cli import create_session, main


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def session():
    """Provide the in-memory session the CLI connects to."""
    fake = FakeSession()
    with patch("pypushsync.cli.create_session", return_value=fake):
        yield fake


@pytest.fixture
def config_file(tmp_path, local_root):
    """Write a configuration file for the target 'prod'."""
    path = tmp_path / "sync.config.json"
    data = {
        "connections": {
            "prod": {
                "host": "fake",
                "user": "deploy",
                "password": "secret",
                "syncCache": str(tmp_path / "cache.prod.json"),
                "sync": {"localRoot": str(local_root), "remoteRoot": "/remote"},
            }
        },
        "logFile": str(tmp_path / "sync.{target}.log"),
        "progress": {"parallelScan": False},
    }
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "--config" in result.output
        assert "sync" in result.output
        assert "prune" in result.output
        assert "cache-clear" in result.output


class TestSyncCommand:
    """Tests for the sync command."""

    def test_sync_uploads(self, runner, session, config_file, local_root, tmp_path):
        """Test a successful sync run."""
        write_file(local_root, "index.html", "<p>hi</p>")

        result = runner.invoke(
            main, ["--config", str(config_file), "sync", "prod", "--no-progress"]
        )

        assert result.exit_code == 0, result.output
        assert session.read("/remote/index.html") == b"<p>hi</p>"
        assert "Sync complete!" in result.output
        assert (tmp_path / "cache.prod.json").exists()

    def test_sync_writes_log_file(self, runner, session, config_file, local_root, tmp_path):
        """Test that the console transcript is written to the log file."""
        write_file(local_root, "index.html", "<p>hi</p>")

        runner.invoke(
            main, ["--config", str(config_file), "sync", "prod", "--no-progress"]
        )

        log_text = (tmp_path / "sync.prod.log").read_text(encoding="utf-8")
        assert "Sync complete!" in log_text

    def test_sync_dry_run(self, runner, session, config_file, local_root):
        """Test that dry-run uploads nothing."""
        write_file(local_root, "index.html", "<p>hi</p>")

        result = runner.invoke(
            main, ["--config", str(config_file), "sync", "prod", "--dry-run"]
        )

        assert result.exit_code == 0, result.output
        assert session.put_calls == []
        assert "Dry run complete!" in result.output

    def test_sync_with_progress(self, runner, session, config_file, local_root):
        """Test a run with the progress display enabled."""
        write_file(local_root, "a/b.txt", "b")

        result = runner.invoke(main, ["--config", str(config_file), "sync", "prod"])

        assert result.exit_code == 0, result.output
        assert session.read("/remote/a/b.txt") == b"b"

    def test_sync_workers_override(self, runner, session, config_file, local_root):
        """Test that --workers is accepted."""
        for i in range(5):
            write_file(local_root, f"f{i}.txt", str(i))

        result = runner.invoke(
            main,
            ["--config", str(config_file), "sync", "prod", "-w", "3", "--no-progress"],
        )

        assert result.exit_code == 0, result.output
        assert len(session.put_calls) == 5

    def test_sync_connection_failure(self, runner, session, config_file):
        """Test that a fatal error exits with code 1."""
        session.fail_connect = True

        result = runner.invoke(
            main, ["--config", str(config_file), "sync", "prod", "--no-progress"]
        )

        assert result.exit_code == 1
        assert "Connection refused" in result.output

    def test_unknown_target(self, runner, session, config_file):
        """Test that an unknown target exits with code 1."""
        result = runner.invoke(main, ["--config", str(config_file), "sync", "staging"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_missing_config(self, runner, tmp_path):
        """Test that a missing configuration file exits with code 1."""
        result = runner.invoke(
            main, ["--config", str(tmp_path / "none.json"), "sync", "prod"]
        )

        assert result.exit_code == 1
        assert "missing" in result.output


class TestPruneCommand:
    """Tests for the prune command."""

    def test_prune(self, runner, session, config_file):
        """Test removing empty remote directories."""
        session.add_dir("/remote/a/b")

        result = runner.invoke(main, ["--config", str(config_file), "prune", "prod"])

        assert result.exit_code == 0, result.output
        assert session.removed_dirs == ["/remote/a/b", "/remote/a"]
        assert "Removed 2 empty directories" in result.output

    def test_prune_dry_run(self, runner, session, config_file):
        """Test that prune --dry-run removes nothing."""
        session.add_dir("/remote/a")

        result = runner.invoke(
            main, ["--config", str(config_file), "prune", "prod", "--dry-run"]
        )

        assert result.exit_code == 0, result.output
        assert session.removed_dirs == []
        assert "Would remove 1 empty directory" in result.output


class TestCacheClearCommand:
    """Tests for the cache-clear command."""

    def test_cache_clear(self, runner, config_file, tmp_path):
        """Test deleting an existing cache document."""
        cache_path = tmp_path / "cache.prod.json"
        cache_path.write_text('{"version": 1, "local": {}, "remote": {}}')

        result = runner.invoke(
            main, ["--config", str(config_file), "cache-clear", "prod"]
        )

        assert result.exit_code == 0, result.output
        assert not cache_path.exists()

    def test_cache_clear_without_cache(self, runner, config_file):
        """Test clearing when no cache exists."""
        result = runner.invoke(
            main, ["--config", str(config_file), "cache-clear", "prod"]
        )

        assert result.exit_code == 0
        assert "No cache found" in result.output


class TestCreateSession:
    """Tests for create_session."""

    @pytest.mark.parametrize("workers, channels", [(1, 2), (2, 2), (6, 6)])
    def test_channel_pool_follows_workers(self, make_target, workers, channels):
        """Test that the channel pool is sized for the configured workers."""
        session = create_session(make_target(workers=workers, port=2222))

        assert session.max_channels == channels
        assert session.host == "fake"
        assert session.port == 2222
