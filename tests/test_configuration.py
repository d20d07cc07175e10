"""Tests for settings, schemas, YAML persistence and the destination registry."""

import pytest
import yaml
from pydantic import ValidationError

from cloudsync.config import (
    ConfigLoader,
    ConfigurationError,
    DestinationConfig,
    InvalidNameError,
    NotFoundError,
    ReconcileMode,
    RemoteConnection,
    SyncSettings,
    build_webdav_url,
    reload_settings,
)
from cloudsync.config.manager import validate_name
from cloudsync.config.schema import normalize_remote_path


class TestSettings:
    """Test environment-driven settings."""

    def test_state_layout(self, settings, tmp_path):
        state = tmp_path / "state"
        assert settings.state_path == state
        assert settings.destinations_dir == state / "destinations"
        assert settings.run_dir == state / "run"
        assert settings.baselines_dir == state / "baselines"
        assert settings.remote_file == state / "remote.yaml"
        assert settings.engine_log_file == state / "logs" / "sync.log"

    def test_defaults(self, settings):
        assert settings.sync.interval_seconds == 60
        assert settings.sync.failure_threshold == 3
        assert settings.remote.default_name == "opencloud"
        assert settings.scheduler.backend == "auto"

    def test_environment_overrides(self, settings, monkeypatch):
        monkeypatch.setenv("CLOUDSYNC_SYNC_INTERVAL_SECONDS", "120")
        monkeypatch.setenv("CLOUDSYNC_LOG_LEVEL", "debug")

        reloaded = reload_settings()
        assert reloaded.sync.interval_seconds == 120
        assert reloaded.logging.level == "DEBUG"

    def test_backup_root_cannot_be_remote_root(self):
        with pytest.raises(ValidationError):
            SyncSettings(backup_root="/")
        assert SyncSettings(backup_root="/backups/").backup_root == "backups"


class TestSchema:
    """Test destination and remote schemas."""

    def test_webdav_url(self):
        expected = "https://cloud.example.com/remote.php/webdav/"
        assert build_webdav_url("cloud.example.com") == expected
        assert build_webdav_url("https://cloud.example.com/") == expected
        assert build_webdav_url("  http://cloud.example.com ") == expected

    def test_remote_path_normalization(self):
        assert normalize_remote_path("/Music//Ableton/") == "Music/Ableton"
        assert normalize_remote_path("./Music") == "Music"
        with pytest.raises(ValueError):
            normalize_remote_path("Music/../../etc")

    def test_destination_requires_remote_subdirectory(self, tmp_path):
        with pytest.raises(ValidationError):
            DestinationConfig(name="ableton", local_path=str(tmp_path), remote_path="/")

    def test_destination_local_path_is_absolute(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        destination = DestinationConfig(name="ableton", local_path="~/Music", remote_path="Music")
        assert destination.local_path == str(tmp_path / "Music")

    def test_remote_spec(self):
        remote = RemoteConnection(name="opencloud")
        assert remote.spec() == "opencloud:"
        assert remote.spec("Music/Ableton") == "opencloud:Music/Ableton"

    def test_mode_descriptions(self):
        assert all(mode.description for mode in ReconcileMode)


class TestConfigLoader:
    """Test YAML persistence."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_model(tmp_path / "missing.yaml", RemoteConnection)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "remote.yaml"
        path.write_text("name: [unclosed")
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_model(path, RemoteConnection)

    def test_invalid_content(self, tmp_path):
        path = tmp_path / "remote.yaml"
        path.write_text("cache_size_gb: 0\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_model(path, RemoteConnection)

    def test_remote_absent_before_setup(self, tmp_path):
        assert ConfigLoader().load_remote(tmp_path / "remote.yaml") is None

    def test_save_remote(self, tmp_path, remote):
        path = tmp_path / "nested" / "remote.yaml"
        ConfigLoader().save_remote(remote, path)

        data = yaml.safe_load(path.read_text())
        assert data["url"] == "https://cloud.example.com/remote.php/webdav/"
        assert "password" not in data
        assert ConfigLoader().load_remote(path) == remote


class TestDestinationRegistry:
    """Test destination lifecycle."""

    @pytest.mark.parametrize("name", ["", "has space", "dots.bad", "slash/bad", "ls", "rm", "add"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidNameError):
            validate_name(name)

    def test_valid_names(self):
        for name in ["ableton", "Photos_2024", "work-docs"]:
            assert validate_name(name) == name

    def test_add_creates_local_directory(self, components, local_dir):
        destination = components.registry.add_or_update("ableton", str(local_dir), "Music/Ableton")

        assert local_dir.is_dir()
        assert destination.remote_path == "Music/Ableton"
        assert components.registry.exists("ableton")
        assert components.registry.get("ableton") == destination

    def test_new_destination_needs_both_paths(self, components, local_dir):
        with pytest.raises(ConfigurationError):
            components.registry.add_or_update("ableton", local_path=str(local_dir))
        assert not components.registry.path_for("ableton").exists()

    def test_remote_path_outside_backup_folder(self, components, local_dir):
        for remote_path in (".cloudsync-backups", "/.cloudsync-backups/old"):
            with pytest.raises(ConfigurationError):
                components.registry.add_or_update("ableton", str(local_dir), remote_path)
        assert not components.registry.exists("ableton")

    def test_update_keeps_unsupplied_fields(self, components, local_dir):
        created = components.registry.add_or_update("ableton", str(local_dir), "Music/Ableton")
        updated = components.registry.add_or_update("ableton", remote_path="Music/Live")

        assert updated.local_path == created.local_path
        assert updated.remote_path == "Music/Live"
        assert updated.created_at == created.created_at

    def test_path_change_invalidates_baseline(self, components, local_dir):
        destination = components.registry.add_or_update("ableton", str(local_dir), "Music/Ableton")
        components.baselines.record(destination, ReconcileMode.NEWER)

        components.registry.add_or_update("ableton", remote_path="Music/Live")

        assert components.baselines.get("ableton") is None

    def test_same_paths_keep_baseline(self, components, local_dir):
        destination = components.registry.add_or_update("ableton", str(local_dir), "Music/Ableton")
        components.baselines.record(destination, ReconcileMode.NEWER)

        again = components.registry.add_or_update("ableton", str(local_dir), "/Music/Ableton/")

        assert components.baselines.has_baseline(again)

    def test_get_unknown(self, components):
        with pytest.raises(NotFoundError):
            components.registry.get("unknown-name")

    def test_list_reflects_later_changes(self, components, tmp_path):
        names = components.registry.list()
        assert list(names) == []

        components.registry.add_or_update("ableton", str(tmp_path / "a"), "A")
        components.registry.add_or_update("photos", str(tmp_path / "p"), "P")
        assert sorted(names) == ["ableton", "photos"]

        components.registry.remove("photos")
        assert list(names) == ["ableton"]

    def test_remove_cascades(self, components, local_dir):
        destination = components.registry.add_or_update("ableton", str(local_dir), "Music/Ableton")
        components.schedule_manager.install("ableton")
        components.failures.record_failure("ableton")
        components.baselines.record(destination, ReconcileMode.LOCAL)
        components.lock.try_acquire("ableton")

        components.registry.remove("ableton")

        assert not components.registry.exists("ableton")
        assert not components.schedule_manager.is_installed("ableton")
        assert components.failures.get("ableton") == 0
        assert components.baselines.get("ableton") is None
        assert components.lock.owner("ableton") is None
        assert local_dir.is_dir()

    def test_remove_unknown(self, components):
        with pytest.raises(NotFoundError):
            components.registry.remove("unknown-name")

    def test_unreadable_destination(self, components):
        path = components.registry.path_for("broken")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("name: broken\n")

        with pytest.raises(ConfigurationError):
            components.registry.get("broken")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
