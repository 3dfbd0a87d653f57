"""Test configuration management."""

import json

import pytest

from streamnotes.config import DATABASE_NAME, ConfigManager, StreamNotesConfig
from streamnotes.utils import default_data_dir


class TestStreamNotesConfig:
    """Test StreamNotesConfig defaults and environment overrides."""

    def test_defaults(self, config_home, monkeypatch):
        monkeypatch.delenv("STREAMNOTES_SAVE_DELAY_MS", raising=False)
        config = StreamNotesConfig()
        assert config.storage_key == "streamnotes_fs_data"
        assert config.save_delay_ms == 0
        assert config.large_upload_bytes == 1024 * 1024
        assert config.skip_hidden_entries is True

    def test_env_prefix(self, config_home, monkeypatch):
        monkeypatch.setenv("STREAMNOTES_ASSET_DEBOUNCE_MS", "75")
        monkeypatch.setenv("STREAMNOTES_SEED_DEMO_DATA", "false")
        config = StreamNotesConfig()
        assert config.asset_debounce_ms == 75
        assert config.seed_demo_data is False

    def test_store_path_defaults_to_config_dir(self, config_home):
        config = StreamNotesConfig()
        assert config.store_path == config_home / ".streamnotes" / DATABASE_NAME

    def test_store_path_override(self, config_home, tmp_path):
        config = StreamNotesConfig(database_path=tmp_path / "custom.db")
        assert config.store_path == tmp_path / "custom.db"

    def test_negative_delay_rejected(self, config_home):
        with pytest.raises(ValueError):
            StreamNotesConfig(save_delay_ms=-1)

    def test_unknown_keys_are_ignored(self, config_home):
        config = StreamNotesConfig.model_validate({"not_a_setting": True, "log_level": "DEBUG"})
        assert config.log_level == "DEBUG"
        assert not hasattr(config, "not_a_setting")

    def test_is_test_env(self, config_home):
        assert StreamNotesConfig(env="test").is_test_env


class TestConfigManager:
    """Test loading and saving config.json."""

    def test_config_dir_follows_data_dir(self, config_home, tmp_path):
        assert ConfigManager().config_dir == default_data_dir()
        explicit = ConfigManager(config_dir=tmp_path / "elsewhere")
        assert explicit.config_file == tmp_path / "elsewhere" / "config.json"
        assert explicit.config_dir.is_dir()

    def test_creates_default_config_file(self, config_home):
        manager = ConfigManager()
        config = manager.config
        assert manager.config_file.exists()
        saved = json.loads(manager.config_file.read_text())
        assert saved["storage_key"] == config.storage_key

    def test_file_values_are_used(self, config_home):
        manager = ConfigManager()
        manager.config_file.write_text(json.dumps({"save_delay_ms": 250}))
        assert manager.load_config().save_delay_ms == 250

    def test_env_overrides_file(self, config_home, monkeypatch):
        manager = ConfigManager()
        manager.config_file.write_text(json.dumps({"save_delay_ms": 250}))
        monkeypatch.setenv("STREAMNOTES_SAVE_DELAY_MS", "5")
        assert manager.load_config().save_delay_ms == 5

    def test_invalid_json_exits(self, config_home):
        manager = ConfigManager()
        manager.config_file.write_text("{broken")
        with pytest.raises(SystemExit):
            manager.load_config()

    def test_save_config_invalidates_cache(self, config_home):
        manager = ConfigManager()
        manager.config_file.write_text(json.dumps({"log_level": "INFO"}))
        assert manager.load_config().log_level == "INFO"

        manager.save_config(StreamNotesConfig(log_level="WARNING"))
        assert manager.load_config().log_level == "WARNING"
