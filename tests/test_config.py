"""Tests for environment-driven configuration."""

import os
from pathlib import Path

import pytest

from clipcloud.config import ClipboardSettings, MySQLConfig, RedisConfig, StorageConfig

CONFIG_VARS = (
    "REDIS_URI", "REDIS_HOST", "REDIS_PORT", "REDIS_DB", "REDIS_PASSWORD",
    "MYSQL_HOST", "MYSQL_USER", "MYSQL_PASS", "MYSQL_DB", "MYSQL_PORT",
    "CLIPBOARD_PAYLOAD_DIR", "CLIPBOARD_DEFAULT_PAGE_SIZE",
    "CLIPBOARD_MAX_PAGE_SIZE", "CLIPBOARD_MAX_ITEMS_PER_OWNER",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # load_dotenv writes straight into os.environ
    env = {k: v for k, v in os.environ.items() if k not in CONFIG_VARS}
    monkeypatch.setattr(os, "environ", env)
    monkeypatch.chdir(tmp_path)
    return env


@pytest.fixture
def empty_env_file(tmp_path):
    path = tmp_path / "empty.env"
    path.write_text("")
    return path


class TestRedisConfig:

    def test_from_uri(self):
        config = RedisConfig.from_uri("redis://:secret@cache.internal:6380/2")

        assert config == RedisConfig(host="cache.internal", port=6380, db=2, password="secret")

    def test_rediss_enables_tls(self):
        assert RedisConfig.from_uri("rediss://cache.internal").ssl is True

    def test_rejects_other_schemes(self):
        with pytest.raises(ValueError, match="scheme"):
            RedisConfig.from_uri("http://cache.internal")

    def test_from_env_prefers_uri(self, clean_env, empty_env_file):
        clean_env["REDIS_URI"] = "redis://uri-host:7000/1"
        clean_env["REDIS_HOST"] = "ignored"

        config = RedisConfig.from_env(env_path=empty_env_file)

        assert (config.host, config.port, config.db) == ("uri-host", 7000, 1)

    def test_from_env_fields(self, clean_env, empty_env_file):
        clean_env.update(REDIS_HOST="redis.local", REDIS_PORT="6390", REDIS_DB="3")

        config = RedisConfig.from_env(env_path=empty_env_file)

        assert config == RedisConfig(host="redis.local", port=6390, db=3)

    def test_defaults(self, empty_env_file):
        assert RedisConfig.from_env(env_path=empty_env_file) == RedisConfig()


class TestEnvFile:

    def test_values_come_from_env_file(self, tmp_path):
        env_file = tmp_path / "clip.env"
        env_file.write_text(
            "MYSQL_HOST=db.local\n"
            "MYSQL_DB=clips\n"
            "CLIPBOARD_MAX_ITEMS_PER_OWNER=25\n"
        )

        mysql_config = MySQLConfig.from_env(env_path=env_file)
        settings = ClipboardSettings.from_env(env_path=env_file)

        assert mysql_config.host == "db.local"
        assert mysql_config.database == "clips"
        assert settings.max_items_per_owner == 25

    def test_real_environment_wins(self, clean_env, tmp_path):
        env_file = tmp_path / "clip.env"
        env_file.write_text("MYSQL_HOST=from-file\n")
        clean_env["MYSQL_HOST"] = "from-env"

        assert MySQLConfig.from_env(env_path=env_file).host == "from-env"

    def test_payload_dir(self, clean_env, empty_env_file, tmp_path):
        clean_env["CLIPBOARD_PAYLOAD_DIR"] = str(tmp_path / "blobs")

        config = StorageConfig.from_env(env_path=empty_env_file)

        assert config.payload_dir == tmp_path / "blobs"
        assert config.create_payload_store().base_dir == (tmp_path / "blobs").resolve()


class TestClipboardSettings:

    def test_defaults(self, empty_env_file):
        settings = ClipboardSettings.from_env(env_path=empty_env_file)

        assert settings == ClipboardSettings(
            default_page_size=50, max_page_size=100, max_items_per_owner=200)

    @pytest.mark.parametrize("value", ["0", "-3", "many"])
    def test_rejects_bad_values(self, clean_env, empty_env_file, value):
        clean_env["CLIPBOARD_MAX_PAGE_SIZE"] = value

        with pytest.raises(ValueError, match="CLIPBOARD_MAX_PAGE_SIZE"):
            ClipboardSettings.from_env(env_path=empty_env_file)

    def test_default_page_cannot_exceed_max(self):
        with pytest.raises(ValueError):
            ClipboardSettings(default_page_size=101, max_page_size=100)

    def test_non_positive_rejected(self):
        with pytest.raises(ValueError, match="max_items_per_owner"):
            ClipboardSettings(max_items_per_owner=0)
