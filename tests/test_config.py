"""Tests for il_sync.config: env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the flat runtime
Config: validate_config() and load_config().
"""

import logging

import pytest

from il_sync.config import DEFAULT_BLOB_HOST, Config, load_config, validate_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in (
        "IL_SYNC_ROOT",
        "IL_SYNC_SERVER_URL",
        "IL_SYNC_AUTH_TOKEN",
        "IL_SYNC_INSECURE",
    ):
        monkeypatch.delenv(key, raising=False)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    def test_valid_config(self):
        validate_config(
            Config(sync_root="/data", server_url="https://notes.example.com", auth_token="t")
        )

    def test_http_url_valid(self):
        validate_config(Config(sync_root="/data", server_url="http://localhost:3000"))

    def test_invalid_url_no_scheme(self):
        with pytest.raises(ValueError, match="must start with http:// or https://"):
            validate_config(Config(sync_root="/data", server_url="example.com"))

    def test_url_without_host(self):
        with pytest.raises(ValueError, match="hostname"):
            validate_config(Config(sync_root="/data", server_url="https://"))

    def test_trailing_slash_stripped(self):
        config = Config(sync_root="/data", server_url="https://notes.example.com/ ")
        validate_config(config)
        assert config.server_url == "https://notes.example.com"

    def test_empty_root(self):
        with pytest.raises(ValueError, match="Sync root"):
            validate_config(Config(sync_root="  ", server_url="https://x.com"))

    @pytest.mark.parametrize(
        "field", ["debounce_seconds", "pull_interval_seconds", "timeout_seconds"]
    )
    def test_non_positive_timers(self, field):
        config = Config(sync_root="/data", server_url="https://x.com", **{field: 0})
        with pytest.raises(ValueError, match=field):
            validate_config(config)

    def test_missing_token_only_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="il_sync.config"):
            validate_config(Config(sync_root="/data", server_url="https://x.com"))
        assert "No auth token" in caplog.text

    def test_insecure_warns(self, caplog):
        config = Config(sync_root="/d", server_url="https://x.com", auth_token="t", insecure=True)
        with caplog.at_level(logging.WARNING, logger="il_sync.config"):
            validate_config(config)
        assert "SSL verification disabled" in caplog.text


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    def test_cli_args(self):
        config = load_config(
            sync_root="/cli", server_url="https://cli.example.com", auth_token="tok"
        )
        assert config.sync_root == "/cli"
        assert config.server_url == "https://cli.example.com"
        assert config.auth_token == "tok"

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("IL_SYNC_ROOT", "/env")
        monkeypatch.setenv("IL_SYNC_SERVER_URL", "https://env.example.com")
        monkeypatch.setenv("IL_SYNC_AUTH_TOKEN", "env-token")
        config = load_config()
        assert (config.sync_root, config.server_url, config.auth_token) == (
            "/env",
            "https://env.example.com",
            "env-token",
        )

    def test_precedence_cli_env_yaml(self, monkeypatch):
        monkeypatch.setenv("IL_SYNC_SERVER_URL", "https://env.example.com")
        config = load_config(
            sync_root="/cli",
            yaml_fallbacks={
                "root": "/yaml",
                "server_url": "https://yaml.example.com",
                "auth_token": "yaml-token",
            },
        )
        assert config.sync_root == "/cli"
        assert config.server_url == "https://env.example.com"
        assert config.auth_token == "yaml-token"

    def test_missing_root(self):
        with pytest.raises(ValueError, match="Sync root not found"):
            load_config(server_url="https://x.com")

    def test_missing_server_url(self):
        with pytest.raises(ValueError, match="Server URL not found"):
            load_config(sync_root="/data")

    def test_missing_token_allowed(self):
        config = load_config(sync_root="/d", server_url="https://x.com")
        assert config.auth_token == ""

    def test_defaults(self):
        config = load_config(sync_root="/d", server_url="https://x.com")
        assert config.blob_host == DEFAULT_BLOB_HOST
        assert config.document_extensions == (".md",)
        assert config.debounce_seconds == 3.0
        assert config.pull_interval_seconds == 30.0
        assert config.last_sync_at == ""
        assert config.insecure is False

    def test_yaml_only_fields(self):
        config = load_config(
            sync_root="/d",
            server_url="https://x.com",
            yaml_fallbacks={
                "blob_host": "blobs.example.com",
                "document_extensions": [".md", ".markdown"],
                "debounce_seconds": 1,
                "pull_interval_seconds": 10,
                "last_sync_at": "c5",
            },
        )
        assert config.blob_host == "blobs.example.com"
        assert config.document_extensions == (".md", ".markdown")
        assert config.debounce_seconds == 1.0
        assert config.pull_interval_seconds == 10.0
        assert config.last_sync_at == "c5"

    @pytest.mark.parametrize("value,expected", [("true", True), ("0", False), ("yes", True)])
    def test_insecure_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("IL_SYNC_INSECURE", value)
        config = load_config(
            sync_root="/d", server_url="https://x.com", yaml_fallbacks={"insecure": True}
        )
        assert config.insecure is expected

    def test_insecure_cli_wins(self, monkeypatch):
        monkeypatch.setenv("IL_SYNC_INSECURE", "false")
        config = load_config(sync_root="/d", server_url="https://x.com", insecure=True)
        assert config.insecure is True

    def test_root_path_expands_user(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = Config(sync_root="~/docs", server_url="https://x.com")
        assert config.root_path == (tmp_path / "docs").resolve()
