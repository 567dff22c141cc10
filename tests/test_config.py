"""Tests for configuration loading."""

import json
import os
import tempfile
from pathlib import Path

import pytest
import yaml

from repocdn.config import Config, substitute_env_vars
from repocdn.exceptions import ConfigError


class TestEnvSubstitution:
    """Tests for environment variable substitution."""

    def test_substitute_string(self):
        """Test substituting a string value."""
        os.environ["TEST_VAR"] = "hello"
        result = substitute_env_vars("${TEST_VAR}")
        assert result == "hello"

    def test_substitute_in_dict(self):
        """Test substituting values in a dictionary."""
        os.environ["TEST_KEY"] = "secret"
        data = {"key": "${TEST_KEY}", "other": "value"}
        result = substitute_env_vars(data)
        assert result == {"key": "secret", "other": "value"}

    def test_substitute_in_list(self):
        """Test substituting values in a list."""
        os.environ["TEST_ITEM"] = "item1"
        data = ["${TEST_ITEM}", "item2"]
        result = substitute_env_vars(data)
        assert result == ["item1", "item2"]

    def test_missing_env_var_raises(self):
        """Test that missing env vars raise ValueError."""
        if "NONEXISTENT_VAR" in os.environ:
            del os.environ["NONEXISTENT_VAR"]
        with pytest.raises(ValueError, match="NONEXISTENT_VAR"):
            substitute_env_vars("${NONEXISTENT_VAR}")

    def test_partial_substitution(self):
        """Test substituting part of a string."""
        os.environ["CDN_HOST"] = "cdn.example.com"
        result = substitute_env_vars("https://${CDN_HOST}")
        assert result == "https://cdn.example.com"


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_from_dict(self, sample_config_dict):
        """Test loading config from dictionary."""
        config = Config.from_dict(sample_config_dict)
        assert config.store.backend == "memory"
        assert config.store.repo == "cdn-test"
        assert config.cdn.domain == "https://cdn.example.com"
        assert config.server.port == 3001

    def test_from_yaml_file(self, sample_config_dict):
        """Test loading config from YAML file."""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".yaml", delete=False
        ) as f:
            yaml.dump(sample_config_dict, f)
            f.flush()

            config = Config.from_file(f.name)
            assert config.store.owner == "octo"

            Path(f.name).unlink()

    def test_from_json_file(self, sample_config_dict, tmp_path):
        """Test loading config from JSON file."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps(sample_config_dict))

        config = Config.from_file(path)
        assert config.cdn.default_directory == "media"

    def test_yaml_env_substitution(self, tmp_path, monkeypatch):
        """Test ${VAR} references in a config file."""
        monkeypatch.setenv("TEST_GITHUB_TOKEN", "ghp_test")
        path = tmp_path / "config.yaml"
        path.write_text("store:\n  token: ${TEST_GITHUB_TOKEN}\n")

        config = Config.from_file(path)
        assert config.store.token == "ghp_test"

    def test_defaults(self):
        """Test that defaults are applied."""
        config = Config.from_dict({})
        assert config.store.backend == "github"
        assert config.store.repo == "cdn-mrfrank"
        assert config.store.branch == "main"
        assert config.store.root == ""
        assert config.cdn.domain is None
        assert config.cdn.default_directory == "media"
        assert config.cdn.refresh_interval_seconds == 3600
        assert config.server.port == 3000


class TestFromEnv:
    """Tests for environment-based configuration."""

    def test_reads_known_variables(self):
        """Known variables map onto config sections."""
        config = Config.from_env({
            "GITHUB_TOKEN": "ghp_abc",
            "GITHUB_OWNER": "octo",
            "CDN_DOMAIN": "https://cdn.example.com",
            "PORT": "8080",
            "LOG_LEVEL": "DEBUG",
        })

        assert config.store.token == "ghp_abc"
        assert config.store.owner == "octo"
        assert config.cdn.domain == "https://cdn.example.com"
        assert config.server.port == 8080
        assert config.logging.level == "DEBUG"

    def test_empty_values_use_defaults(self):
        """Empty variables do not override defaults."""
        config = Config.from_env({"PORT": "", "GITHUB_REPO": ""})
        assert config.server.port == 3000
        assert config.store.repo == "cdn-mrfrank"

    @pytest.mark.parametrize("interval", ["0", "-5"])
    def test_non_positive_refresh_interval_is_config_error(self, interval):
        """The refresh interval must be positive."""
        with pytest.raises(ConfigError, match="refresh_interval_seconds"):
            Config.from_env({"REFRESH_INTERVAL_SECONDS": interval})

    def test_invalid_port_is_config_error(self):
        """Type errors surface as ConfigError."""
        with pytest.raises(ConfigError):
            Config.from_env({"PORT": "http"})


class TestValidateRequired:
    """Tests for required settings."""

    def test_github_requires_owner_token_and_domain(self):
        """GitHub backend needs owner, token and CDN domain."""
        config = Config.from_dict({})

        with pytest.raises(ConfigError) as exc_info:
            config.validate_required()

        message = str(exc_info.value)
        assert "GITHUB_OWNER" in message
        assert "GITHUB_TOKEN" in message
        assert "CDN_DOMAIN" in message

    def test_memory_backend_only_requires_domain(self, sample_config_dict):
        """Memory backend needs no credentials."""
        config = Config.from_dict(sample_config_dict)
        config.validate_required()

    def test_complete_github_config_passes(self):
        """A complete GitHub config validates."""
        config = Config.from_dict({
            "store": {"owner": "octo", "token": "ghp_abc"},
            "cdn": {"domain": "https://cdn.example.com"},
        })
        config.validate_required()
