"""Tests for configuration loading."""

import json
import os
import tempfile
from pathlib import Path

import pytest
import yaml

from boltbox.config import Config, substitute_env_vars


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
        os.environ["PREFIX"] = "prod"
        result = substitute_env_vars("${PREFIX}-sandbox")
        assert result == "prod-sandbox"

    def test_non_strings_untouched(self):
        """Numbers and booleans pass through unchanged."""
        assert substitute_env_vars({"port": 8080, "debug": True}) == {"port": 8080, "debug": True}


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_from_dict(self, sample_config_dict):
        """Test loading config from dictionary."""
        config = Config.from_dict(sample_config_dict)
        assert config.sandbox.backend == "memory"
        assert config.sandbox.request_timeout_seconds == 5
        assert config.reaper.idle_seconds == 600
        assert config.agent.provider == "mock"
        assert config.retry.backoff_seconds == 0

    def test_from_yaml_file(self, sample_config_dict):
        """Test loading config from YAML file."""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".yaml", delete=False
        ) as f:
            yaml.dump(sample_config_dict, f)
            f.flush()

            config = Config.from_file(f.name)
            assert config.agent.provider == "mock"

            Path(f.name).unlink()

    def test_from_json_file(self, sample_config_dict):
        """Files without a YAML suffix are read as JSON."""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".json", delete=False
        ) as f:
            json.dump(sample_config_dict, f)
            f.flush()

            config = Config.from_file(f.name)
            assert config.reaper.destroy_seconds == 3600

            Path(f.name).unlink()

    def test_empty_yaml_file_uses_defaults(self):
        """An empty YAML document yields the default config."""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".yml", delete=False
        ) as f:
            f.write("")
            f.flush()

            config = Config.from_file(f.name)
            assert config.sandbox.backend == "memory"

            Path(f.name).unlink()

    def test_defaults(self):
        """Test that defaults are applied."""
        config = Config.from_dict({})
        assert config.sandbox.backend == "memory"
        assert config.sandbox.agent_port == 8080
        assert config.sandbox.destroy_on_shutdown is False
        assert config.reaper.idle_seconds == 1800
        assert config.reaper.destroy_seconds == 7200
        assert config.agent.provider == "http"
        assert config.agent.dialect == "ai-sdk"
        assert config.agent.url_template == "{ref}"
        assert config.logging.format == "json"

    def test_env_in_backend_credentials(self):
        """API keys can come from the environment."""
        os.environ["TEST_E2B_KEY"] = "e2b-secret"
        config = Config.from_dict({"sandbox": {"backend": "e2b", "api_key": "${TEST_E2B_KEY}"}})
        assert config.sandbox.api_key == "e2b-secret"


class TestThresholds:
    """Tests for reaper threshold ordering."""

    def test_idle_must_exceed_request_timeout(self):
        """An idle threshold below the request timeout is rejected."""
        with pytest.raises(ValueError, match="idle_seconds"):
            Config.from_dict({
                "sandbox": {"request_timeout_seconds": 60},
                "reaper": {"idle_seconds": 30, "destroy_seconds": 3600},
            })

    def test_destroy_must_exceed_idle(self):
        """A destroy threshold at or below the idle threshold is rejected."""
        with pytest.raises(ValueError, match="destroy_seconds"):
            Config.from_dict({"reaper": {"idle_seconds": 600, "destroy_seconds": 600}})

    def test_ordered_thresholds_accepted(self):
        """timeout < idle < destroy is valid."""
        config = Config.from_dict({
            "sandbox": {"request_timeout_seconds": 10},
            "reaper": {"idle_seconds": 20, "destroy_seconds": 30},
        })
        assert config.reaper.destroy_seconds == 30
