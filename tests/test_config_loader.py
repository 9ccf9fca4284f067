"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from tool_agent.config import Config
from tool_agent.config_loader import get_app_config, load_config, resolve_env_vars

TEMPLATE = Path(__file__).parent.parent / "config" / "config.yaml.template"


def write_config(tmp_path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestResolveEnvVars:
    """Tests for ${VAR} interpolation."""

    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("AGENT_TEST_VAR", "value")
        assert resolve_env_vars("x-${AGENT_TEST_VAR}-y") == "x-value-y"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("AGENT_TEST_VAR", raising=False)
        assert resolve_env_vars("${AGENT_TEST_VAR:-fallback}") == "fallback"

    def test_unset_without_default_is_empty(self, monkeypatch):
        monkeypatch.delenv("AGENT_TEST_VAR", raising=False)
        assert resolve_env_vars("${AGENT_TEST_VAR}") == ""


class TestLoadConfig:
    """Tests for load_config."""

    def test_template_loads(self, monkeypatch):
        """The shipped template is a valid configuration."""
        monkeypatch.setenv("OPENWEATHERMAP_API_KEY", "owm-key")
        config = load_config(str(TEMPLATE))
        assert config.loop.max_iterations == 10
        assert config.store.backend == "file"
        assert config.tools.openweathermap_api_key == "owm-key"
        assert config.tools.searxng_endpoint.endswith("/search")

    def test_sections_parsed(self, tmp_path):
        path = write_config(
            tmp_path,
            """
model:
  model: test-model
  temperature: 0.1
  streaming: "false"
loop:
  max_iterations: 3
  require_approval: true
  parallel_tools: true
  system_prompt: Be brief.
tools:
  http_timeout: 5
  searxng:
    url: http://searx.local/search
server:
  port: 9001
logging:
  level: DEBUG
""",
        )
        config = load_config(path)
        assert config.model.model == "test-model"
        assert config.model.temperature == 0.1
        assert config.model.streaming is False
        assert config.loop.max_iterations == 3
        assert config.loop.require_approval is True
        assert config.loop.parallel_tools is True
        assert config.loop.system_prompt == "Be brief."
        assert config.tools.http_timeout == 5.0
        assert config.tools.searxng_endpoint == "http://searx.local/search"
        assert config.server.port == 9001
        assert config.log_level == "DEBUG"

    def test_missing_sections_keep_defaults(self, tmp_path):
        path = write_config(tmp_path, "server:\n  port: 8100\n")
        config = load_config(path)
        assert config.store.backend in ("memory", "file")
        assert config.loop.tool_timeout > 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_empty_file(self, tmp_path):
        with pytest.raises(ValueError, match="empty"):
            load_config(write_config(tmp_path, ""))

    def test_non_mapping(self, tmp_path):
        with pytest.raises(ValueError, match="mapping"):
            load_config(write_config(tmp_path, "- a\n- b\n"))

    def test_unknown_store_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown session store backend"):
            load_config(write_config(tmp_path, "store:\n  backend: redis\n"))


class TestGetAppConfig:
    """Tests for CONFIG_PATH selection used by the CLI and the server."""

    def test_config_path_file_used(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONFIG_PATH", write_config(tmp_path, "server:\n  port: 8123\n"))
        assert get_app_config().server.port == 8123

    def test_environment_without_config_path(self, monkeypatch):
        monkeypatch.delenv("CONFIG_PATH", raising=False)
        assert get_app_config() == Config()

    def test_missing_config_path_file(self, tmp_path, monkeypatch):
        """A CONFIG_PATH that names no file is an error, not a silent fallback."""
        monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "nope.yaml"))
        with pytest.raises(FileNotFoundError):
            get_app_config()

    def test_server_app_reads_config_path(self, tmp_path, monkeypatch):
        from tool_agent.api.main import create_app

        path = write_config(tmp_path, "loop:\n  require_approval: true\n")
        monkeypatch.setenv("CONFIG_PATH", path)
        assert create_app().state.config.loop.require_approval is True
