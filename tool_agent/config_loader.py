"""
Configuration loader for the tool agent.

Loads configuration from a YAML file with support for environment
variable interpolation. Sections that are absent keep the defaults
from ``config.py``.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .config import (
    Config,
    LangfuseConfig,
    LoopConfig,
    ModelConfig,
    ServerConfig,
    StoreConfig,
    ToolConfig,
    get_config,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "config.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

STORE_BACKENDS = ("memory", "file")


def resolve_env_vars(value: str) -> str:
    """
    Resolve environment variable references in a string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars resolved
    """

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_model_config(data: dict) -> ModelConfig:
    """Parse model provider configuration from dict."""
    defaults = ModelConfig()
    return ModelConfig(
        base_url=data.get("base_url", defaults.base_url),
        model=data.get("model", defaults.model),
        api_key=data.get("api_key", defaults.api_key),
        temperature=float(data.get("temperature", defaults.temperature)),
        streaming=_as_bool(data.get("streaming"), defaults.streaming),
        timeout=float(data.get("timeout", defaults.timeout)),
    )


def _parse_loop_config(data: dict) -> LoopConfig:
    """Parse orchestration loop configuration from dict."""
    defaults = LoopConfig()
    return LoopConfig(
        max_iterations=int(data.get("max_iterations", defaults.max_iterations)),
        require_approval=_as_bool(data.get("require_approval"), defaults.require_approval),
        parallel_tools=_as_bool(data.get("parallel_tools"), defaults.parallel_tools),
        tool_timeout=float(data.get("tool_timeout", defaults.tool_timeout)),
        system_prompt=data.get("system_prompt", defaults.system_prompt),
    )


def _parse_tool_config(data: dict) -> ToolConfig:
    """Parse tool endpoint configuration from dict."""
    defaults = ToolConfig()
    coingecko = data.get("coingecko", {})
    weather = data.get("openweathermap", {})
    searxng = data.get("searxng", {})

    return ToolConfig(
        coingecko_base_url=coingecko.get("base_url", defaults.coingecko_base_url),
        coingecko_api_key=coingecko.get("api_key", defaults.coingecko_api_key),
        openweathermap_base_url=weather.get("base_url", defaults.openweathermap_base_url),
        openweathermap_api_key=weather.get("api_key", defaults.openweathermap_api_key),
        searxng_endpoint=searxng.get("url", defaults.searxng_endpoint),
        http_timeout=float(data.get("http_timeout", defaults.http_timeout)),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse session store configuration from dict."""
    defaults = StoreConfig()
    backend = data.get("backend", defaults.backend)
    if backend not in STORE_BACKENDS:
        raise ValueError(
            f"Unknown session store backend: {backend} (expected one of {STORE_BACKENDS})"
        )
    return StoreConfig(backend=backend, path=data.get("path", defaults.path))


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server configuration from dict."""
    defaults = ServerConfig()
    return ServerConfig(
        host=data.get("host", defaults.host),
        port=int(data.get("port", defaults.port)),
        workers=int(data.get("workers", defaults.workers)),
        reload=_as_bool(data.get("reload"), defaults.reload),
    )


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    """Parse Langfuse configuration from dict."""
    defaults = LangfuseConfig()
    return LangfuseConfig(
        public_key=data.get("public_key", defaults.public_key),
        secret_key=data.get("secret_key", defaults.secret_key),
        host=data.get("host", defaults.host),
        debug=_as_bool(data.get("debug"), defaults.debug),
    )


def load_config(path: Optional[str] = None) -> Config:
    """
    Load application configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file. If None, uses
              CONFIG_PATH env var or the default path (config/config.yaml).

    Returns:
        Config with all sections parsed

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config is empty or invalid
    """
    if path is None:
        path = os.environ.get("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Configuration file {config_path} is empty")
    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    raw_config = _substitute_env_vars_recursive(raw_config)

    app_config = Config(
        model=_parse_model_config(raw_config.get("model", {})),
        loop=_parse_loop_config(raw_config.get("loop", {})),
        tools=_parse_tool_config(raw_config.get("tools", {})),
        store=_parse_store_config(raw_config.get("store", {})),
        server=_parse_server_config(raw_config.get("server", {})),
        langfuse=_parse_langfuse_config(raw_config.get("langfuse", {})),
        log_level=raw_config.get("logging", {}).get("level", Config().log_level),
    )

    logger.debug(
        f"Configuration loaded: model={app_config.model.model}, "
        f"store={app_config.store.backend}, approval={app_config.loop.require_approval}"
    )

    return app_config


def get_app_config() -> Config:
    """
    Configuration for the surfaces: the YAML file named by CONFIG_PATH when
    that variable is set, otherwise the environment alone.
    """
    if os.environ.get("CONFIG_PATH"):
        return load_config()
    return get_config()
