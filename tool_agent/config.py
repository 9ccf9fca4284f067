"""
Configuration management for the tool agent.

Loads all configuration from environment variables (and a local ``.env``
file) with sensible defaults for local development. A YAML file can be used
instead through ``config_loader.load_config``.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that can answer questions and perform "
    "calculations. Use the tools at your disposal to give your answers, and "
    "reply with a respectful tone in no more than 2 sentences for each "
    "response coming from a tool."
)


@dataclass
class ModelConfig:
    """Configuration for the chat model provider."""
    base_url: str = os.getenv("MODEL_BASE_URL", "https://api.openai.com/v1")
    model: str = os.getenv("MODEL_NAME", "gpt-4o")
    api_key: str = os.getenv("OPENAI_API_KEY", "")
    temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.5"))
    streaming: bool = _env_bool("MODEL_STREAMING", "true")
    # Seconds; 0 disables the timeout.
    timeout: float = float(os.getenv("MODEL_TIMEOUT", "60"))


@dataclass
class LoopConfig:
    """Configuration for the orchestration loop."""
    # 0 means no iteration cap.
    max_iterations: int = int(os.getenv("MAX_ITERATIONS", "0"))
    require_approval: bool = _env_bool("REQUIRE_APPROVAL", "false")
    parallel_tools: bool = _env_bool("PARALLEL_TOOLS", "false")
    tool_timeout: float = float(os.getenv("TOOL_TIMEOUT", "30"))
    system_prompt: str = os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)


@dataclass
class ToolConfig:
    """Configuration for tool endpoints and credentials."""
    coingecko_base_url: str = os.getenv(
        "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"
    )
    coingecko_api_key: str = os.getenv("COINGECKO_API_KEY", "")
    openweathermap_base_url: str = os.getenv(
        "OPENWEATHERMAP_BASE_URL", "https://api.openweathermap.org/data/2.5"
    )
    openweathermap_api_key: str = os.getenv("OPENWEATHERMAP_API_KEY", "")
    searxng_endpoint: str = os.getenv("SEARXNG_ENDPOINT", "http://localhost:8080/search")
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "30"))


@dataclass
class StoreConfig:
    """Configuration for the session state backend."""
    backend: str = os.getenv("SESSION_STORE_BACKEND", "memory")  # memory | file
    path: str = os.getenv("SESSION_STORE_PATH", ".sessions")


@dataclass
class ServerConfig:
    """Configuration for the FastAPI server."""
    host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    port: int = int(os.getenv("SERVER_PORT", "8000"))
    workers: int = int(os.getenv("SERVER_WORKERS", "1"))
    reload: bool = _env_bool("SERVER_RELOAD", "false")


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    secret_key: str = os.getenv("LANGFUSE_SECRET_KEY", "")
    host: str = os.getenv("LANGFUSE_HOST", "")
    debug: bool = _env_bool("LANGFUSE_DEBUG", "false")

    @property
    def enabled(self) -> bool:
        """Auto-enable when both keys are configured."""
        return bool(self.public_key and self.secret_key)


@dataclass
class Config:
    """Main configuration container."""
    model: ModelConfig = field(default_factory=ModelConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def get_config() -> Config:
    """Get the application configuration from the environment."""
    return Config()
