"""
Configuration models for slidechat.

Defines dataclasses for the unified YAML configuration file.
"""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MODEL = "gpt-4.1"
DEFAULT_MAX_TOOL_RESULT_BYTES = 9_500_000


@dataclass(frozen=True)
class LLMConfig:
    """
    Immutable model-call settings for one orchestration call.

    The orchestration loop reads this snapshot but never mutates or
    persists it.
    """

    endpoint: str
    api_key: str
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 1000


@dataclass
class LLMSettings:
    """Configuration for the chat model endpoint."""
    endpoint: str = ""
    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 1000

    @property
    def is_configured(self) -> bool:
        """Both endpoint and API key are present."""
        return bool(self.endpoint and self.api_key)


@dataclass
class OrchestratorConfig:
    """Configuration for the tool-calling loop."""
    max_iterations: int = 10
    max_tool_result_bytes: int = DEFAULT_MAX_TOOL_RESULT_BYTES
    request_timeout: float = 300.0


@dataclass
class TodoConfig:
    """Configuration for the in-memory todo store."""
    max_sessions: int = 1000


@dataclass
class DiskConfig:
    """Configuration for session disks."""
    root: str = "./data/disks"


@dataclass
class ImageGenerateConfig:
    """Configuration for the image generation tool."""
    api_key: str = ""
    base_url: str = ""
    model: str = ""
    timeout: float = 120.0
    characters_dir: str = "./public/characters"


@dataclass
class BrowserUseConfig:
    """Configuration for the browser automation tool."""
    api_key: str = ""
    base_url: str = "https://api.browser-use.com/api/v2"
    poll_interval: float = 2.0
    timeout: float = 600.0


@dataclass
class ToolsConfig:
    """Configuration for all tool families."""
    enabled: bool = True
    todo: TodoConfig = field(default_factory=TodoConfig)
    disk: DiskConfig = field(default_factory=DiskConfig)
    image_generate: ImageGenerateConfig = field(default_factory=ImageGenerateConfig)
    browser_use: BrowserUseConfig = field(default_factory=BrowserUseConfig)


@dataclass
class ServerConfig:
    """Configuration for the FastAPI server."""
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    reload: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = ""
    secret_key: str = ""
    host: str = ""
    debug: bool = False

    @property
    def is_configured(self) -> bool:
        """Check if Langfuse is configured (both keys present)."""
        return bool(self.public_key and self.secret_key)


@dataclass
class AppConfig:
    """
    Unified application configuration container.

    Holds all configuration sections loaded from the YAML config file.
    """
    version: str = "1.0"
    llm: LLMSettings = field(default_factory=LLMSettings)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)
    source_path: Optional[str] = None

    @property
    def log_level(self) -> str:
        """Shortcut for logging.level."""
        return self.logging.level
