"""
Data models for slidechat.
"""

from .chat import (
    ContentPart,
    ChatMessage,
    ToolInvocation,
    ToolContext,
)
from .config import (
    LLMConfig,
    LLMSettings,
    OrchestratorConfig,
    TodoConfig,
    DiskConfig,
    ImageGenerateConfig,
    BrowserUseConfig,
    ToolsConfig,
    ServerConfig,
    LoggingConfig,
    LangfuseConfig,
    AppConfig,
)

__all__ = [
    # Chat models
    "ContentPart",
    "ChatMessage",
    "ToolInvocation",
    "ToolContext",
    # Config models
    "LLMConfig",
    "LLMSettings",
    "OrchestratorConfig",
    "TodoConfig",
    "DiskConfig",
    "ImageGenerateConfig",
    "BrowserUseConfig",
    "ToolsConfig",
    "ServerConfig",
    "LoggingConfig",
    "LangfuseConfig",
    "AppConfig",
]
