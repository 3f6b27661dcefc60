"""
Configuration management for slidechat.

Loads a .env file (if present) into the environment, then exposes the
unified YAML configuration and the per-call model settings derived from it.
"""

import logging
from typing import Optional

from dotenv import load_dotenv

from .config_loader import load_app_config
from .errors import ConfigurationError
from .models import AppConfig, LLMConfig

load_dotenv()

logger = logging.getLogger(__name__)


def get_config(reload: bool = False) -> AppConfig:
    """Get the application configuration."""
    return load_app_config(reload=reload)


def has_llm_config(app_config: Optional[AppConfig] = None) -> bool:
    """Check whether the chat model endpoint and key are configured."""
    app_config = app_config or get_config()
    return app_config.llm.is_configured


def get_llm_config(
    app_config: Optional[AppConfig] = None,
    model: Optional[str] = None,
) -> LLMConfig:
    """
    Build the immutable model settings for one orchestration call.

    Args:
        app_config: Configuration to read from. Defaults to the cached config.
        model: Optional model override for this call.

    Raises:
        ConfigurationError: If the endpoint or API key is missing
    """
    app_config = app_config or get_config()
    llm = app_config.llm

    if not llm.endpoint:
        raise ConfigurationError(
            "Missing required environment variable: OPENAI_LLM_ENDPOINT"
        )
    if not llm.api_key:
        raise ConfigurationError(
            "Missing required environment variable: OPENAI_LLM_API_KEY"
        )

    return LLMConfig(
        endpoint=llm.endpoint,
        api_key=llm.api_key,
        model=model or llm.model,
        temperature=llm.temperature,
        max_tokens=llm.max_tokens,
    )
