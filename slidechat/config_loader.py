"""
Configuration loader for slidechat.

Loads configuration from YAML files with support for
environment variable interpolation.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import (
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

logger = logging.getLogger(__name__)

# Packaged default config, overridable with CONFIG_PATH
DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

# Singleton cache for app config
_app_config: Optional[AppConfig] = None


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
    """
    Recursively substitute environment variables in a data structure.

    Args:
        data: Any data structure (dict, list, str, etc.)

    Returns:
        Data structure with env vars resolved
    """
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "off")
    return bool(value)


def _as_number(value: Any, default, cast):
    if value is None or value == "":
        return default
    return cast(value)


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _parse_llm_config(data: dict) -> LLMSettings:
    """Parse chat model configuration from dict."""
    return LLMSettings(
        endpoint=_as_str(data.get("endpoint")),
        api_key=_as_str(data.get("api_key")),
        model=_as_str(data.get("model")) or "gpt-4.1",
        temperature=_as_number(data.get("temperature"), 0.7, float),
        max_tokens=_as_number(data.get("max_tokens"), 1000, int),
    )


def _parse_orchestrator_config(data: dict) -> OrchestratorConfig:
    """Parse orchestration loop configuration from dict."""
    return OrchestratorConfig(
        max_iterations=int(data.get("max_iterations", 10)),
        max_tool_result_bytes=int(data.get("max_tool_result_bytes", 9_500_000)),
        request_timeout=float(data.get("request_timeout", 300)),
    )


def _parse_image_generate_config(data: dict) -> ImageGenerateConfig:
    """Parse image generation configuration from dict."""
    timeout_ms = _as_number(data.get("timeout_ms"), 120000, int)
    return ImageGenerateConfig(
        api_key=_as_str(data.get("api_key")),
        base_url=_as_str(data.get("base_url")),
        model=_as_str(data.get("model")),
        timeout=timeout_ms / 1000.0,
        characters_dir=_as_str(data.get("characters_dir"), "./public/characters"),
    )


def _parse_browser_use_config(data: dict) -> BrowserUseConfig:
    """Parse browser automation configuration from dict."""
    return BrowserUseConfig(
        api_key=_as_str(data.get("api_key")),
        base_url=_as_str(data.get("base_url")) or "https://api.browser-use.com/api/v2",
        poll_interval=float(data.get("poll_interval", 2.0)),
        timeout=float(data.get("timeout", 600)),
    )


def _parse_tools_config(data: dict) -> ToolsConfig:
    """Parse tools configuration from dict."""
    todo_data = data.get("todo") or {}
    disk_data = data.get("disk") or {}

    return ToolsConfig(
        enabled=_as_bool(data.get("enabled"), True),
        todo=TodoConfig(max_sessions=int(todo_data.get("max_sessions", 1000))),
        disk=DiskConfig(root=_as_str(disk_data.get("root"), "./data/disks")),
        image_generate=_parse_image_generate_config(data.get("image_generate") or {}),
        browser_use=_parse_browser_use_config(data.get("browser_use") or {}),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server configuration from dict."""
    return ServerConfig(
        host=data.get("host", "0.0.0.0"),
        port=int(data.get("port", 8000)),
        workers=int(data.get("workers", 1)),
        reload=_as_bool(data.get("reload"), False),
    )


def _parse_logging_config(data: dict) -> LoggingConfig:
    """Parse logging configuration from dict."""
    return LoggingConfig(
        level=data.get("level") or "INFO",
    )


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    """Parse Langfuse configuration from dict."""
    return LangfuseConfig(
        public_key=_as_str(data.get("public_key")),
        secret_key=_as_str(data.get("secret_key")),
        host=_as_str(data.get("host")),
        debug=_as_bool(data.get("debug"), False),
    )


def load_app_config(path: Optional[str] = None, reload: bool = False) -> AppConfig:
    """
    Load unified application configuration from a YAML file.

    Uses a singleton pattern - subsequent calls return the cached config
    unless reload=True is specified.

    Args:
        path: Path to the YAML configuration file. If None, uses
              CONFIG_PATH env var or the packaged default_config.yaml.
        reload: If True, force reload from disk instead of using cache.

    Returns:
        AppConfig with all configuration loaded

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config is invalid
    """
    global _app_config

    # Return cached config if available and not reloading
    if _app_config is not None and not reload:
        return _app_config

    if path is None:
        path = os.environ.get("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found at {config_path}. "
            f"Set CONFIG_PATH to a valid file or unset it to use the packaged defaults."
        )

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Configuration file {config_path} is empty")

    raw_config = _substitute_env_vars_recursive(raw_config)

    try:
        app_config = AppConfig(
            version=str(raw_config.get("version", "1.0")),
            llm=_parse_llm_config(raw_config.get("llm") or {}),
            orchestrator=_parse_orchestrator_config(raw_config.get("orchestrator") or {}),
            tools=_parse_tools_config(raw_config.get("tools") or {}),
            server=_parse_server_config(raw_config.get("server") or {}),
            logging=_parse_logging_config(raw_config.get("logging") or {}),
            langfuse=_parse_langfuse_config(raw_config.get("langfuse") or {}),
            source_path=str(config_path),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    for error in validate_app_config(app_config):
        logger.warning(f"Config validation warning: {error}")

    _app_config = app_config

    logger.debug(
        f"Configuration loaded: version={app_config.version}, "
        f"model={app_config.llm.model}, tools_enabled={app_config.tools.enabled}"
    )

    return app_config


def validate_app_config(config: AppConfig) -> list[str]:
    """
    Validate an application configuration.

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not config.llm.endpoint:
        errors.append("llm: missing endpoint (OPENAI_LLM_ENDPOINT)")
    if not config.llm.api_key:
        errors.append("llm: missing api_key (OPENAI_LLM_API_KEY)")
    if config.llm.max_tokens <= 0:
        errors.append("llm: max_tokens must be positive")
    if config.orchestrator.max_iterations <= 0:
        errors.append("orchestrator: max_iterations must be positive")
    if config.orchestrator.max_tool_result_bytes <= 0:
        errors.append("orchestrator: max_tool_result_bytes must be positive")
    if config.tools.todo.max_sessions <= 0:
        errors.append("tools.todo: max_sessions must be positive")

    return errors


def reset_config_cache() -> None:
    """Reset the configuration cache, forcing a reload on next access."""
    global _app_config
    _app_config = None
    logger.debug("Configuration cache reset")
