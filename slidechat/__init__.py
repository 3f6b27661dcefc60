"""
slidechat - chat assistant for slide generation

This package provides:
- Async model client for OpenAI-compatible chat-completions endpoints
- Tool-calling orchestration loop (buffered and streaming)
- Tool families: todo planning, session disk files, image generation, browser automation
- FastAPI server and interactive CLI
"""

__version__ = "0.1.0"

from .llm_call import LLMClient
from .orchestration import ChatOrchestrator, OrchestrationResult

__all__ = [
    "ChatOrchestrator",
    "OrchestrationResult",
    "LLMClient",
]
