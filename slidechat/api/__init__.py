"""
FastAPI server module for slidechat.

Provides the chat, tool catalogue and health endpoints.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
