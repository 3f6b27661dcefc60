"""
Process-wide Langfuse connection used by request traces.

Tracing is optional. Without keys, or when Langfuse refuses them at
startup, the client stays disabled, every call on it is a no-op and
``reason`` records why.
"""

import logging
from typing import Optional

from langfuse import Langfuse

from ..models import LangfuseConfig

logger = logging.getLogger(__name__)


class TracingClient:
    """Holds the Langfuse SDK client once the startup auth check passes."""

    def __init__(self, config: Optional[LangfuseConfig] = None):
        self.config = config or LangfuseConfig()
        self.langfuse: Optional[Langfuse] = None
        self.reason: Optional[str] = None

        if not self.config.is_configured:
            self.reason = "No Langfuse keys configured (LANGFUSE_PUBLIC_KEY, LANGFUSE_SECRET_KEY)"
            logger.debug(f"Tracing disabled: {self.reason}")
            return

        self.langfuse = self._connect()

    @property
    def host(self) -> str:
        return self.config.host or "https://cloud.langfuse.com"

    def _connect(self) -> Optional[Langfuse]:
        options = {
            "public_key": self.config.public_key,
            "secret_key": self.config.secret_key,
            "debug": self.config.debug,
        }
        if self.config.host:
            options["host"] = self.config.host

        try:
            langfuse = Langfuse(**options)
            accepted = langfuse.auth_check()
        except Exception as e:
            self.reason = f"Langfuse at {self.host} is unreachable: {e}"
            logger.warning(f"Tracing disabled: {self.reason}")
            return None

        if not accepted:
            self.reason = f"Langfuse at {self.host} rejected the keys (auth_check returned False)"
            logger.warning(f"Tracing disabled: {self.reason}")
            return None

        logger.info(f"Langfuse tracing enabled ({self.host})")
        return langfuse

    @property
    def enabled(self) -> bool:
        return self.langfuse is not None

    def flush(self) -> None:
        """Send buffered observations; called once per chat request."""
        if self.langfuse is None:
            return
        try:
            self.langfuse.flush()
        except Exception as e:
            logger.warning(f"Failed to flush traces: {e}")

    def shutdown(self) -> None:
        if self.langfuse is None:
            return
        try:
            self.langfuse.shutdown()
        except Exception as e:
            logger.warning(f"Langfuse shutdown failed: {e}")
        finally:
            self.langfuse = None


_client: Optional[TracingClient] = None


def init_tracing_client(config: Optional[LangfuseConfig] = None) -> TracingClient:
    """Connect once at startup; later requests share the result."""
    global _client
    _client = TracingClient(config)
    return _client


def get_tracing_client() -> Optional[TracingClient]:
    return _client


def shutdown_tracing() -> None:
    global _client
    if _client is not None:
        _client.shutdown()
        _client = None
