"""
Langfuse tracing client wrapper with graceful degradation.

Uses Langfuse SDK v3 (OpenTelemetry-based) API.

Missing credentials or a failed connectivity check leave the client
disabled; every tracing operation is then a no-op.
"""

import logging
from typing import Any, Optional

from langfuse import Langfuse

from ..config import LangfuseConfig

logger = logging.getLogger(__name__)


class TracingClient:
    """
    Langfuse client wrapper with graceful degradation.

    One instance is created by the surface (API lifespan or CLI) and passed
    to the orchestration loop.
    """

    def __init__(
        self,
        public_key: str = "",
        secret_key: str = "",
        host: str = "",
        debug: bool = False,
    ):
        """
        Initialize the tracing client.

        Args:
            public_key: Langfuse public key
            secret_key: Langfuse secret key
            host: Langfuse host URL (optional)
            debug: Enable debug logging in langfuse
        """
        self._client: Optional[Langfuse] = None
        self._enabled = False
        self._error: Optional[str] = None

        if not public_key or not secret_key:
            self._error = "Langfuse credentials not configured"
            logger.debug(f"Tracing disabled: {self._error}")
            return

        if host and not host.startswith(("http://", "https://")):
            logger.warning(
                f"LANGFUSE_HOST '{host}' may be malformed. "
                "Expected format: http://hostname:port or https://hostname:port."
            )

        try:
            kwargs: dict[str, Any] = {
                "public_key": public_key,
                "secret_key": secret_key,
                "debug": debug,
            }
            if host:
                kwargs["host"] = host

            self._client = Langfuse(**kwargs)

            if not self._validate_connectivity():
                return

            self._enabled = True
            logger.info(f"Langfuse tracing enabled (host: {host or 'default'})")
        except Exception as e:
            self._error = f"Failed to initialize Langfuse client: {e}"
            self._client = None
            logger.warning(f"Tracing disabled: {self._error}")

    def _validate_connectivity(self) -> bool:
        """Run auth_check() once so a bad host or key disables tracing at startup."""
        if not self._client:
            return False

        try:
            ok = self._client.auth_check()
        except Exception as e:
            ok = False
            self._error = f"Langfuse connectivity check failed: {e}"
        else:
            if not ok:
                self._error = (
                    "Langfuse auth_check() failed - endpoint may be unreachable or "
                    "credentials may be invalid."
                )
        if not ok:
            logger.warning(f"Tracing disabled: {self._error}")
            self._client = None
        return ok

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def error(self) -> Optional[str]:
        """Reason tracing is disabled, if it is."""
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        """The underlying Langfuse client (None if disabled)."""
        return self._client

    def flush(self) -> None:
        if not self._enabled or not self._client:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning(f"Failed to flush tracing events: {e}")

    def shutdown(self) -> None:
        """Shutdown the tracing client, flushing any remaining events."""
        if not self._enabled or not self._client:
            return
        try:
            self._client.shutdown()
            logger.info("Langfuse tracing client shutdown complete")
        except Exception as e:
            logger.warning(f"Error during tracing client shutdown: {e}")
        finally:
            self._enabled = False


def create_tracing_client(config: LangfuseConfig) -> TracingClient:
    """Build a tracing client from configuration; disabled when keys are absent."""
    return TracingClient(
        public_key=config.public_key,
        secret_key=config.secret_key,
        host=config.host,
        debug=config.debug,
    )
