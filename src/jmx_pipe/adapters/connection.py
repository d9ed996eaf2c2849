"""
Session lifecycle for one remote endpoint.

The manager opens sessions, classifies errors raised elsewhere as
connection loss, and discards dead sessions. It holds no retry policy;
retries are driven by the scheduler.
"""

import logging
from typing import Optional, Tuple

from ..common.exceptions import ConnectionLostError, DegradedCondition
from .core import RegistryConnector, RegistrySession


class ConnectionManager:
    """Opens and discards sessions to ``host:port`` through a connector."""

    def __init__(
        self,
        connector: RegistryConnector,
        host: str,
        port: int,
        credentials: Optional[Tuple[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.connector = connector
        self.host = host
        self.port = port
        self.credentials = credentials
        self.logger = logger or logging.getLogger(__name__)

    async def connect(self) -> RegistrySession:
        """Open a new session.

        Raises:
            ConnectionLostError: If the connect primitive fails for any reason
        """
        self.logger.info(
            f"Establishing a connection to {self.host}:{self.port}",
            extra={"host": self.host, "port": self.port, "authenticated": self.credentials is not None},
        )
        try:
            session = await self.connector.connect(self.host, self.port, self.credentials)
        except ConnectionLostError:
            raise
        except Exception as e:
            raise ConnectionLostError(
                f"Cannot connect to {self.host}:{self.port}: {e}",
                host=self.host, port=self.port, cause=e,
            ) from e

        self.logger.info("Connection established", extra={"host": self.host, "port": self.port})
        return session

    def is_lost(self, error: BaseException) -> bool:
        """True if ``error`` means the current session is unusable."""
        return isinstance(error, ConnectionLostError) or self.connector.is_connection_lost(error)

    async def discard(self, session: Optional[RegistrySession]) -> None:
        """Close a session believed dead; failures to close are only logged."""
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:
            self.logger.debug(
                f"Error closing discarded session: {e}",
                extra={"host": self.host, "port": self.port, "condition": DegradedCondition.CONNECTION_LOST.value},
            )
