"""
Core base classes for remote registry connectors.

A connector wraps an existing registry client library. It opens sessions;
a session resolves object-name patterns, reads attributes and installs
notification listeners. Connectors are loaded by dotted class path from
the pipe configuration.
"""

import abc
import importlib
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..common.exceptions import ConfigurationError, ConnectionLostError
from ..models.registry import ManagedObject, Notification

NotificationListener = Callable[[Notification], None]


class RegistrySession(abc.ABC):
    """A live session to the remote registry.

    Every method may block on the network. Raising ``ConnectionLostError``
    (or any error the owning connector classifies as a lost connection)
    makes the pipe discard the session and reconnect.
    """

    @abc.abstractmethod
    async def find_objects(self, pattern: str) -> List[ManagedObject]:
        """Resolve an object-name pattern to the objects currently registered."""
        pass

    @abc.abstractmethod
    async def get_attributes(self, handle: Any, names: Sequence[str]) -> Dict[str, Any]:
        """Read several attributes of one object in a single call.

        Attributes the object does not expose may be left out of the result.
        """
        pass

    @abc.abstractmethod
    async def add_notification_listener(self, handle: Any, listener: NotificationListener) -> None:
        """Install a listener; it may later be called from any thread."""
        pass

    async def close(self) -> None:
        """Release the session. The default does nothing."""
        pass


class RegistryConnector(abc.ABC):
    """Abstract base class for all registry connectors.

    This interface defines the contract a registry client binding must
    implement to be driven by the pipe.
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None, logger: Optional[logging.Logger] = None):
        """Initialize the connector.

        Args:
            options: Free-form connector options from the pipe configuration
            logger: Logger instance for structured logging
        """
        self.options = options or {}
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    @abc.abstractmethod
    async def connect(
        self, host: str, port: int, credentials: Optional[Tuple[str, str]] = None
    ) -> RegistrySession:
        """Open a new session. Credentials are opaque to the pipe."""
        pass

    def is_connection_lost(self, error: BaseException) -> bool:
        """Tell whether ``error`` means the session is dead.

        Application-level failures (unknown attribute, bad pattern) must
        return False so that only the affected object is skipped.
        """
        return isinstance(error, (ConnectionLostError, ConnectionError, EOFError))


def load_connector(
    connector_path: str,
    options: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> RegistryConnector:
    """Import and instantiate a connector from ``package.module.ClassName``.

    Raises:
        ConfigurationError: If the class cannot be imported or is not a connector
    """
    logger = logger or logging.getLogger(__name__)

    if not connector_path or "." not in connector_path:
        raise ConfigurationError(f"Connector class must be a dotted path: {connector_path!r}")

    module_path, class_name = connector_path.rsplit(".", 1)

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import connector module {module_path}: {e}", cause=e) from e

    connector_class = getattr(module, class_name, None)
    if connector_class is None:
        raise ConfigurationError(f"Class {class_name} not found in module {module_path}")

    if not isinstance(connector_class, type) or not issubclass(connector_class, RegistryConnector):
        raise ConfigurationError(f"{class_name} must be a subclass of RegistryConnector")

    connector = connector_class(options=options, logger=logger)
    logger.info(f"Connector loaded: {class_name}")
    return connector
