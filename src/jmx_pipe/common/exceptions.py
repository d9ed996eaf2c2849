"""
Structured Exception Hierarchy

Provides the exceptions raised by the JMX pipe together with the names of
the non-fatal conditions that are only ever logged.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class DegradedCondition(str, Enum):
    """Non-fatal conditions reported through the log instead of raised.

    Each one is attached to the log record as ``extra={"condition": ...}``.
    """
    OBJECT_RESOLUTION = "object_resolution"
    ATTRIBUTE_TRAVERSAL = "attribute_traversal"
    SUBSCRIPTION_INSTALL = "subscription_install"
    UNEXPECTED_TICK = "unexpected_tick"
    CONNECTION_LOST = "connection_lost"


class JmxPipeException(Exception):
    """
    Base exception class for all JMX pipe exceptions.

    Carries an error code and context data for structured log lines.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None
        }


class ConfigurationError(JmxPipeException):
    """Raised when the pipe configuration is malformed. Always fatal."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        validation_errors: Optional[List[str]] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if config_path:
            context['config_path'] = config_path
        if validation_errors:
            context['validation_errors'] = validation_errors

        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            context=context,
            **kwargs
        )
        self.validation_errors = validation_errors or [message]


class ConnectorError(JmxPipeException):
    """Raised when a call to the remote registry fails at application level."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        error_code: str = "CONNECTOR_ERROR",
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if host:
            context['host'] = host
        if port is not None:
            context['port'] = port

        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            **kwargs
        )


class ConnectionLostError(ConnectorError):
    """Raised when the session to the remote registry is no longer usable."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONNECTION_LOST", **kwargs)
