"""
JMX Pipe Adapters Package.

This package contains the connector boundary to the remote registry and the
components that poll it: query executor, notification subscriber and
scheduler.
"""

from .core import RegistryConnector, RegistrySession, load_connector
from .connection import ConnectionManager
from .query_executor import QueryExecutor
from .notifications import NotificationSubscriber
from .scheduler import Scheduler, SchedulerState
from .pipe import JmxPipe

__all__ = [
    "RegistryConnector",
    "RegistrySession",
    "load_connector",
    "ConnectionManager",
    "QueryExecutor",
    "NotificationSubscriber",
    "Scheduler",
    "SchedulerState",
    "JmxPipe",
]
