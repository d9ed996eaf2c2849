"""
Shared fixtures: an in-memory registry that implements the session contract.

Object-name patterns are matched shell-style: the domain and every key
property value of the pattern are matched with ``fnmatch``, and without a
trailing ``*`` the key-property sets must be identical.
"""

import logging
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from jmx_pipe.adapters.core import RegistryConnector, RegistrySession
from jmx_pipe.adapters.output import QueueOutputSink, RecordEmitter
from jmx_pipe.common.exceptions import ConnectionLostError
from jmx_pipe.models.registry import ManagedObject, Notification, ObjectName


def matches(pattern: ObjectName, name: ObjectName) -> bool:
    if not fnmatchcase(name.domain, pattern.domain):
        return False
    props = name.key_properties
    for key, value in pattern.properties:
        if key not in props or not fnmatchcase(props[key], value):
            return False
    if not pattern.property_list_pattern and set(props) != set(pattern.key_properties):
        return False
    return True


class FakeSession(RegistrySession):
    """In-memory session over ``{object name: {attribute: raw value}}``."""

    def __init__(self, objects: Optional[Dict[str, Dict[str, Any]]] = None):
        self.objects: Dict[str, Dict[str, Any]] = {}
        for name, attributes in (objects or {}).items():
            self.add_object(name, attributes)

        self.listeners: Dict[str, List[Any]] = {}
        self.find_calls: List[str] = []
        self.get_calls: List[Tuple[str, Tuple[str, ...]]] = []
        self.find_errors: Dict[str, BaseException] = {}
        self.get_errors: Dict[str, BaseException] = {}
        self.listener_errors: Dict[str, BaseException] = {}
        self.closed = False

    def add_object(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        self.objects[str(ObjectName.parse(name))] = dict(attributes or {})

    async def find_objects(self, pattern: str) -> List[ManagedObject]:
        self.find_calls.append(pattern)
        if pattern in self.find_errors:
            raise self.find_errors[pattern]
        parsed = ObjectName.parse(pattern)
        return [
            ManagedObject(ObjectName.parse(name))
            for name in self.objects
            if matches(parsed, ObjectName.parse(name))
        ]

    async def get_attributes(self, handle: Any, names: Sequence[str]) -> Dict[str, Any]:
        key = str(handle)
        self.get_calls.append((key, tuple(names)))
        if key in self.get_errors:
            raise self.get_errors[key]
        attributes = self.objects[key]
        return {n: attributes[n] for n in names if n in attributes}

    async def add_notification_listener(self, handle: Any, listener) -> None:
        key = str(handle)
        if key in self.listener_errors:
            raise self.listener_errors[key]
        self.listeners.setdefault(key, []).append(listener)

    async def close(self) -> None:
        self.closed = True

    def notify(self, name: str, notification: Notification) -> int:
        """Deliver a notification to every listener on ``name``."""
        delivered = 0
        for listener in self.listeners.get(str(ObjectName.parse(name)), []):
            listener(notification)
            delivered += 1
        return delivered


class FakeConnector(RegistryConnector):
    """Hands out ``FakeSession`` objects built from a shared object table."""

    def __init__(self, options: Optional[Dict[str, Any]] = None, logger: Optional[logging.Logger] = None):
        super().__init__(options, logger)
        self.object_table: Dict[str, Dict[str, Any]] = dict(self.options.get("objects", {}))
        self.sessions: List[FakeSession] = []
        self.connect_calls: List[Tuple[str, int, Any]] = []
        self.failures_before_connect = 0

    async def connect(self, host: str, port: int, credentials=None) -> FakeSession:
        self.connect_calls.append((host, port, credentials))
        if self.failures_before_connect > 0:
            self.failures_before_connect -= 1
            raise ConnectionRefusedError(f"{host}:{port} refused")
        session = FakeSession(self.object_table)
        self.sessions.append(session)
        return session


def lost(error: BaseException) -> bool:
    return isinstance(error, (ConnectionLostError, ConnectionError))


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo handler changes made by setup_logging so caplog keeps working."""
    package_logger = logging.getLogger("jmx_pipe")
    saved = (package_logger.handlers[:], package_logger.level, package_logger.propagate)
    yield
    package_logger.handlers, package_logger.level, package_logger.propagate = saved[0], saved[1], saved[2]


@pytest.fixture
def logger():
    return logging.getLogger("jmx_pipe.tests")


@pytest.fixture
def sink():
    return QueueOutputSink()


@pytest.fixture
def emitter(sink, logger):
    return RecordEmitter(sink, "app01", logger)


@pytest.fixture
def session():
    return FakeSession(
        {
            "java.lang:type=Memory": {
                "HeapMemoryUsage": {"committed": 512, "init": 256, "max": 1024, "used": 300},
                "Verbose": False,
            },
            "java.lang:type=Threading": {"ThreadCount": 42, "DaemonThreadCount": 12},
            "java.lang:type=GarbageCollector,name=PS Scavenge": {"CollectionCount": 7, "CollectionTime": 70},
            "java.lang:type=GarbageCollector,name=PS MarkSweep": {"CollectionCount": 1, "CollectionTime": 300},
            "java.lang:type=GarbageCollector,name=G1 Old": {"CollectionCount": 0, "CollectionTime": 0},
        }
    )
