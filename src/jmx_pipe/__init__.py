"""
JMX Pipe.

Polls a remote management registry on a fixed schedule, forwards its
notifications, and turns both into flat records for an output sink.
"""

from .adapters.pipe import JmxPipe
from .adapters.output import JsonLinesOutputSink, OutputSink, QueueOutputSink
from .common.config import PipeSettings, build_settings, load_settings
from .common.exceptions import ConfigurationError, ConnectionLostError, ConnectorError, JmxPipeException

__version__ = "0.1.0"

__all__ = [
    "JmxPipe",
    "OutputSink",
    "QueueOutputSink",
    "JsonLinesOutputSink",
    "PipeSettings",
    "build_settings",
    "load_settings",
    "JmxPipeException",
    "ConfigurationError",
    "ConnectorError",
    "ConnectionLostError",
]
